"""FastAPI application for PII detection over a Gemini key pool."""

import logging
from contextlib import asynccontextmanager
from typing import Dict

import httpx
from fastapi import FastAPI, Request

from pii_detector.api import api_router
from pii_detector.config import Config, load_config
from pii_detector.dispatcher import RequestDispatcher
from pii_detector.gemini_client import GeminiClient
from pii_detector.key_pool import CredentialPool
from pii_detector.service import DetectionService
from pii_detector.telemetry import pool_summary

logger = logging.getLogger(__name__)


def build_service(config: Config, http_client: httpx.AsyncClient) -> DetectionService:
    pool = CredentialPool(config.api_keys, cooldown_seconds=config.cooldown_seconds)
    dispatcher = RequestDispatcher(
        pool,
        GeminiClient(http_client, model=config.model),
        max_retries=config.max_retries,
        base_delay_seconds=config.retry_base_delay_seconds,
    )
    return DetectionService(pool, dispatcher)


def install(app: FastAPI, config: Config, http_client: httpx.AsyncClient) -> None:
    service = build_service(config, http_client)
    app.state.config = config
    app.state.http_client = http_client
    app.state.pool = service.pool
    app.state.detection_service = service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle: startup and shutdown."""
    config = load_config()

    logging.basicConfig(level=getattr(logging, config.log_level))

    http_client = httpx.AsyncClient(
        base_url=config.gemini_base_url,
        timeout=httpx.Timeout(config.request_timeout_seconds, connect=10.0),
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
    )
    install(app, config, http_client)

    logger.info(
        "PII detection service started with %d keys (model=%s)",
        len(config.api_keys),
        config.model,
    )

    yield

    await http_client.aclose()
    logger.info("PII detection service stopped")


app = FastAPI(title="PII Detection Service", lifespan=lifespan)
app.include_router(api_router)


@app.get("/")
async def root(request: Request) -> Dict[str, object]:
    status = await pool_summary(request.app.state.pool)
    return {
        "service": "PII Detection Service",
        "status": "running",
        "keys_available": status["available_keys"],
        "total_keys": status["total_keys"],
    }


@app.get("/health")
async def health_check(request: Request) -> Dict[str, object]:
    """Health check endpoint with key pool status."""
    status = await pool_summary(request.app.state.pool)
    return {
        "status": "healthy",
        "keys_available": status["available_keys"],
        "total_keys": status["total_keys"],
        "current_key_index": status["current_key_index"],
    }
