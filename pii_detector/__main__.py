"""Run the service: ``python -m pii_detector``."""

import uvicorn

from pii_detector.config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run(
        "pii_detector.main:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
