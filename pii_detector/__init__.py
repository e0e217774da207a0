"""Contact-information detection over a rotating Gemini API key pool."""

__version__ = "0.1.0"
