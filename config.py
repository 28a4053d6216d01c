import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("quiz-backend")

GENERATION_STRATEGIES = ("parallel", "sequential")

DEFAULT_BASE_URLS = {
    "cerebras": "https://api.cerebras.ai/v1",
    "openai": "https://api.openai.com/v1",
}


def _bool_env(name, default="0"):
    return str(os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes")


def _strategy_env():
    strategy = (os.getenv("GENERATION_STRATEGY") or "parallel").strip().lower()
    if strategy not in GENERATION_STRATEGIES:
        logger.warning("Unknown GENERATION_STRATEGY %r; using sequential", strategy)
        return "sequential"
    return strategy


def _strip_quotes(value):
    # Keys pasted into .env files sometimes keep their surrounding quotes
    value = (value or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return value


def load_settings():
    """Read runtime settings from the environment into a plain dict."""
    provider = (os.getenv("LLM_PROVIDER") or "cerebras").strip().lower()
    if provider == "gemini":
        api_key = _strip_quotes(os.getenv("GEMINI_API_KEY"))
        model = os.getenv("GEMINI_MODEL") or "gemini-2.5-flash"
    else:
        api_key = _strip_quotes(os.getenv("LLM_API_KEY") or os.getenv("CEREBRAS_API_KEY"))
        model = os.getenv("LLM_MODEL") or "llama-3.3-70b"
    return {
        "SECRET_KEY": os.getenv("FLASK_SECRET", "dev-secret-change-me"),
        "MAX_CONTENT_LENGTH": int(os.getenv("MAX_UPLOAD_MB", "32")) * 1024 * 1024,
        "LLM_PROVIDER": provider,
        "LLM_API_KEY": api_key,
        "LLM_MODEL": model,
        "LLM_BASE_URL": os.getenv("LLM_BASE_URL") or DEFAULT_BASE_URLS.get(provider),
        "LLM_TIMEOUT": float(os.getenv("LLM_TIMEOUT", "90")),
        "LLM_MAX_ATTEMPTS": int(os.getenv("LLM_MAX_ATTEMPTS", "3")),
        "LLM_BACKOFF": float(os.getenv("LLM_BACKOFF", "1.0")),
        "GENERATION_STRATEGY": _strategy_env(),
        "GENERATION_THROTTLE": float(os.getenv("GENERATION_THROTTLE", "2.0")),
        "GENERATION_WORKERS": int(os.getenv("GENERATION_WORKERS", "8")),
        "TESSERACT_LANG": os.getenv("TESSERACT_LANG", "eng"),
        "NLTK_DOWNLOAD": _bool_env("NLTK_DOWNLOAD", "1"),
    }
