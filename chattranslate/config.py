"""
ChatTranslate Configuration

All settings can be overridden via environment variables.
"""
import os
from pathlib import Path

# Base Paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.environ.get("CHATTRANSLATE_DATA_DIR", str(PROJECT_ROOT / "data")))
SETTINGS_FILE = Path(os.environ.get("CHATTRANSLATE_SETTINGS_FILE", str(DATA_DIR / "settings.json")))

# Server Configuration
HOST = os.environ.get("CHATTRANSLATE_HOST", "127.0.0.1")
PORT = int(os.environ.get("CHATTRANSLATE_PORT", "8000"))
DEBUG = os.environ.get("CHATTRANSLATE_DEBUG", "false").lower() == "true"
LOG_LEVEL = os.environ.get("CHATTRANSLATE_LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

# CORS Configuration
CORS_ORIGINS = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173"
).split(",")

# Authentication
AUTH_ENABLED = os.environ.get("CHATTRANSLATE_AUTH_ENABLED", "false").lower() == "true"
API_KEYS = set(
    os.environ.get("CHATTRANSLATE_API_KEYS", "dev-key-change-in-production").split(",")
)

# Rate Limiting
RATE_LIMIT_REQUESTS = int(os.environ.get("CHATTRANSLATE_RATE_LIMIT", "120"))
RATE_LIMIT_WINDOW = int(os.environ.get("CHATTRANSLATE_RATE_WINDOW", "60"))
RATE_LIMIT_CLEANUP_THRESHOLD = int(os.environ.get("CHATTRANSLATE_RATE_LIMIT_CLEANUP", "100"))

# Terminology CSV upload limit
MAX_TERMINOLOGY_FILE_SIZE = int(os.environ.get("CHATTRANSLATE_MAX_CSV_SIZE", str(2 * 1024 * 1024)))  # 2MB

# Languages offered to the host UI
LANGUAGE_OPTIONS = [
    "简体中文",
    "English",
    "日本語",
    "한국어",
    "Español",
    "Français",
    "Deutsch",
]

DEFAULT_DOUBLE_CLICK_TARGET_LANGUAGE = os.environ.get("CHATTRANSLATE_MESSAGE_TARGET", "简体中文")
DEFAULT_INPUT_TARGET_LANGUAGE = os.environ.get("CHATTRANSLATE_INPUT_TARGET", "English")

# Request Pipeline
REQUEST_TIMEOUT_MS = int(os.environ.get("CHATTRANSLATE_REQUEST_TIMEOUT_MS", "20000"))
REQUEST_TEMPERATURE = 0.2
DEFAULT_MODEL_ID = "gpt-3.5-turbo"
DEFAULT_BASE_URL = "https://api.openai.com/v1/chat/completions"

DEFAULT_PROMPT_TEMPLATE = os.environ.get(
    "CHATTRANSLATE_PROMPT_TEMPLATE",
    "You translate chat messages into {{targetLanguage}}.\n"
    "Stay faithful to the original meaning; casual, colloquial or internet-style "
    "phrasing is welcome when it fits the message.\n"
    "Output ONLY the translation. No notes, explanations, or reasoning."
)

# Translation Cache (megabytes, clamped to the allowed range)
CACHE_LIMIT_MIN_MB = 1
CACHE_LIMIT_MAX_MB = 50
CACHE_LIMIT_MB = int(os.environ.get("CHATTRANSLATE_CACHE_LIMIT_MB", "5"))


def clamp_cache_limit(value) -> int:
    """Clamp a cache budget (MB) into the supported 1-50 range."""
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        number = CACHE_LIMIT_MB
    return max(CACHE_LIMIT_MIN_MB, min(CACHE_LIMIT_MAX_MB, number))
