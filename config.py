"""
White Guard Bot Configuration
LLM Spam Filter & Whitelist Promotion
"""

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer variable, falling back to the default when unset or invalid."""
    raw = os.getenv(name, "").strip()
    try:
        return int(raw)
    except ValueError:
        return default


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw)
    except ValueError:
        return None


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes", "on"}


def _env_username(name: str) -> Optional[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return raw.lstrip("@") or None


def _env_tag_username() -> Optional[str]:
    # TEG_USERNAME is the name older deployments use
    return _env_username("TAG_USERNAME") or _env_username("TEG_USERNAME")


class Config:
    # Telegram Settings
    BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
    TELEGRAM_API_URL = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")
    POLL_TIMEOUT_SECONDS = _env_int("POLL_TIMEOUT_SECONDS", 60)
    POLL_RETRY_DELAY_SECONDS = _env_int("POLL_RETRY_DELAY_SECONDS", 2)

    # Whitelist
    WHITELIST_FILE = os.getenv("WHITE_USER_FILE", "white_user.txt")

    # Moderation Policy
    SPAM_THRESHOLD = _env_int("SPAM_THRESHOLD", 70)  # Score >= threshold is spam
    HAM_WHITELIST_THRESHOLD = _env_int("HAM_WHITELIST_THRESHOLD", 15)  # Clean messages before whitelisting
    ECHO_HAM = _env_flag("ECHO_HAM")  # Reply to every clean message with the running count
    TAG_USERNAME = _env_tag_username()  # Mentioned in spam warnings
    NOTIFY_USER_ID = _env_optional_int("NOTIFY_USER_ID")  # Where promotions are announced
    MAX_CLASSIFY_CHARS = _env_int("MAX_CLASSIFY_CHARS", 250)

    # LLM Classifier
    CLASSIFIER_BACKEND = os.getenv("CLASSIFIER_BACKEND", "openrouter").strip().lower()
    CLASSIFIER_TIMEOUT_SECONDS = _env_int("CLASSIFIER_TIMEOUT_SECONDS", 240)

    OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
    OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "qwen/qwen-2.5-coder-32b-instruct")
    OPENROUTER_URL = os.getenv("OPENROUTER_URL", "https://openrouter.ai/api/v1/chat/completions")

    OLLAMA_URL = os.getenv("OLLAMA_URL", "http://127.0.0.1:11434")
    OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "qwen2.5:7b")

    # Logging
    LOG_FILE = os.getenv("LOG_FILE", "logs/white_guard.log")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
