"""Application-wide configuration helpers."""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, Optional

import redis


AdminReporter = Callable[[str, Optional[Exception], Optional[Dict[str, Any]]], None]

DEFAULT_SYSTEM_PROMPT = "You are VIRTUAL_BUNNY, a cheerful, friendly, witty assistant."
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_USER_STORE_PATH = os.path.join("/tmp", "users.json")
DEFAULT_TIMEZONE = "Asia/Kolkata"
USER_STORE_BACKENDS = ("file", "redis")


_bot_config: Optional[Dict[str, Any]] = None
_admin_reporter: Optional[AdminReporter] = None


def configure(*, admin_reporter: Optional[AdminReporter] = None) -> None:
    """Register optional admin reporter callbacks."""

    global _admin_reporter
    _admin_reporter = admin_reporter


def parse_api_keys(raw: Optional[str]) -> list:
    """Split a comma-separated key list, dropping blanks."""

    return [key.strip() for key in (raw or "").split(",") if key.strip()]


def load_bot_config() -> Dict[str, Any]:
    """Load bot configuration from environment variables."""

    global _bot_config

    if _bot_config is not None:
        return _bot_config

    telegram_token = os.environ.get("TELEGRAM_TOKEN")
    api_keys = parse_api_keys(os.environ.get("OPENAI_API_KEYS"))

    if not telegram_token:
        raise ValueError("TELEGRAM_TOKEN environment variable is required")

    if not api_keys:
        raise ValueError("OPENAI_API_KEYS environment variable is required")

    backend = os.environ.get("USER_STORE_BACKEND", "file").strip().lower()
    if backend not in USER_STORE_BACKENDS:
        raise ValueError(f"USER_STORE_BACKEND must be one of {USER_STORE_BACKENDS}")

    _bot_config = {
        "telegram_token": telegram_token,
        "api_keys": api_keys,
        "system_prompt": os.environ.get("BOT_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
        "completion_model": os.environ.get("OPENAI_MODEL") or DEFAULT_MODEL,
        "completion_base_url": os.environ.get("OPENAI_BASE_URL") or None,
        "user_store_path": os.environ.get("USER_STORE_PATH") or DEFAULT_USER_STORE_PATH,
        "user_store_backend": backend,
        "default_timezone": os.environ.get("BOT_DEFAULT_TIMEZONE") or DEFAULT_TIMEZONE,
    }

    return _bot_config


def _admin_report(message: str, error: Optional[Exception], extra: Optional[Dict[str, Any]]) -> None:
    if _admin_reporter:
        _admin_reporter(message, error, extra)


def config_redis(host=None, port=None, password=None):
    try:
        host = host or os.environ.get("REDIS_HOST", "localhost")
        port = int(port or os.environ.get("REDIS_PORT", 6379))
        password = password or os.environ.get("REDIS_PASSWORD", None)
        redis_client = redis.Redis(
            host=host, port=port, password=password, decode_responses=True
        )
        redis_client.ping()
        return redis_client
    except Exception as exc:  # pragma: no cover - passthrough for callers
        error_context = {
            "host": host,
            "port": port,
            "password": "***" if password else None,
        }
        error_msg = f"Redis connection error: {exc}"
        print(error_msg)
        _admin_report(error_msg, exc, error_context)
        raise


def reset_cache() -> None:
    """Clear cached configuration (used primarily in tests)."""

    global _bot_config
    _bot_config = None


def set_cache(config: Optional[Dict[str, Any]]) -> None:
    """Override cached configuration (test helper)."""

    global _bot_config
    _bot_config = config


__all__ = [
    "configure",
    "config_redis",
    "load_bot_config",
    "parse_api_keys",
    "reset_cache",
    "set_cache",
]
