"""Per-chat user profiles persisted as a single JSON document."""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
import threading
from typing import Any, Callable, Dict, Mapping, Optional

import redis

from api.services.redis_helpers import redis_get_json, redis_upsert_json


AdminReporterFn = Callable[[str, Optional[Exception], Optional[Dict[str, Any]]], None]

REDIS_USERS_KEY = "users"

_admin_reporter_fn: Optional[AdminReporterFn] = None


def configure(*, admin_reporter: Optional[AdminReporterFn] = None) -> None:
    """Register the admin reporter used for write failures."""

    global _admin_reporter_fn
    _admin_reporter_fn = admin_reporter


def _admin_report(message: str, error: Optional[Exception] = None, extra: Optional[Dict[str, Any]] = None) -> None:
    if _admin_reporter_fn:
        _admin_reporter_fn(message, error, extra)


def _merge(current: Mapping[str, Any], chat_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
    users = dict(current)
    profile = dict(users.get(chat_id) or {})
    profile.update(patch)
    users[chat_id] = profile
    return users


class UserStore:
    """Mapping of chat id to profile dict.

    ``get`` hands back a profile without persisting it; a chat only becomes
    durable on its first ``update``.
    """

    def load(self) -> Dict[str, Dict[str, Any]]:
        raise NotImplementedError

    def get(self, chat_id: Any) -> Dict[str, Any]:
        users = self.load()
        return dict(users.get(str(chat_id)) or {})

    def update(self, chat_id: Any, patch: Mapping[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class JsonFileUserStore(UserStore):
    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Dict[str, Any]]:
        try:
            if not os.path.exists(self.path):
                return {}
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as e:
            print(f"Error loading users: {e}")
            return {}
        if not isinstance(data, dict):
            print(f"Error loading users: expected an object, got {type(data).__name__}")
            return {}
        return data

    def _save(self, users: Mapping[str, Any]) -> None:
        directory = os.path.dirname(self.path) or "."
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".users-", suffix=".json")
        except OSError as e:
            print(f"Error saving users: {e}")
            _admin_report("Error saving users", e, {"path": self.path})
            return
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(users, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            print(f"Error saving users: {e}")
            _admin_report("Error saving users", e, {"path": self.path})

    def update(self, chat_id: Any, patch: Mapping[str, Any]) -> Dict[str, Any]:
        key = str(chat_id)
        with self._lock:
            users = _merge(self.load(), key, patch)
            self._save(users)
        return dict(users[key])


class RedisUserStore(UserStore):
    def __init__(self, redis_client: redis.Redis, key: str = REDIS_USERS_KEY) -> None:
        self.redis_client = redis_client
        self.key = key

    def load(self) -> Dict[str, Dict[str, Any]]:
        data = redis_get_json(self.redis_client, self.key)
        if not isinstance(data, dict):
            return {}
        return data

    def update(self, chat_id: Any, patch: Mapping[str, Any]) -> Dict[str, Any]:
        key = str(chat_id)
        try:
            users = redis_upsert_json(
                self.redis_client, self.key, lambda current: _merge(current, key, patch)
            )
        except redis.RedisError as e:
            print(f"Error saving users: {e}")
            _admin_report("Error saving users", e, {"redis_key": self.key, "chat_id": key})
            return {**self.get(key), **patch}
        return dict(users[key])


def build_user_store(
    config: Mapping[str, Any],
    redis_factory: Optional[Callable[..., redis.Redis]] = None,
) -> UserStore:
    """Create the store selected by ``user_store_backend``."""

    if config.get("user_store_backend") == "redis":
        if redis_factory is None:
            raise ValueError("redis backend requires a redis factory")
        return RedisUserStore(redis_factory())
    return JsonFileUserStore(config["user_store_path"])


__all__ = [
    "REDIS_USERS_KEY",
    "JsonFileUserStore",
    "RedisUserStore",
    "UserStore",
    "build_user_store",
    "configure",
]
