"""Shared Redis JSON helpers."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

import redis

__all__ = ["redis_get_json", "redis_set_json", "redis_upsert_json"]

UPSERT_MAX_ATTEMPTS = 5


def redis_get_json(redis_client: redis.Redis, key: str) -> Optional[Any]:
    """Fetch ``key`` from Redis and decode JSON into Python objects."""
    try:
        data = redis_client.get(key)
        if not data:
            return None
        return json.loads(str(data))
    except Exception:
        return None


def redis_set_json(redis_client: redis.Redis, key: str, value: Any) -> bool:
    """Store JSON under ``key`` without TTL; return success boolean."""
    try:
        return bool(redis_client.set(key, json.dumps(value)))
    except Exception:
        return False


def redis_upsert_json(
    redis_client: redis.Redis,
    key: str,
    mutate: Callable[[Dict[str, Any]], Dict[str, Any]],
    max_attempts: int = UPSERT_MAX_ATTEMPTS,
) -> Dict[str, Any]:
    """Apply ``mutate`` to the JSON object at ``key`` inside a WATCH/MULTI cycle.

    Retries when another writer touches ``key`` between read and write.
    Raises :class:`redis.WatchError` once ``max_attempts`` are exhausted.
    """

    for _ in range(max(1, max_attempts)):
        with redis_client.pipeline() as pipe:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                try:
                    current = json.loads(str(raw)) if raw else {}
                except ValueError:
                    current = {}
                if not isinstance(current, dict):
                    current = {}
                updated = mutate(current)
                pipe.multi()
                pipe.set(key, json.dumps(updated))
                pipe.execute()
                return updated
            except redis.WatchError:
                continue
    raise redis.WatchError(f"{key} changed during {max_attempts} upsert attempts")
