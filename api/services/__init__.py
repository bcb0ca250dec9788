"""Service layer helpers for external integrations."""

from api.services.redis_helpers import redis_get_json, redis_set_json, redis_upsert_json
from api.services.completion import KeyRotation, get_completion
from api.services.cooldown import CooldownGate
from api.services.user_store import JsonFileUserStore, RedisUserStore, UserStore

__all__ = [
    "redis_get_json",
    "redis_set_json",
    "redis_upsert_json",
    "KeyRotation",
    "get_completion",
    "CooldownGate",
    "JsonFileUserStore",
    "RedisUserStore",
    "UserStore",
]
