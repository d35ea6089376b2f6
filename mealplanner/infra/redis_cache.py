"""Short-lived payloads behind compact tokens.

Telegram callback data is capped at 64 bytes, so redo/next buttons carry a
token and the full request text lives in redis.
"""

import hashlib
import json
import secrets
from typing import Optional

from .redis_client import get_sync_redis

REQUEST_TTL_SEC = 60 * 60
_PREFIX = "mealplanner:request:"


def _key(token: str) -> str:
    return f"{_PREFIX}{token}"


def new_token(user_id: str) -> str:
    h = hashlib.sha256(f"{user_id}:{secrets.token_hex(8)}".encode("utf-8"))
    return h.hexdigest()[:16]


def stash_request(user_id: str, request: str, ttl_sec: int = REQUEST_TTL_SEC) -> str:
    token = new_token(user_id)
    payload = {"user_id": user_id, "request": request}
    get_sync_redis().set(_key(token), json.dumps(payload), ex=ttl_sec)
    return token


def load_request(token: str, user_id: Optional[str] = None) -> Optional[str]:
    """Request text for a token, or None when expired or owned by someone else."""
    raw = get_sync_redis().get(_key(token))
    if not raw:
        return None
    data = json.loads(raw)
    if user_id is not None and data.get("user_id") != user_id:
        return None
    return data.get("request")


def drop_request(token: str) -> None:
    get_sync_redis().delete(_key(token))
