# Conversation identity (app + channel + user) -> opaque provider session token

from __future__ import annotations
from typing import Dict, Optional
import asyncio
import logging
import secrets
import string
import time

from chatgate.schemas.chat import RequestContext

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits


def session_key(ctx: RequestContext) -> str:
    return f"{ctx.app_id}_{ctx.channel}_{ctx.user_id}"


def new_session_token() -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class SessionStore:
    def __init__(self, *, ttl_seconds: int = 0, max_entries: int = 0) -> None:
        """
        self._tokens: conversation key -> session token, created lazily and reused.
        self._last: conversation key -> last resolve timestamp (for TTL and LRU eviction).
        ttl_seconds / max_entries of 0 keep every token for the life of the process.
        """
        self._tokens: Dict[str, str] = {}
        self._last: Dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._ttl = max(0, ttl_seconds)
        self._max_entries = max(0, max_entries)

    def __len__(self) -> int:
        return len(self._tokens)

    def peek(self, key: str) -> Optional[str]:
        return self._tokens.get(key)

    # check-then-create runs under the lock so concurrent first requests share one token
    async def resolve(self, ctx: RequestContext) -> str:
        key = session_key(ctx)
        now = time.time()
        async with self._lock:
            self._expire(key, now)
            token = self._tokens.get(key)
            if token is None:
                token = new_session_token()
                self._tokens[key] = token
                logger.info("created new session %s for %s", token, key)
            self._last[key] = now
            self._evict()
            return token

    def _expire(self, key: str, now: float) -> None:
        if self._ttl <= 0:
            return
        ts = self._last.get(key)
        if ts and (now - ts) > self._ttl:
            self._tokens.pop(key, None)
            self._last.pop(key, None)

    def _evict(self) -> None:
        if self._max_entries <= 0:
            return
        while len(self._tokens) > self._max_entries:
            oldest = min(self._last.items(), key=lambda kv: kv[1])[0]
            self._tokens.pop(oldest, None)
            self._last.pop(oldest, None)
