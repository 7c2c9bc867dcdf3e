# tests/test_session_store.py
import asyncio
import re
import pytest

from chatgate.schemas.chat import RequestContext
from chatgate.services.sessions import SessionStore, new_session_token, session_key

TOKEN_RE = re.compile(r"^session_\d+_[a-z0-9]{9}$")


def _ctx(app="A", channel="c", user="u") -> RequestContext:
    return RequestContext(app_id=app, channel=channel, user_id=user)


def test_key_and_token_format():
    assert session_key(_ctx()) == "A_c_u"
    assert TOKEN_RE.match(new_session_token())
    assert new_session_token() != new_session_token()


@pytest.mark.asyncio
async def test_resolve_is_stable():
    # The same conversation always gets the same token back.
    s = SessionStore()
    first = await s.resolve(_ctx())
    second = await s.resolve(_ctx())
    assert first == second
    assert TOKEN_RE.match(first)
    assert s.peek("A_c_u") == first


@pytest.mark.asyncio
async def test_distinct_conversations_get_distinct_tokens():
    s = SessionStore()
    a = await s.resolve(_ctx(user="u1"))
    b = await s.resolve(_ctx(user="u2"))
    c = await s.resolve(_ctx(channel="other", user="u1"))
    assert len({a, b, c}) == 3
    assert len(s) == 3


@pytest.mark.asyncio
async def test_concurrent_first_requests_converge():
    s = SessionStore()
    tokens = await asyncio.gather(*(s.resolve(_ctx()) for _ in range(20)))
    assert len(set(tokens)) == 1


@pytest.mark.asyncio
async def test_defaults_never_evict():
    s = SessionStore()
    for i in range(50):
        await s.resolve(_ctx(user=f"u{i}"))
    assert len(s) == 50


@pytest.mark.asyncio
async def test_ttl_expiry():
    # An idle conversation past its TTL starts over with a fresh token.
    s = SessionStore(ttl_seconds=1)
    old = await s.resolve(_ctx())
    await asyncio.sleep(1.2)
    new = await s.resolve(_ctx())
    assert new != old


@pytest.mark.asyncio
async def test_lru_eviction():
    s = SessionStore(max_entries=2)
    t1 = await s.resolve(_ctx(user="u1"))
    await asyncio.sleep(0.01)
    await s.resolve(_ctx(user="u2"))
    await asyncio.sleep(0.01)
    # touch u1 so u2 becomes the oldest
    assert await s.resolve(_ctx(user="u1")) == t1
    await asyncio.sleep(0.01)
    await s.resolve(_ctx(user="u3"))
    assert len(s) == 2
    assert s.peek("A_c_u1") == t1
    assert s.peek("A_c_u2") is None
