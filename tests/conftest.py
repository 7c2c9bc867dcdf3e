# tests/conftest.py
import os
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Ensure test-friendly env (no real backends, no pacing)
os.environ.setdefault("LLM_PROVIDER", "langflow")
os.environ.setdefault("USE_RESPONSES_API", "false")
os.environ.setdefault("LANGFLOW_URL", "http://langflow.test")
os.environ.setdefault("LANGFLOW_API_KEY", "lf-test-key")
os.environ.setdefault("LANGFLOW_FLOW_ID", "flow-123")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("OPENAI_BASE_URL", "http://openai.test/v1")
os.environ.setdefault("STREAM_CHUNK_DELAY_MS", "0")

# IMPORTANT: import the app after envs are set
from chatgate.main import create_app
from chatgate.providers.base import CompletionProvider, ProviderError, StreamEvent
from chatgate.schemas.chat import RequestContext
from chatgate.services.capabilities import CapabilityRegistry
from chatgate.services.prompt import format_conversation


class FakeProvider(CompletionProvider):
    """In-memory provider. tokens=None means the backend cannot stream."""

    name = "fake"

    def __init__(self, replies: Optional[List[str]] = None, tokens: Optional[List[Any]] = None) -> None:
        self.replies = list(replies or ["hello there world"])
        self.tokens = tokens
        self.runs: List[Any] = []
        self.stream_calls = 0
        self.stream_closed = False

    def build_input(self, messages: List[Dict[str, Any]], knowledge: str) -> str:
        return format_conversation(messages, knowledge)

    def follow_up(self, payload: str, response_text: str, function_result: str) -> str:
        return f"{payload}\n\nAssistant: {response_text}\n\nFunction Result: {function_result}"

    async def run(self, payload: Any, *, session: str, model: str) -> str:
        self.runs.append(payload)
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]

    async def stream(self, payload: Any, *, session: str, model: str) -> AsyncIterator[StreamEvent]:
        self.stream_calls += 1
        try:
            if self.tokens is None:
                raise ProviderError("streaming not supported")
            for t in self.tokens:
                if isinstance(t, Exception):
                    raise t
                yield StreamEvent("token", {"chunk": t})
            yield StreamEvent("end")
        finally:
            self.stream_closed = True


class RecordingCapabilities(CapabilityRegistry):
    def __init__(self) -> None:
        super().__init__()
        self.calls: List[tuple] = []

    async def invoke(self, name, app_id, user_id, channel, args):
        self.calls.append((name, app_id, user_id, channel, args))
        return await super().invoke(name, app_id, user_id, channel, args)


@pytest.fixture
def ctx():
    return RequestContext(app_id="A", channel="c", user_id="u")


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def capabilities():
    registry = RecordingCapabilities()

    async def send_photo(app_id, user_id, channel, args):
        return "photo-sent"

    async def order_sandwich(app_id, user_id, channel, args):
        return f"ordered a {args['filling']} sandwich"

    registry.register("send_photo", send_photo)
    registry.register("order_sandwich", order_sandwich)
    return registry


@pytest.fixture
def make_app(capabilities):
    def build(provider: CompletionProvider, caps: Optional[CapabilityRegistry] = None):
        return create_app(
            provider=provider,
            capabilities=caps if caps is not None else capabilities,
            knowledge=lambda: "KB",
            chunk_delay_ms=0,
        )
    return build


@pytest_asyncio.fixture
async def app(make_app, fake_provider):
    return make_app(fake_provider)


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

@pytest.fixture
def caplog_info(caplog):
    caplog.set_level(logging.INFO)
    return caplog
