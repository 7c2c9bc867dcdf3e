# tests/test_providers_langflow.py
import json
import httpx
import pytest
import respx

from chatgate.providers.base import ProviderError
from chatgate.providers.langflow import LangflowProvider, extract_chat_output_text

RUN_URL = "http://langflow.test/api/v1/run/flow-123"


def flow_result(text: str) -> dict:
    return {
        "session_id": "session_1_abcdefghi",
        "outputs": [
            {
                "inputs": {"input_value": "..."},
                "outputs": [
                    {
                        "results": {"message": {"text": text, "sender": "Machine"}},
                        "outputs": {"message": {"message": text, "type": "text"}},
                    }
                ],
            }
        ],
    }


def ndjson(*records) -> bytes:
    return b"".join(json.dumps(r).encode() + b"\n\n" for r in records)


def test_extract_chat_output_text_fallbacks():
    assert extract_chat_output_text(flow_result("hi")) == "hi"
    only_artifact = {"outputs": [{"outputs": [{"outputs": {"message": {"message": "from artifact"}}}]}]}
    assert extract_chat_output_text(only_artifact) == "from artifact"
    only_messages = {"outputs": [{"outputs": [{"messages": [{"message": "from messages"}]}]}]}
    assert extract_chat_output_text(only_messages) == "from messages"
    assert extract_chat_output_text({"outputs": []}) == ""


def test_build_input_and_follow_up():
    p = LangflowProvider()
    text = p.build_input([{"role": "user", "content": "send me a photo"}], "KB")
    assert text.endswith("KB\n\nUser: send me a photo")
    follow = p.follow_up(text, "Sure!", "photo-sent")
    assert follow == (
        f"{text}\n\nAssistant: Sure!\n\nFunction Result: photo-sent"
        "\n\nUser: Please provide a response based on the function result."
    )
    assert p.model_name("gpt-4o-mini") == "langflow"


@pytest.mark.asyncio
@respx.mock
async def test_run_ok():
    # Posts the flattened conversation with the session and API key, returns the chat output text.
    route = respx.post(RUN_URL, params={"stream": "false"}).mock(
        return_value=httpx.Response(200, json=flow_result("hello from flow"))
    )
    out = await LangflowProvider().run("User: hi", session="session_1_abcdefghi", model="langflow")
    assert out == "hello from flow"
    request = route.calls.last.request
    assert request.headers["x-api-key"] == "lf-test-key"
    assert json.loads(request.content) == {
        "input_value": "User: hi",
        "input_type": "chat",
        "output_type": "chat",
        "session_id": "session_1_abcdefghi",
    }


@pytest.mark.asyncio
@respx.mock
async def test_run_http_error():
    respx.post(RUN_URL, params={"stream": "false"}).mock(return_value=httpx.Response(500, text="boom"))
    with pytest.raises(ProviderError, match="^Langflow error"):
        await LangflowProvider().run("hi", session="s", model="langflow")


@pytest.mark.asyncio
@respx.mock
async def test_stream_ok():
    respx.post(RUN_URL, params={"stream": "true"}).mock(
        return_value=httpx.Response(
            200,
            content=ndjson(
                {"event": "add_message", "data": {"sender": "User"}},
                {"event": "token", "data": {"chunk": "He"}},
                {"event": "token", "data": {"chunk": "llo"}},
                {"event": "end", "data": {"result": {}}},
                {"event": "token", "data": {"chunk": "ignored"}},
            ),
            headers={"Content-Type": "application/x-ndjson"},
        )
    )
    events = [e async for e in LangflowProvider().stream("hi", session="s", model="langflow")]
    assert [e.kind for e in events] == ["add_message", "token", "token", "end"]
    assert "".join(e.text for e in events) == "Hello"


@pytest.mark.asyncio
@respx.mock
async def test_stream_error_event():
    respx.post(RUN_URL, params={"stream": "true"}).mock(
        return_value=httpx.Response(
            200,
            content=ndjson({"event": "token", "data": {"chunk": "He"}}, {"event": "error", "data": {"error": "flow crashed"}}),
        )
    )
    gen = LangflowProvider().stream("hi", session="s", model="langflow")
    with pytest.raises(ProviderError, match="flow crashed"):
        async for _ in gen:
            pass


@pytest.mark.asyncio
@respx.mock
async def test_stream_http_error_raises_before_first_event():
    respx.post(RUN_URL, params={"stream": "true"}).mock(return_value=httpx.Response(404, json={"detail": "no"}))
    gen = LangflowProvider().stream("hi", session="s", model="langflow")
    with pytest.raises(ProviderError):
        await gen.__anext__()


@pytest.mark.asyncio
@respx.mock
async def test_stream_without_tokens_emits_end_result_as_message():
    respx.post(RUN_URL, params={"stream": "true"}).mock(
        return_value=httpx.Response(
            200,
            content=ndjson(
                {"event": "add_message", "data": {"sender": "User"}},
                {"event": "add_message", "data": {"sender": "Machine"}},
                {"event": "end", "data": {"result": flow_result("Full answer here")}},
            ),
        )
    )
    events = [e async for e in LangflowProvider().stream("hi", session="s", model="langflow")]
    assert [e.kind for e in events] == ["add_message", "add_message", "message", "end"]
    assert events[2].text == "Full answer here"


@pytest.mark.asyncio
@respx.mock
async def test_stream_with_tokens_ignores_end_result():
    respx.post(RUN_URL, params={"stream": "true"}).mock(
        return_value=httpx.Response(
            200,
            content=ndjson(
                {"event": "token", "data": {"chunk": "Full answer here"}},
                {"event": "end", "data": {"result": flow_result("Full answer here")}},
            ),
        )
    )
    events = [e async for e in LangflowProvider().stream("hi", session="s", model="langflow")]
    assert [e.kind for e in events] == ["token", "end"]
