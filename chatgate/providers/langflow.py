import json
import logging
import httpx
from typing import Any, AsyncIterator, Dict, List, Optional
from chatgate.providers.base import CompletionProvider, ProviderError, StreamEvent
from chatgate.services.prompt import format_conversation
from chatgate.core import config

logger = logging.getLogger(__name__)

FOLLOW_UP_REQUEST = "Please provide a response based on the function result."


def extract_chat_output_text(data: Dict[str, Any]) -> str:
    """Pull the chat output text out of a Langflow run result (first output wins)."""
    if not isinstance(data, dict):
        return ""
    for run_output in data.get("outputs") or []:
        for component in run_output.get("outputs") or []:
            results = component.get("results") or {}
            message = results.get("message") or {}
            text = message.get("text")
            if isinstance(text, str) and text:
                return text
            artifact = (component.get("outputs") or {}).get("message") or {}
            text = artifact.get("message")
            if isinstance(text, str) and text:
                return text
            for msg in component.get("messages") or []:
                text = msg.get("message")
                if isinstance(text, str) and text:
                    return text
    return ""


class LangflowProvider(CompletionProvider):
    """Flow-orchestrated provider speaking the Langflow run API."""

    name = "langflow"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        flow_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._base_url = (base_url or config.LANGFLOW_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else config.LANGFLOW_API_KEY
        self._flow_id = flow_id or config.LANGFLOW_FLOW_ID
        self._timeout = timeout or config.HTTP_TIMEOUT

    @property
    def run_url(self) -> str:
        return f"{self._base_url}/api/v1/run/{self._flow_id}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    def _body(self, text: str, session: str) -> Dict[str, Any]:
        return {
            "input_value": text,
            "input_type": "chat",
            "output_type": "chat",
            "session_id": session,
        }

    def model_name(self, requested: Optional[str]) -> str:
        return "langflow"

    def build_input(self, messages: List[Dict[str, Any]], knowledge: str) -> str:
        return format_conversation(messages, knowledge)

    def follow_up(self, payload: str, response_text: str, function_result: str) -> str:
        return (
            f"{payload}\n\nAssistant: {response_text}"
            f"\n\nFunction Result: {function_result}"
            f"\n\nUser: {FOLLOW_UP_REQUEST}"
        )

    async def run(self, payload: str, *, session: str, model: str) -> str:
        timeout = httpx.Timeout(self._timeout, connect=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                r = await client.post(
                    self.run_url,
                    params={"stream": "false"},
                    headers=self._headers(),
                    json=self._body(payload, session),
                )
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"Langflow error: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Langflow error: invalid JSON response ({e})") from e
        if isinstance(data, dict) and data.get("detail") and not data.get("outputs"):
            raise ProviderError(f"Langflow error: {data['detail']}")
        return extract_chat_output_text(data)

    async def stream(self, payload: str, *, session: str, model: str) -> AsyncIterator[StreamEvent]:
        timeout = httpx.Timeout(self._timeout, connect=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                async with client.stream(
                    "POST",
                    self.run_url,
                    params={"stream": "true"},
                    headers=self._headers(),
                    json=self._body(payload, session),
                ) as r:
                    r.raise_for_status()
                    streamed = False
                    async for line in r.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            record = json.loads(line)
                        except json.JSONDecodeError:
                            logger.debug("skipping non-JSON Langflow stream line: %r", line[:200])
                            continue
                        kind = record.get("event")
                        data = record.get("data") or {}
                        if kind == "error":
                            raise ProviderError(f"Langflow error: {data.get('error') or data}")
                        if kind == "token":
                            chunk = data.get("chunk") or ""
                            streamed = streamed or bool(chunk)
                            yield StreamEvent("token", {"chunk": chunk})
                        elif kind == "end":
                            # flows whose model does not stream only deliver the answer here
                            text = "" if streamed else extract_chat_output_text(data.get("result") or {})
                            if text:
                                yield StreamEvent("message", {"chunk": text})
                            yield StreamEvent("end", data)
                            return
                        elif kind:
                            yield StreamEvent(kind, data)
        except httpx.HTTPError as e:
            raise ProviderError(f"Langflow error: {e}") from e
