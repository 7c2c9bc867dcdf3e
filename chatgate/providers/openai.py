import json
from abc import abstractmethod
import logging
import httpx
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from chatgate.providers.base import CompletionProvider, ProviderError, StreamEvent
from chatgate.services.prompt import build_chat_messages, system_message
from chatgate.core import config

logger = logging.getLogger(__name__)

FOLLOW_UP_REQUEST = "Please provide a response based on the function result."


async def _iter_sse(response: httpx.Response) -> AsyncIterator[Tuple[Optional[str], str]]:
    # yields (event name, data) pairs; multi-line data fields are joined
    event: Optional[str] = None
    data_lines: List[str] = []
    async for line in response.aiter_lines():
        if not line:
            if data_lines:
                yield event, "\n".join(data_lines)
            event, data_lines = None, []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("event:"):
            event = line[6:].strip()
        elif line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
    if data_lines:
        yield event, "\n".join(data_lines)


class _OpenAIProvider(CompletionProvider):
    endpoint = ""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self._base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self._default_model = default_model or config.OPENAI_MODEL
        self._timeout = timeout or config.HTTP_TIMEOUT

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self.endpoint}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def model_name(self, requested: Optional[str]) -> str:
        return requested or self._default_model

    @abstractmethod
    def _body(self, payload: Any, model: str, stream: bool) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _extract_text(self, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    def _to_event(self, event: Optional[str], data: str) -> Optional[StreamEvent]:
        ...

    async def run(self, payload: Any, *, session: str, model: str) -> str:
        timeout = httpx.Timeout(self._timeout, connect=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                r = await client.post(self.url, headers=self._headers(), json=self._body(payload, model, False))
                if r.status_code >= 400:
                    logger.warning("OpenAI API error %s: %s", r.status_code, r.text[:500])
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI error: {e}") from e
        except ValueError as e:
            raise ProviderError(f"OpenAI error: invalid JSON response ({e})") from e
        err = data.get("error")
        if err:
            message = err.get("message") if isinstance(err, dict) else err
            raise ProviderError(f"OpenAI error: {message}")
        return self._extract_text(data)

    async def stream(self, payload: Any, *, session: str, model: str) -> AsyncIterator[StreamEvent]:
        timeout = httpx.Timeout(self._timeout, connect=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                async with client.stream(
                    "POST", self.url, headers=self._headers(), json=self._body(payload, model, True)
                ) as r:
                    r.raise_for_status()
                    async for event, data in _iter_sse(r):
                        ev = self._to_event(event, data)
                        if ev is None:
                            continue
                        yield ev
                        if ev.kind == "end":
                            return
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI error: {e}") from e
        # server closed without an explicit terminator
        yield StreamEvent("end")


class OpenAIChatProvider(_OpenAIProvider):
    """Direct chat-completions provider."""

    name = "openai-chat"
    endpoint = "chat/completions"

    def build_input(self, messages: List[Dict[str, Any]], knowledge: str) -> List[Dict[str, Any]]:
        return build_chat_messages(messages, knowledge)

    def follow_up(self, payload: List[Dict[str, Any]], response_text: str, function_result: str) -> List[Dict[str, Any]]:
        return payload + [
            {"role": "assistant", "content": response_text},
            {"role": "user", "content": f"Function Result: {function_result}\n\n{FOLLOW_UP_REQUEST}"},
        ]

    def _body(self, payload: List[Dict[str, Any]], model: str, stream: bool) -> Dict[str, Any]:
        return {"model": model, "messages": payload, "stream": stream}

    def _extract_text(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        content = (choices[0].get("message") or {}).get("content")
        return content if isinstance(content, str) else ""

    def _to_event(self, event: Optional[str], data: str) -> Optional[StreamEvent]:
        if data == "[DONE]":
            return StreamEvent("end")
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            return None
        if parsed.get("error"):
            err = parsed["error"]
            raise ProviderError(f"OpenAI error: {err.get('message') if isinstance(err, dict) else err}")
        text = ""
        for choice in parsed.get("choices") or []:
            content = (choice.get("delta") or {}).get("content")
            if content:
                text += content
        if not text:
            return None
        return StreamEvent("token", {"chunk": text})


class OpenAIResponsesProvider(_OpenAIProvider):
    """Provider for the "responses" style completion API."""

    name = "openai-responses"
    endpoint = "responses"

    def build_input(self, messages: List[Dict[str, Any]], knowledge: str) -> Dict[str, Any]:
        items = []
        for msg in messages:
            role = msg.get("role")
            content = msg.get("content") or ""
            if role == "function":
                # no function role in this API, surface it as context for the model
                items.append({"role": "user", "content": f"Function ({msg.get('name') or ''}): {content}"})
            else:
                items.append({"role": role, "content": content})
        return {"instructions": system_message(knowledge), "input": items}

    def follow_up(self, payload: Dict[str, Any], response_text: str, function_result: str) -> Dict[str, Any]:
        return {
            "instructions": payload["instructions"],
            "input": payload["input"] + [
                {"role": "assistant", "content": response_text},
                {"role": "user", "content": f"Function Result: {function_result}\n\n{FOLLOW_UP_REQUEST}"},
            ],
        }

    def _body(self, payload: Dict[str, Any], model: str, stream: bool) -> Dict[str, Any]:
        return {
            "model": model,
            "instructions": payload["instructions"],
            "input": payload["input"],
            "stream": stream,
        }

    def _extract_text(self, data: Dict[str, Any]) -> str:
        if isinstance(data.get("output_text"), str):
            return data["output_text"]
        parts: List[str] = []
        for item in data.get("output") or []:
            if item.get("type") != "message":
                continue
            for content in item.get("content") or []:
                if content.get("type") == "output_text" and isinstance(content.get("text"), str):
                    parts.append(content["text"])
        return "".join(parts)

    def _to_event(self, event: Optional[str], data: str) -> Optional[StreamEvent]:
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            return None
        kind = parsed.get("type") or event
        if kind == "response.output_text.delta":
            delta = parsed.get("delta") or ""
            return StreamEvent("token", {"chunk": delta}) if delta else None
        if kind == "response.completed":
            return StreamEvent("end", parsed.get("response") or {})
        if kind in ("error", "response.failed"):
            err = parsed.get("error") or (parsed.get("response") or {}).get("error") or parsed
            raise ProviderError(f"OpenAI error: {err.get('message') if isinstance(err, dict) else err}")
        return None
