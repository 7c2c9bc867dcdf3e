# let's us swap/add providers without touching endpoint logic (langflow/openai chat/openai responses)
# declares the abstract provider contract that the completion service and the stream normalizer drive

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional


class ProviderError(Exception):
    pass


@dataclass
class StreamEvent:
    kind: str  # "token" | "message" (whole text, sent word by word) | "end" | provider specific extras
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        chunk = self.data.get("chunk")
        return chunk if isinstance(chunk, str) else ""


class CompletionProvider(ABC):
    """Backend able to turn a conversation into a completion.

    `build_input` produces whatever payload the backend consumes (flattened
    text for flows, a message list for direct completion). `run` returns the
    finished text, `stream` yields StreamEvent objects and may raise before
    the first event when the backend cannot stream.
    """

    name: str = ""

    def model_name(self, requested: Optional[str]) -> str:
        return requested or self.name

    @abstractmethod
    def build_input(self, messages: List[Dict[str, Any]], knowledge: str) -> Any:
        ...

    @abstractmethod
    def follow_up(self, payload: Any, response_text: str, function_result: str) -> Any:
        ...

    @abstractmethod
    async def run(self, payload: Any, *, session: str, model: str) -> str:
        ...

    @abstractmethod
    def stream(self, payload: Any, *, session: str, model: str) -> AsyncIterator[StreamEvent]:
        ...
