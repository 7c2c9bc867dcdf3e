# wraps provider text into the chat-completion envelopes clients expect
# token usage is always zero, flow providers don't report it and we don't invent it

import json
import time
from typing import Any, Dict, Optional

from chatgate.schemas.chat import (
    ChatCompletion,
    ChatCompletionChunk,
    ChunkChoice,
    CompletionChoice,
    CompletionMessage,
)

DONE_FRAME = "data: [DONE]\n\n"
EMPTY_RESPONSE_TEXT = "I received your message but could not generate a proper response."


def completion_id(session: str) -> str:
    return f"chatcmpl-{session}"


def format_completion(text: str, session: str, model: str) -> Dict[str, Any]:
    return ChatCompletion(
        id=completion_id(session),
        created=int(time.time()),
        model=model,
        choices=[CompletionChoice(message=CompletionMessage(content=text))],
    ).model_dump()


def format_chunk(
    session: str,
    model: str,
    content: Optional[str] = None,
    finish_reason: Optional[str] = None,
) -> Dict[str, Any]:
    delta = {"content": content} if content is not None else {}
    return ChatCompletionChunk(
        id=completion_id(session),
        created=int(time.time()),
        model=model,
        choices=[ChunkChoice(delta=delta, finish_reason=finish_reason)],
    ).model_dump()


def encode_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
