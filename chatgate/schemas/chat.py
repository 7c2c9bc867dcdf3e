from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional

from chatgate.core import config

Role = Literal["system", "user", "assistant", "function"]


class Message(BaseModel):
    role: Role
    content: Optional[str] = None
    name: Optional[str] = None


class CompletionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    messages: List[Message]
    model: Optional[str] = None
    stream: bool = False
    channel: str = Field(default_factory=lambda: config.DEFAULT_CHANNEL)
    user_id: str = Field(default_factory=lambda: config.DEFAULT_USER_ID, alias="userId")
    app_id: str = Field(min_length=1, alias="appId")


class RequestContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    app_id: str
    channel: str
    user_id: str


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionMessage(BaseModel):
    role: str = "assistant"
    content: str


class CompletionChoice(BaseModel):
    index: int = 0
    message: CompletionMessage
    finish_reason: str = "stop"


class ChunkChoice(BaseModel):
    index: int = 0
    delta: Dict[str, str] = Field(default_factory=dict)
    finish_reason: Optional[str] = None


class ChatCompletion(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[CompletionChoice]
    usage: Usage = Field(default_factory=Usage)


class ChatCompletionChunk(BaseModel):
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChunkChoice]
    usage: Usage = Field(default_factory=Usage)
