import logging
from typing import Any, Callable, Dict, List, Optional

from chatgate.core import config
from chatgate.providers.base import CompletionProvider
from chatgate.schemas.chat import CompletionRequest, RequestContext
from chatgate.services.formatter import EMPTY_RESPONSE_TEXT, format_completion
from chatgate.services.interceptor import FunctionCallInterceptor
from chatgate.services.knowledge import get_background_knowledge
from chatgate.services.prompt import last_user_message
from chatgate.services.sessions import SessionStore
from chatgate.services.streaming import Pacer, StreamNormalizer

logger = logging.getLogger(__name__)


class CompletionService:
    """Runs one chat-completion request against the configured provider."""

    def __init__(
        self,
        *,
        provider: CompletionProvider,
        sessions: SessionStore,
        interceptor: FunctionCallInterceptor,
        knowledge: Callable[[], str] = get_background_knowledge,
        chunk_delay_ms: Optional[int] = None,
    ) -> None:
        self.provider = provider
        self.sessions = sessions
        self.interceptor = interceptor
        self.knowledge = knowledge
        self.chunk_delay_ms = config.STREAM_CHUNK_DELAY_MS if chunk_delay_ms is None else chunk_delay_ms

    async def _prepare(self, req: CompletionRequest):
        messages: List[Dict[str, Any]] = [m.model_dump(exclude_none=True) for m in req.messages]
        ctx = RequestContext(app_id=req.app_id, channel=req.channel, user_id=req.user_id)
        session = await self.sessions.resolve(ctx)
        payload = self.provider.build_input(messages, self.knowledge())
        return ctx, session, payload, last_user_message(messages)

    async def complete(self, req: CompletionRequest) -> Dict[str, Any]:
        ctx, session, payload, user_text = await self._prepare(req)
        model = self.provider.model_name(req.model)
        logger.info("completion via %s (stream=False, session=%s)", self.provider.name, session)

        text = await self.provider.run(payload, session=session, model=model)
        if not text:
            logger.info("empty response from %s, using placeholder", self.provider.name)
            text = EMPTY_RESPONSE_TEXT

        if self.interceptor.detect_intent(text, user_text):
            result = await self.interceptor.attempt(text, user_text, ctx)
            if result:
                follow_up = self.provider.follow_up(payload, text, result)
                final = await self.provider.run(follow_up, session=session, model=model)
                text = final or text

        return format_completion(text, session, model)

    async def stream(self, req: CompletionRequest) -> StreamNormalizer:
        ctx, session, payload, user_text = await self._prepare(req)
        model = self.provider.model_name(req.model)
        logger.info("completion via %s (stream=True, session=%s)", self.provider.name, session)
        return StreamNormalizer(
            self.provider,
            payload,
            session=session,
            model=model,
            user_text=user_text,
            ctx=ctx,
            interceptor=self.interceptor,
            pacer=Pacer(self.chunk_delay_ms / 1000.0),
        )
