"""
Turns a provider's output into one ordered sequence of SSE chunk frames.

    IDLE -> NATIVE_ATTEMPT -> NATIVE_STREAMING | FALLBACK_SIMULATED
         -> FUNCTION_OVERLAY -> FINALIZING -> DONE        (ERRORED from anywhere)

The native/fallback decision is taken once, when the provider stream is opened:
if it raises before yielding its first event we simulate streaming from the full
text instead. Any later provider failure ends the stream with a ProviderError.
Every path ends with exactly one stop chunk followed by the [DONE] frame.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, List, Optional

from chatgate.providers.base import CompletionProvider, ProviderError, StreamEvent
from chatgate.schemas.chat import RequestContext
from chatgate.services.formatter import DONE_FRAME, EMPTY_RESPONSE_TEXT, encode_sse, format_chunk
from chatgate.services.interceptor import FunctionCallInterceptor

logger = logging.getLogger(__name__)

FUNCTION_RESULT_PREFIX = "\n\nBased on the function result: "


class StreamState(str, Enum):
    IDLE = "idle"
    NATIVE_ATTEMPT = "native_attempt"
    NATIVE_STREAMING = "native_streaming"
    FALLBACK_SIMULATED = "fallback_simulated"
    FUNCTION_OVERLAY = "function_overlay"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


def word_deltas(text: str) -> List[str]:
    # split on single spaces so the deltas join back to exactly `text`
    words = text.split(" ")
    deltas = [w + (" " if i < len(words) - 1 else "") for i, w in enumerate(words)]
    return [d for d in deltas if d]


class Pacer:
    """Cancellable delay between simulated chunks."""

    def __init__(self, delay_seconds: float) -> None:
        self.delay = max(0.0, delay_seconds)
        self._pending: Optional[asyncio.Future] = None

    async def wait(self) -> None:
        if self.delay <= 0:
            return
        self._pending = asyncio.ensure_future(asyncio.sleep(self.delay))
        try:
            await self._pending
        finally:
            self._pending = None

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()


class StreamNormalizer:
    def __init__(
        self,
        provider: CompletionProvider,
        payload: Any,
        *,
        session: str,
        model: str,
        user_text: str,
        ctx: RequestContext,
        interceptor: FunctionCallInterceptor,
        pacer: Pacer,
    ) -> None:
        self.provider = provider
        self.payload = payload
        self.session = session
        self.model = model
        self.user_text = user_text
        self.ctx = ctx
        self.interceptor = interceptor
        self.pacer = pacer
        self.state = StreamState.IDLE
        self.history: List[StreamState] = [StreamState.IDLE]
        self.function_result: Optional[str] = None
        self._parts: List[str] = []
        self._events: Optional[AsyncIterator[StreamEvent]] = None
        self._frames: Optional[AsyncIterator[str]] = None

    @property
    def response_text(self) -> str:
        return "".join(self._parts)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._frames is not None:
            raise RuntimeError("stream already consumed")
        self._frames = self._run()
        return self._frames

    async def aclose(self) -> None:
        # consumer went away: abandon pending pacing and release the provider stream
        self.pacer.cancel()
        if self._frames is not None:
            await self._frames.aclose()  # type: ignore[attr-defined]
        await self._close_events()

    def _enter(self, state: StreamState) -> None:
        logger.debug("stream %s: %s -> %s", self.session, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _chunk(self, content: Optional[str] = None, finish_reason: Optional[str] = None) -> str:
        return encode_sse(format_chunk(self.session, self.model, content, finish_reason))

    async def _close_events(self) -> None:
        events, self._events = self._events, None
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

    async def _run(self) -> AsyncIterator[str]:
        try:
            self._enter(StreamState.NATIVE_ATTEMPT)
            native, first = await self._open_native()
            if native:
                self._enter(StreamState.NATIVE_STREAMING)
                async for frame in self._stream_native(first):
                    yield frame
            else:
                self._enter(StreamState.FALLBACK_SIMULATED)
                async for frame in self._stream_simulated():
                    yield frame

            self._enter(StreamState.FUNCTION_OVERLAY)
            async for frame in self._function_overlay():
                yield frame

            self._enter(StreamState.FINALIZING)
            yield self._chunk(finish_reason="stop")
            yield DONE_FRAME
            self._enter(StreamState.DONE)
        except ProviderError:
            self._enter(StreamState.ERRORED)
            raise
        except Exception as e:
            self._enter(StreamState.ERRORED)
            raise ProviderError(f"Streaming error: {e}") from e
        finally:
            self.pacer.cancel()
            await self._close_events()

    async def _open_native(self):
        self._events = self.provider.stream(self.payload, session=self.session, model=self.model)
        try:
            first = await self._events.__anext__()
        except StopAsyncIteration:
            return True, None
        except Exception as e:
            # designed degrade path, not a failure
            logger.info("native streaming unavailable for %s (%s), simulating", self.provider.name, e)
            await self._close_events()
            return False, None
        return True, first

    async def _stream_native(self, first: Optional[StreamEvent]) -> AsyncIterator[str]:
        event = first
        while event is not None:
            if event.kind == "end":
                break
            if event.kind == "token" and event.text:
                self._parts.append(event.text)
                yield self._chunk(event.text)
            elif event.kind == "message" and event.text:
                self._parts.append(event.text)
                async for frame in self._stream_words(event.text):
                    yield frame
            try:
                event = await self._events.__anext__()
            except StopAsyncIteration:
                break
        await self._close_events()
        if not self._parts:
            # same placeholder the non-streaming path returns for an empty answer
            self._parts.append(EMPTY_RESPONSE_TEXT)
            async for frame in self._stream_words(EMPTY_RESPONSE_TEXT):
                yield frame

    async def _stream_words(self, text: str) -> AsyncIterator[str]:
        for i, delta in enumerate(word_deltas(text)):
            if i:
                await self.pacer.wait()
            yield self._chunk(delta)

    async def _stream_simulated(self) -> AsyncIterator[str]:
        text = await self.provider.run(self.payload, session=self.session, model=self.model)
        text = text or EMPTY_RESPONSE_TEXT
        self._parts.append(text)
        async for frame in self._stream_words(text):
            yield frame

    async def _function_overlay(self) -> AsyncIterator[str]:
        response = self.response_text
        if not self.interceptor.detect_intent(response, self.user_text):
            return
        result = await self.interceptor.attempt(response, self.user_text, self.ctx)
        if not result:
            return
        self.function_result = result
        await self.pacer.wait()
        async for frame in self._stream_words(FUNCTION_RESULT_PREFIX + result):
            yield frame
