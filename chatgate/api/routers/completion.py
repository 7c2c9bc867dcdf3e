import logging
from typing import AsyncIterator
from fastapi import APIRouter, HTTPException, Request, Depends
from fastapi.responses import StreamingResponse
from chatgate.schemas.chat import CompletionRequest, ChatCompletion
from chatgate.api.deps import get_completion_service
from chatgate.providers.base import ProviderError
from chatgate.services.completion_service import CompletionService
from chatgate.services.formatter import encode_sse
from chatgate.services.streaming import StreamNormalizer

router = APIRouter(prefix="/chat", tags=["chat"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


@router.post("/completion", response_model=ChatCompletion)
async def completion(
    req: CompletionRequest,
    request: Request,
    service: CompletionService = Depends(get_completion_service),
):
    # Non-stream path
    if not req.stream:
        try:
            return await service.complete(req)
        except ProviderError as e:
            logger.exception("completion failed")
            raise HTTPException(status_code=502, detail=str(e))

    # Stream path
    try:
        normalizer = await service.stream(req)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))

    async def streamer() -> AsyncIterator[str]:
        try:
            async for frame in normalizer:
                if await request.is_disconnected():
                    logger.info("client disconnected, stopping stream %s", normalizer.session)
                    break
                yield frame
        except ProviderError as e:
            # headers are already sent: signal the failure in-band and end without [DONE]
            logger.exception("streaming error occurred: %s", e)
            yield encode_sse({"error": {"message": str(e)}})
        finally:
            await normalizer.aclose()

    headers = dict(SSE_HEADERS, **{"X-Session-Id": normalizer.session})
    return StreamingResponse(streamer(), media_type="text/event-stream", headers=headers)
