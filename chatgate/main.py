# chatgate/main.py
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from chatgate.core import config
from chatgate.api.routers.health import router as health_router
from chatgate.api.routers.completion import router as completion_router
from chatgate.providers.base import CompletionProvider
from chatgate.providers.factory import select_provider
from chatgate.services.capabilities import CapabilityRegistry
from chatgate.services.completion_service import CompletionService
from chatgate.services.interceptor import FunctionCallInterceptor
from chatgate.services.knowledge import get_background_knowledge
from chatgate.services.sessions import SessionStore

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid request body: " + "; ".join(parts)


def _install_error_handlers(app: FastAPI) -> None:
    # every failure leaves as {"error": message}

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Chat completion error")
        return JSONResponse(status_code=500, content={"error": str(exc)})


def create_app(
    *,
    provider: Optional[CompletionProvider] = None,
    capabilities: Optional[CapabilityRegistry] = None,
    knowledge: Callable[[], str] = get_background_knowledge,
    chunk_delay_ms: Optional[int] = None,
) -> FastAPI:
    logging.basicConfig(level=config.LOG_LEVEL)
    app = FastAPI(title="chatgate", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app)

    # one session store and one service per process, reached through Depends() in the routers
    app.state.session_store = SessionStore(
        ttl_seconds=config.SESSION_TTL_MIN * 60,
        max_entries=config.SESSION_MAX_ENTRIES,
    )
    app.state.capabilities = capabilities or CapabilityRegistry()
    app.state.completion_service = CompletionService(
        provider=provider or select_provider(),
        sessions=app.state.session_store,
        interceptor=FunctionCallInterceptor(app.state.capabilities),
        knowledge=knowledge,
        chunk_delay_ms=chunk_delay_ms,
    )

    # Routers
    app.include_router(health_router)
    app.include_router(completion_router)

    return app


app = create_app()
