# api/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.chats import router as chats_router
from core.config import Settings, load_settings
from core.errors import ChatError, RequestValidationFailed
from core.logging_setup import configure_logging
from core.orchestrator import ChatOrchestrator
from db.init_db import init_db
from db.session import make_engine, make_session_factory
from db.store import ChatStore
from llm.provider import CompletionProvider, OllamaCompletionProvider

logger = logging.getLogger(__name__)


async def _chat_error_handler(request: Request, exc: ChatError):
    content = {"detail": exc.detail}
    if isinstance(exc, RequestValidationFailed) and exc.errors:
        content["errors"] = exc.errors
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=content)


def health():
    return {"ok": True}


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ChatStore] = None,
    provider: Optional[CompletionProvider] = None,
) -> FastAPI:
    """Build the API. ``store`` and ``provider`` default to the configured
    SQL database and Ollama server."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    engine = None
    if store is None:
        engine = make_engine(settings.database_url)
        store = ChatStore(make_session_factory(engine))
    if provider is None:
        provider = OllamaCompletionProvider.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            init_db(engine)
        logger.info("Chat API ready (model=%s)", settings.chat_model)
        yield
        if engine is not None:
            engine.dispose()

    app = FastAPI(title="Chat Completion API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatError, _chat_error_handler)

    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = ChatOrchestrator(store, provider, fragment_timeout=settings.completion_timeout)

    app.include_router(chats_router)
    app.add_api_route("/health", health, methods=["GET"])
    return app


app = create_app()
