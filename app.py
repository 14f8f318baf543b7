from __future__ import annotations

import contextlib
import logging
import time

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_hub import ChatHub
from persistence.errors import AlreadyLockedError, MalformedError, StoreError, StoreIOError, UnlockedError
from persistence.paths import database_dir
from persistence.repositories import DiskChatRepository, DispatcherClosed
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def register_error_handlers(app: FastAPI) -> None:
    """Map store failures to HTTP responses."""

    def _error(status_code: int, exc: Exception, kind: str) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"error": str(exc), "type": kind})

    @app.exception_handler(DispatcherClosed)
    async def handle_closed(request: Request, exc: DispatcherClosed) -> JSONResponse:
        return _error(503, exc, "store_unavailable")

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
        kinds = {
            StoreIOError: "io",
            MalformedError: "malformed",
            UnlockedError: "unlocked",
            AlreadyLockedError: "already_locked",
        }
        logger.error("STORE ERROR on %s %s: %r", request.method, request.url.path, exc)
        return _error(500, exc, kinds.get(type(exc), "store_error"))


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    repository = DiskChatRepository(database_dir(settings.database_path))
    await repository.start()
    app.state.repository = repository
    app.state.hub = ChatHub(settings.chat_buffer_size)
    try:
        yield
    finally:
        await repository.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    load_dotenv("local.env")
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    from endpoints.auth_endpoints import router as auth_router
    from endpoints.chat_endpoints import router as chat_router
    from endpoints.user_endpoints import router as user_router

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.debug_log_requests:

        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
            return response

    register_error_handlers(app)

    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(chat_router)

    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
