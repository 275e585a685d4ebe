from fastapi import FastAPI
from contextlib import asynccontextmanager
from flashgen.core.config import settings
from flashgen.apis.auth.main import router as auth_router
from flashgen.apis.categories.main import router as categories_router
from flashgen.apis.flashcards.main import router as flashcards_router
from flashgen.apis.generations.main import router as generations_router

import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from flashgen.core.db.base import async_session_maker
from flashgen.core.events import GenerationEvents
from flashgen.core.handlers import register_exception_handlers
from flashgen.core.logging import get_logger, setup_logging
from flashgen.core.middlewares import RequestContextMiddleware
from flashgen.core.task_queue import GenerationQueue

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    events = GenerationEvents()
    queue = GenerationQueue(
        session_factory=async_session_maker,
        events=events,
        concurrency=settings.generation.queue_concurrency,
    )
    app.state.generation_events = events
    app.state.generation_queue = queue
    queue.start()
    try:
        yield
    finally:
        await queue.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app.name, version=settings.app.version, lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Location", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(categories_router)
    app.include_router(flashcards_router)
    app.include_router(generations_router)

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "app": settings.app.name,
            "version": settings.app.version,
        }

    return app


app = create_app()


if __name__ == "__main__":
    try:
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.app.port,
            reload=not settings.app.is_production,
        )
    except Exception as e:
        logger.error(f"An error occurred when starting the server: {e}.")
