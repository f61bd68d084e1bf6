from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from src.api.routes.contacts import router as contacts_router
from src.api.routes.goals import router as goals_router
from src.api.routes.meetings import router as meetings_router
from src.api.routes.tasks import router as tasks_router
from src.config import settings
from src.db.database import get_session_factory, init_db
from src.extraction.orchestrator import ExtractionOrchestrator
from src.extraction.queue import ExtractionQueue
from src.llm.gateway import build_gateway

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    session_factory: sessionmaker[Session] | None = None,
    orchestrator: ExtractionOrchestrator | None = None,
) -> FastAPI:
    """Build the API app around a session factory and an extraction orchestrator.

    Both default to the ones described by ``settings``; tests pass their own.
    """
    session_factory = session_factory or get_session_factory()
    if orchestrator is None:
        orchestrator = ExtractionOrchestrator.from_gateway(session_factory, build_gateway())
    if not orchestrator.configured:
        logger.warning("No LLM provider configured; meetings will be stored but not extracted")

    queue = ExtractionQueue(
        orchestrator.run,
        workers=settings.extraction_workers,
        maxsize=settings.extraction_queue_size,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_db(session_factory.kw["bind"])
        await queue.start()
        try:
            yield
        finally:
            await queue.stop()

    app = FastAPI(
        title="Meeting Task Tracker API",
        description="Turns meeting transcripts into goal-scoped, assigned tasks",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.extraction_queue = queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_origin_regex=r"https://.*\.vercel\.app|http://localhost:\d+",
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(meetings_router)
    app.include_router(contacts_router)
    app.include_router(goals_router)
    app.include_router(tasks_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.api.main:app", host=settings.api_host, port=settings.api_port)
