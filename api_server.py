from __future__ import annotations  # FastAPI server exposing the assessment engine

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agents.bindings import bind_from_path
from api.routes import router
from config.registry import ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY, is_bound
from config.settings import settings
from storage.migrate import migrate


logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent


def _config_path() -> Path:
    path = Path(settings.APP_CONFIG_PATH)
    return path if path.is_absolute() else BASE_DIR / path


def create_app(*, bind_models: bool = True, config_path: Optional[Path] = None) -> FastAPI:
    """Build the API app; startup applies migrations and binds the evaluator routes."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        migrate(settings.DB_PATH)
        if bind_models:
            path = config_path or _config_path()
            bound = bind_from_path(path)
            logger.info("Evaluator routes bound from %s: %s", path, ", ".join(sorted(bound)))
        for key in (ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY):
            if not is_bound(key):
                logger.warning("No evaluator bound for %s", key)
        yield

    app = FastAPI(title="Situational Judgement Assessment API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
