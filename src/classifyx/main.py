"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from classifyx.config import Settings

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classifyx.api.routes import router
from classifyx.config import get_settings
from classifyx.ml.image_classifier import Classifier
from classifyx.ml.normalization import NAMED_PROFILES
from classifyx.ml.runtime import RuntimeContext

logger = logging.getLogger(__name__)


def open_classifier(settings: Settings, context: RuntimeContext) -> Classifier | None:
    """Open the configured model, or return None when no model is configured.

    Raises:
        ModelLoadError: If a model is configured but cannot be loaded.
        UnsupportedModelShape: If the model input is not a single image tensor.
    """
    if settings.model_path is None and settings.model_repo_id is None:
        logger.warning("No model configured; set CLASSIFYX_MODEL_PATH or CLASSIFYX_MODEL_REPO_ID")
        return None

    model_path, labels_path = context.ensure_model(settings)
    profile = NAMED_PROFILES[settings.normalization] if settings.normalization is not None else None
    return Classifier.open(model_path, labels_path, context=context, profile=profile)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the model on startup, release it on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting ClassifyX (model=%s, repo=%s, normalization=%s)",
        settings.model_path,
        settings.model_repo_id,
        settings.normalization or "auto",
    )

    context = RuntimeContext.from_settings(settings)
    classifier = open_classifier(settings, context)
    app.state.classifier = classifier

    logger.info("ClassifyX ready")
    yield

    logger.info("Shutting down ClassifyX")
    if classifier is not None:
        classifier.close()
    context.close()
    logger.info("ClassifyX shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="ClassifyX",
        description="Single-image ONNX classification API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "classifyx.main:app",
        host=settings.host,
        port=settings.port,
        log_level="info",
        reload=False,
    )
