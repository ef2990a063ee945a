"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import ExitStack, asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI

from faceattrs.api.routes import router
from faceattrs.config import get_settings
from faceattrs.ml.classifiers import age_estimator, gender_classifier
from faceattrs.ml.inference import ClassifierPool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load both classifiers on startup, release them on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting faceattrs (device=%s, max_concurrent=%s, age=%s, gender=%s)",
        settings.device,
        settings.max_concurrent,
        settings.age_model,
        settings.gender_model,
    )

    # Unwinds in reverse: pool shutdown first, then any classifier left open
    # by a failed startup.
    with ExitStack() as stack:
        age = stack.enter_context(
            age_estimator(settings.age_model, settings=settings, output_name=settings.age_output_name)
        )
        gender = stack.enter_context(
            gender_classifier(settings.gender_model, settings=settings, output_name=settings.gender_output_name)
        )
        pool = ClassifierPool(settings, {"age": age, "gender": gender})
        stack.callback(pool.shutdown)
        app.state.classifier_pool = pool

        logger.info("faceattrs ready")
        yield
        logger.info("Shutting down faceattrs")
    logger.info("faceattrs shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="faceattrs",
        description="Age and gender inference for pre-cropped face images",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.include_router(router)
    return application


app = create_app()
