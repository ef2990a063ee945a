"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from faceattrs.api.middleware import verify_api_key
from faceattrs.api.schemas import (
    AgeResponse,
    ErrorResponse,
    GenderResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
)
from faceattrs.errors import InferenceError, InvalidInputShape, UseAfterDispose
from faceattrs.ml.classifiers import GENDER_LABELS
from faceattrs.ml.model_manager import MODEL_REGISTRY
from faceattrs.ml.planes import decode_image

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from faceattrs.config import Settings
    from faceattrs.ml.inference import ClassifierPool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_pool(request: Request) -> ClassifierPool:
    pool: ClassifierPool = request.app.state.classifier_pool
    return pool


def _softmax(scores: NDArray[np.float32]) -> NDArray[np.float32]:
    exp = np.exp(scores - scores.max())
    return exp / exp.sum()


async def _forward_upload(request: Request, file: UploadFile, name: str) -> NDArray[np.float32]:
    settings = _get_settings(request)
    pool = _get_pool(request)
    try:
        pool.get(name)
    except (KeyError, UseAfterDispose) as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{name} model not loaded") from exc

    payload = await file.read()
    if len(payload) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )
    try:
        image = decode_image(payload, settings.max_image_pixels)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        return await pool.forward(name, image)
    except InvalidInputShape as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except InferenceError as exc:
        logger.exception("%s inference failed", name)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except (TimeoutError, UseAfterDispose) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inference unavailable, try again later",
        ) from exc


@router.post(
    "/estimate-age",
    response_model=AgeResponse,
    responses=_ERROR_RESPONSES,
    summary="Estimate the age of a cropped face",
)
async def estimate_age(request: Request, file: UploadFile) -> AgeResponse:
    """Run the age model on an uploaded, pre-cropped face image."""
    vector = await _forward_upload(request, file, "age")
    if vector.size == 0:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Age model returned no values")
    return AgeResponse(age=float(vector[0]), vector=vector.tolist())


@router.post(
    "/classify-gender",
    response_model=GenderResponse,
    responses=_ERROR_RESPONSES,
    summary="Classify the gender of a cropped face",
)
async def classify_gender(request: Request, file: UploadFile) -> GenderResponse:
    """Run the gender model on an uploaded, pre-cropped face image."""
    scores = await _forward_upload(request, file, "gender")
    labels = list(GENDER_LABELS)
    if scores.size != len(labels):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Gender model returned {scores.size} scores for {len(labels)} labels",
        )
    return GenderResponse(
        label=labels[int(np.argmax(scores))],
        labels=labels,
        scores=scores.tolist(),
        probabilities=_softmax(scores).tolist(),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_pool(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=pool.loaded_models,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return registered models and whether they are in use."""
    settings = _get_settings(request)
    active_models = {settings.age_model, settings.gender_model}

    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                task=spec.task,
                status="active" if spec.name in active_models else "available",
                input_size=list(spec.input_size),
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
