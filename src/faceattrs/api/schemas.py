"""Pydantic response schemas for the faceattrs API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AgeResponse(BaseModel):
    """Age estimate for a single face crop."""

    age: float = Field(description="First value of the age model's output vector")
    vector: list[float] = Field(description="Raw output vector of the age model")


class GenderResponse(BaseModel):
    """Gender scores for a single face crop."""

    label: str = Field(description="Label with the highest score")
    labels: list[str] = Field(description="Label for each score index")
    scores: list[float] = Field(description="Raw per-class scores, aligned with labels")
    probabilities: list[float] = Field(description="Softmax of scores")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task: 'age_estimation' or 'gender_classification'")
    status: str = Field(description="Model status: 'active' or 'available'")
    input_size: list[int] = Field(description="Model input size as [height, width]")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
