"""Exception hierarchy for face-attribute inference."""

from __future__ import annotations


class FaceAttrsError(Exception):
    """Base class for all faceattrs errors."""


class InvalidInputShape(FaceAttrsError, ValueError):  # noqa: N818
    """Raised when image planes have the wrong count or geometry."""


class InferenceError(FaceAttrsError, RuntimeError):
    """Raised when the model rejects the bound tensor, shape, or input name."""


class UseAfterDispose(FaceAttrsError, RuntimeError):  # noqa: N818
    """Raised when a closed classifier is used."""


class ModelNotFoundError(FaceAttrsError, FileNotFoundError):
    """Raised when a model file cannot be found locally or downloaded."""
