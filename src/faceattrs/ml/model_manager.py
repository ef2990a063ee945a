"""Model sources: resolve, download, and open ONNX inference sessions.

Default models are looked up by registry name in the local models
directory and, when a Hugging Face repo is configured, downloaded on demand.
Callers may instead supply a file path or serialized model bytes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from faceattrs.errors import ModelNotFoundError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from faceattrs.config import Settings

logger = logging.getLogger(__name__)

ProviderConfig = str | tuple[str, dict[str, object]]
ModelSource = str | Path | bytes


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


class ModelTask(StrEnum):
    AGE_ESTIMATION = "age_estimation"
    GENDER_CLASSIFICATION = "gender_classification"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX model."""

    name: str
    filename: str
    task: ModelTask
    input_size: tuple[int, int]


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "age_efficientnet_b2": ModelSpec(
        name="age_efficientnet_b2",
        filename="age_efficientnet_b2.onnx",
        task=ModelTask.AGE_ESTIMATION,
        input_size=(224, 224),
    ),
    "gender_efficientnet_b2": ModelSpec(
        name="gender_efficientnet_b2",
        filename="gender_efficientnet_b2.onnx",
        task=ModelTask.GENDER_CLASSIFICATION,
        input_size=(224, 224),
    ),
}


def get_spec(model_name: str) -> ModelSpec:
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


# ---------------------------------------------------------------------------
# Resolution and session creation
# ---------------------------------------------------------------------------


def resolve_model_path(model_name: str, settings: Settings) -> Path:
    """Return a local path for a registry model, downloading it if needed."""
    spec = get_spec(model_name)
    models_dir = Path(settings.models_dir)
    local = models_dir / spec.filename
    if local.exists():
        return local

    if settings.models_repo_id is None:
        raise ModelNotFoundError(
            f"Model '{model_name}' not found at {local} and FACEATTRS_MODELS_REPO_ID is not set"
        )

    models_dir.mkdir(parents=True, exist_ok=True)
    downloaded = Path(
        hf_hub_download(
            repo_id=settings.models_repo_id,
            filename=spec.filename,
            local_dir=str(models_dir),
        )
    )
    logger.info("Downloaded %s to %s", model_name, downloaded)
    return downloaded


def build_providers(settings: Settings) -> list[ProviderConfig]:
    device = settings.device
    if device == "cuda":
        return [
            (
                "CUDAExecutionProvider",
                {
                    "device_id": 0,
                    "gpu_mem_limit": settings.gpu_mem_limit,
                    "arena_extend_strategy": "kSameAsRequested",
                },
            ),
            "CPUExecutionProvider",
        ]
    if device == "openvino":
        return [
            ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
            "CPUExecutionProvider",
        ]
    return ["CPUExecutionProvider"]


def build_session_options(settings: Settings) -> SessionOptions:
    opts = SessionOptions()
    opts.intra_op_num_threads = settings.intra_op_threads
    opts.inter_op_num_threads = settings.inter_op_threads
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.enable_mem_pattern = True
    opts.enable_mem_reuse = True

    if settings.device == "openvino":
        # OpenVINO does its own graph optimization
        from onnxruntime import GraphOptimizationLevel

        opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
    return opts


def _is_model_name(source: str) -> bool:
    # Bare names without a path separator or suffix refer to the registry.
    if source in MODEL_REGISTRY:
        return True
    path = Path(source)
    return not path.exists() and path.suffix == "" and len(path.parts) == 1


def create_session(
    source: ModelSource,
    settings: Settings,
    sess_options: SessionOptions | None = None,
    providers: Sequence[ProviderConfig] | None = None,
) -> InferenceSession:
    """Open an inference session.

    Args:
        source: A registry model name, a path to an ``.onnx`` file, or the
            serialized model bytes.
        settings: Supplies defaults for options, providers, and model lookup.
        sess_options: Passed to ONNX Runtime as-is, overriding the settings.
        providers: Passed to ONNX Runtime as-is, overriding the settings.

    Raises:
        KeyError: If ``source`` is a bare name that is not a registered model.
        ModelNotFoundError: If the model file cannot be found or downloaded.
    """
    if isinstance(source, bytes):
        model: str | bytes = source
    elif isinstance(source, str) and _is_model_name(source):
        model = str(resolve_model_path(source, settings))
    else:
        path = Path(source)
        if not path.exists():
            raise ModelNotFoundError(f"Model file not found: {path}")
        model = str(path)

    session = InferenceSession(
        model,
        sess_options=sess_options if sess_options is not None else build_session_options(settings),
        providers=list(providers) if providers is not None else build_providers(settings),
    )
    logger.info(
        "Loaded session for %s",
        source if not isinstance(source, bytes) else f"<{len(source)} bytes>",
    )
    return session
