"""Face attribute classifiers: age estimation and gender classification.

Both variants run the same pipeline (BGR planes -> normalized NCHW tensor ->
one ONNX forward pass -> flat output vector) and differ only in the model
they load and in what the output vector means:

* ``AGE``: raw regression value(s), no softmax.
* ``GENDER``: one score per entry of ``GENDER_LABELS``. Scores are not
  normalized; callers apply softmax or argmax themselves.

Usage::

    with gender_classifier() as classifier:
        scores = classifier.forward(planes)
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING

from faceattrs.config import get_settings
from faceattrs.errors import UseAfterDispose
from faceattrs.ml.invoker import resolve_output_index, run
from faceattrs.ml.model_manager import MODEL_REGISTRY, ModelTask, create_session
from faceattrs.ml.planes import split_planes
from faceattrs.ml.preprocessing import DEFAULT_INPUT_SIZE, prepare

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    import numpy as np
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession, SessionOptions

    from faceattrs.config import Settings
    from faceattrs.ml.model_manager import ModelSource, ProviderConfig
    from faceattrs.ml.planes import ColorOrder

logger = logging.getLogger(__name__)

GENDER_LABELS: tuple[str, ...] = ("Male", "Female")


@dataclass(frozen=True)
class AttributeVariant:
    """One member of the closed set of face attributes."""

    name: str
    task: ModelTask
    default_model: str
    labels: tuple[str, ...] = ()


AGE = AttributeVariant(
    name="age",
    task=ModelTask.AGE_ESTIMATION,
    default_model="age_efficientnet_b2",
)
GENDER = AttributeVariant(
    name="gender",
    task=ModelTask.GENDER_CLASSIFICATION,
    default_model="gender_efficientnet_b2",
    labels=GENDER_LABELS,
)


def _report_unclosed(name: str) -> None:
    logger.warning("%s classifier was garbage collected without close()", name)


class FaceAttributeClassifier:
    """Owns one inference session and runs the shared attribute pipeline."""

    def __init__(
        self,
        variant: AttributeVariant,
        model: ModelSource | None = None,
        *,
        settings: Settings | None = None,
        sess_options: SessionOptions | None = None,
        providers: Sequence[ProviderConfig] | None = None,
        output_name: str | None = None,
        input_size: tuple[int, int] | None = None,
    ) -> None:
        settings = settings if settings is not None else get_settings()
        source = model if model is not None else variant.default_model

        spec = MODEL_REGISTRY.get(source) if isinstance(source, str) else None
        if spec is not None and spec.task != variant.task:
            raise ValueError(f"Model '{spec.name}' is a {spec.task} model, not usable for {variant.name}")
        if input_size is None:
            input_size = spec.input_size if spec is not None else DEFAULT_INPUT_SIZE

        self.variant = variant
        self.input_size = input_size
        self._session: InferenceSession | None = create_session(
            source,
            settings,
            sess_options=sess_options,
            providers=providers,
        )
        self._output_index = resolve_output_index(self._session, output_name)
        self._finalizer = weakref.finalize(self, _report_unclosed, variant.name)
        self._finalizer.atexit = False

    @property
    def labels(self) -> tuple[str, ...]:
        return self.variant.labels

    @property
    def closed(self) -> bool:
        return self._session is None

    def forward(self, planes: Sequence[NDArray[np.generic]]) -> NDArray[np.float32]:
        """Run the model on three BGR planes and return the raw output vector.

        Raises:
            UseAfterDispose: If the classifier has been closed.
            InvalidInputShape: If the planes are malformed.
            InferenceError: If the model rejects the input.
        """
        session = self._session
        if session is None:
            raise UseAfterDispose(f"{self.variant.name} classifier is closed")
        tensor = prepare(planes, self.input_size)
        return run(session, tensor, self._output_index)

    def forward_image(self, image: NDArray[np.generic], color_order: ColorOrder = "bgr") -> NDArray[np.float32]:
        """Run the model on an interleaved HxWx3 image (BGR by default)."""
        return self.forward(list(split_planes(image, color_order)))

    def close(self) -> None:
        """Release the inference session. Safe to call more than once."""
        if self._session is None:
            return
        self._finalizer.detach()
        self._session = None
        logger.info("Closed %s classifier", self.variant.name)

    def __enter__(self) -> FaceAttributeClassifier:
        if self._session is None:
            raise UseAfterDispose(f"{self.variant.name} classifier is closed")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "ready"
        return f"<FaceAttributeClassifier {self.variant.name} {state}>"


def age_estimator(
    model: ModelSource | None = None,
    *,
    settings: Settings | None = None,
    sess_options: SessionOptions | None = None,
    providers: Sequence[ProviderConfig] | None = None,
    output_name: str | None = None,
    input_size: tuple[int, int] | None = None,
) -> FaceAttributeClassifier:
    """Create an age estimator. See :class:`FaceAttributeClassifier` for options."""
    return FaceAttributeClassifier(
        AGE,
        model,
        settings=settings,
        sess_options=sess_options,
        providers=providers,
        output_name=output_name,
        input_size=input_size,
    )


def gender_classifier(
    model: ModelSource | None = None,
    *,
    settings: Settings | None = None,
    sess_options: SessionOptions | None = None,
    providers: Sequence[ProviderConfig] | None = None,
    output_name: str | None = None,
    input_size: tuple[int, int] | None = None,
) -> FaceAttributeClassifier:
    """Create a gender classifier. Output index i scores ``GENDER_LABELS[i]``."""
    return FaceAttributeClassifier(
        GENDER,
        model,
        settings=settings,
        sess_options=sess_options,
        providers=providers,
        output_name=output_name,
        input_size=input_size,
    )
