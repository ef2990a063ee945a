"""Resize, scale, normalize, and pack face planes into an NCHW tensor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

from faceattrs.errors import InvalidInputShape

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

# Index i pairs with plane i of the BGR input; the packaged models were
# trained against this exact pairing.
IMAGENET_MEAN: NDArray[np.float32] = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD: NDArray[np.float32] = np.array([0.229, 0.224, 0.225], dtype=np.float32)

PIXEL_SCALE: np.float32 = np.float32(255.0)

DEFAULT_INPUT_SIZE: tuple[int, int] = (224, 224)


@dataclass(frozen=True)
class NormalizedTensor:
    """Contiguous float32 tensor of shape ``(1, 3, H, W)``."""

    data: NDArray[np.float32]

    @property
    def shape(self) -> tuple[int, int, int, int]:
        n, c, h, w = self.data.shape
        return (n, c, h, w)

    @property
    def flat(self) -> NDArray[np.float32]:
        """Channel-major, row-major view of length ``3 * H * W``."""
        return self.data.reshape(-1)

    def __len__(self) -> int:
        return int(self.data.size)


def prepare(
    planes: Sequence[NDArray[np.generic]],
    target_size: tuple[int, int] = DEFAULT_INPUT_SIZE,
) -> NormalizedTensor:
    """Convert three BGR planes into the model's normalized input tensor.

    Each plane is resized to ``target_size`` (height, width) with bilinear
    interpolation, scaled from [0, 255] to [0, 1], then normalized with the
    per-channel ImageNet mean and standard deviation.

    Raises:
        InvalidInputShape: If there are not exactly 3 planes, the planes are
            not 2-D, not the same size, or empty, or ``target_size`` is not positive.
    """
    planes = list(planes)
    if len(planes) != 3:
        raise InvalidInputShape(f"Image must have exactly 3 planes in BGR order, got {len(planes)}")

    height, width = target_size
    if height <= 0 or width <= 0:
        raise InvalidInputShape(f"Target size must be positive, got {target_size}")

    shapes = {np.shape(plane) for plane in planes}
    if len(shapes) != 1:
        raise InvalidInputShape(f"Planes must share one shape, got {sorted(shapes)}")
    (shape,) = shapes
    if len(shape) != 2 or 0 in shape:
        raise InvalidInputShape(f"Planes must be non-empty 2-D arrays, got shape {shape}")

    packed = np.empty((1, 3, height, width), dtype=np.float32)
    for index, plane in enumerate(planes):
        # All planes go through the same resize call so boundary handling
        # stays identical across channels.
        packed[0, index] = cv2.resize(
            np.asarray(plane, dtype=np.float32),
            (width, height),
            interpolation=cv2.INTER_LINEAR,
        )

    packed /= PIXEL_SCALE
    packed -= IMAGENET_MEAN[:, None, None]
    packed /= IMAGENET_STD[:, None, None]

    logger.debug("Prepared tensor %s from planes %s", packed.shape, shape)
    return NormalizedTensor(np.ascontiguousarray(packed))
