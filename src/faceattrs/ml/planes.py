"""Channel-planar image container.

A face crop is held as three independent 2-D float32 planes in Blue, Green,
Red order. Decoders such as OpenCV already produce interleaved BGR arrays;
``split_planes`` converts those (or RGB input) into planes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import cv2
import numpy as np

from faceattrs.errors import InvalidInputShape

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.typing import NDArray

ColorOrder = Literal["bgr", "rgb"]


@dataclass(frozen=True)
class ChannelPlanes:
    """Three equally sized single-channel planes, ordered B, G, R."""

    blue: NDArray[np.float32]
    green: NDArray[np.float32]
    red: NDArray[np.float32]

    def __post_init__(self) -> None:
        shapes = {plane.shape for plane in self}
        if len(shapes) != 1:
            raise InvalidInputShape(f"Planes must share one shape, got {sorted(shapes)}")
        (shape,) = shapes
        if len(shape) != 2:
            raise InvalidInputShape(f"Planes must be 2-D, got shape {shape}")

    def __iter__(self) -> Iterator[NDArray[np.float32]]:
        return iter((self.blue, self.green, self.red))

    def __len__(self) -> int:
        return 3

    @property
    def height(self) -> int:
        return int(self.blue.shape[0])

    @property
    def width(self) -> int:
        return int(self.blue.shape[1])


def split_planes(image: NDArray[np.generic], color_order: ColorOrder = "bgr") -> ChannelPlanes:
    """Split an interleaved image into BGR planes.

    Args:
        image: HxW (grayscale), HxWx3, or HxWx4 array. A fourth channel is
            treated as alpha and dropped.
        color_order: Channel order of ``image``.

    Returns:
        Float32 planes in B, G, R order with samples in the source range.

    Raises:
        InvalidInputShape: If the array is not an image of a supported layout.
    """
    if image.ndim == 2:
        gray = image.astype(np.float32)
        return ChannelPlanes(gray, gray.copy(), gray.copy())

    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise InvalidInputShape(f"Expected HxW, HxWx3 or HxWx4 image, got shape {image.shape}")

    first, second, third = (image[:, :, i].astype(np.float32) for i in range(3))
    if color_order == "rgb":
        return ChannelPlanes(blue=third, green=second, red=first)
    return ChannelPlanes(blue=first, green=second, red=third)


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> NDArray[np.uint8]:
    """Decode encoded image bytes (JPEG, PNG, ...) into an HxWx3 BGR array.

    ``max_pixels`` is checked on the decoded array, so an image that declares
    huge dimensions is still fully allocated first. OpenCV's own decoder
    limit (``OPENCV_IO_MAX_IMAGE_PIXELS``, 2**30 by default) caps that
    allocation; callers taking untrusted uploads should also bound the
    encoded size, as the API does with ``max_file_size``.

    Raises:
        ValueError: If the bytes cannot be decoded or the image exceeds ``max_pixels``.
    """
    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR) if buffer.size else None
    if image is None:
        raise ValueError("Could not decode image")
    if max_pixels is not None and image.shape[0] * image.shape[1] > max_pixels:
        raise ValueError(f"Image has {image.shape[0] * image.shape[1]} pixels, limit is {max_pixels}")
    return image
