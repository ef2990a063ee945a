"""Tests for BGR plane splitting and image decoding."""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from faceattrs.errors import InvalidInputShape
from faceattrs.ml.planes import ChannelPlanes, decode_image, split_planes


def _bgr_image() -> np.ndarray:
    image = np.zeros((4, 5, 3), dtype=np.uint8)
    image[:, :, 0] = 10
    image[:, :, 1] = 20
    image[:, :, 2] = 30
    return image


class TestSplitPlanes:
    def test_bgr_input_keeps_order(self) -> None:
        planes = split_planes(_bgr_image())

        assert float(planes.blue[0, 0]) == 10.0
        assert float(planes.green[0, 0]) == 20.0
        assert float(planes.red[0, 0]) == 30.0
        assert planes.blue.dtype == np.float32
        assert (planes.height, planes.width) == (4, 5)

    def test_rgb_input_is_reordered(self) -> None:
        planes = split_planes(_bgr_image(), color_order="rgb")

        assert float(planes.blue[0, 0]) == 30.0
        assert float(planes.red[0, 0]) == 10.0

    def test_alpha_channel_dropped(self) -> None:
        image = np.dstack([_bgr_image(), np.full((4, 5), 255, dtype=np.uint8)])
        planes = split_planes(image)
        assert [float(p[0, 0]) for p in planes] == [10.0, 20.0, 30.0]

    def test_grayscale_replicated(self) -> None:
        planes = split_planes(np.full((3, 3), 7, dtype=np.uint8))
        assert len(planes) == 3
        assert all(np.all(p == 7.0) for p in planes)

    @pytest.mark.parametrize("shape", [(4,), (4, 5, 2), (4, 5, 6, 3)])
    def test_unsupported_layout_raises(self, shape: tuple[int, ...]) -> None:
        with pytest.raises(InvalidInputShape):
            split_planes(np.zeros(shape, dtype=np.uint8))

    def test_channel_planes_reject_mismatched_shapes(self) -> None:
        with pytest.raises(InvalidInputShape):
            ChannelPlanes(
                np.zeros((2, 2), dtype=np.float32),
                np.zeros((2, 2), dtype=np.float32),
                np.zeros((2, 3), dtype=np.float32),
            )


class TestDecodeImage:
    def test_decodes_png_as_bgr(self) -> None:
        ok, encoded = cv2.imencode(".png", _bgr_image())
        assert ok

        image = decode_image(encoded.tobytes())

        assert image.shape == (4, 5, 3)
        assert image[0, 0].tolist() == [10, 20, 30]

    def test_garbage_bytes_raise(self) -> None:
        with pytest.raises(ValueError, match="decode"):
            decode_image(b"not an image")

    def test_empty_bytes_raise(self) -> None:
        with pytest.raises(ValueError, match="decode"):
            decode_image(b"")

    def test_pixel_limit_enforced(self) -> None:
        _, encoded = cv2.imencode(".png", _bgr_image())
        with pytest.raises(ValueError, match="limit"):
            decode_image(encoded.tobytes(), max_pixels=10)
