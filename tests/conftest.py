"""Shared fixtures: settings and tiny ONNX graphs standing in for the packaged models.

The graphs reduce each input channel to its mean (output ``features``) and
project those three means through a fixed weight matrix (output ``scores``),
so expected outputs can be computed by hand from the normalized tensor.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper, numpy_helper

from faceattrs.config import Settings

GENDER_WEIGHTS = np.array([[1.0, -1.0], [0.5, 0.5], [-1.0, 1.0]], dtype=np.float32)
AGE_WEIGHTS = np.array([[10.0], [20.0], [30.0]], dtype=np.float32)


def build_model(
    weights: np.ndarray,
    input_shape: list[int | str] | None = None,
    *,
    with_features: bool = True,
    with_labels: bool = False,
) -> bytes:
    """Serialize a channel-mean -> linear projection graph.

    ``with_labels`` appends a constant string output ``labels`` after ``scores``.
    """
    if input_shape is None:
        input_shape = [1, 3, 224, 224]
    graph_input = helper.make_tensor_value_info("input", TensorProto.FLOAT, input_shape)
    features = helper.make_tensor_value_info("features", TensorProto.FLOAT, [1, 3])
    scores = helper.make_tensor_value_info("scores", TensorProto.FLOAT, [1, weights.shape[1]])

    nodes = [
        helper.make_node("ReduceMean", ["input"], ["features"], axes=[2, 3], keepdims=0),
        helper.make_node("MatMul", ["features", "weights"], ["scores"]),
    ]
    graph_outputs = [features, scores] if with_features else [scores]
    if with_labels:
        labels = helper.make_tensor("labels_value", TensorProto.STRING, [2], [b"Male", b"Female"])
        nodes.append(helper.make_node("Constant", [], ["labels"], value=labels))
        graph_outputs.append(helper.make_tensor_value_info("labels", TensorProto.STRING, [2]))
    graph = helper.make_graph(
        nodes,
        "attribute_stub",
        [graph_input],
        graph_outputs,
        initializer=[numpy_helper.from_array(weights, name="weights")],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.checker.check_model(model)
    return model.SerializeToString()


def expected_scores(value: float, weights: np.ndarray) -> np.ndarray:
    """Scores the stub graph yields for a constant image of ``value``."""
    mean = np.array([0.485, 0.456, 0.406], dtype=np.float32)
    std = np.array([0.229, 0.224, 0.225], dtype=np.float32)
    channel = (np.float32(value) / np.float32(255.0) - mean) / std
    return channel @ weights


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(models_dir=str(tmp_path), device="cpu")  # type: ignore[call-arg]


@pytest.fixture()
def gender_model_bytes() -> bytes:
    return build_model(GENDER_WEIGHTS)


@pytest.fixture()
def age_model_bytes() -> bytes:
    return build_model(AGE_WEIGHTS)


@pytest.fixture()
def gray_planes() -> list[np.ndarray]:
    plane = np.full((224, 224), 128.0, dtype=np.float32)
    return [plane, plane.copy(), plane.copy()]
