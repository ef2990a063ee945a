"""Single forward pass over an ONNX Runtime session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from onnxruntime.capi.onnxruntime_pybind11_state import Fail, InvalidArgument, RuntimeException

from faceattrs.errors import InferenceError

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from faceattrs.ml.preprocessing import NormalizedTensor

logger = logging.getLogger(__name__)

LAST_OUTPUT: int = -1

NUMERIC_OUTPUT_TYPES: frozenset[str] = frozenset(
    {
        "tensor(float)",
        "tensor(double)",
        "tensor(float16)",
        "tensor(int8)",
        "tensor(int16)",
        "tensor(int32)",
        "tensor(int64)",
        "tensor(uint8)",
    }
)


def resolve_output_index(session: InferenceSession, output_name: str | None = None) -> int:
    """Pick the result output of a model and validate it against its outputs.

    Without ``output_name`` the last declared output is used, which is the
    convention of the packaged age and gender models.

    Raises:
        InferenceError: If the model has no outputs, does not declare
            ``output_name``, or the chosen output is not a numeric tensor.
    """
    outputs = session.get_outputs()
    names = [output.name for output in outputs]
    if not names:
        raise InferenceError("Model declares no outputs")

    if output_name is None:
        index = len(names) - 1
        logger.debug("Using last declared output %r of %s", names[index], names)
    else:
        try:
            index = names.index(output_name)
        except ValueError:
            raise InferenceError(f"Model has no output named {output_name!r}; declared outputs: {names}") from None

    if outputs[index].type not in NUMERIC_OUTPUT_TYPES:
        raise InferenceError(f"Output {names[index]!r} is a {outputs[index].type}, not a numeric tensor")
    return index


def _check_input_shape(declared: list[int | str | None], shape: tuple[int, ...]) -> None:
    if len(declared) != len(shape):
        raise InferenceError(f"Model expects a rank-{len(declared)} input {declared}, got tensor of shape {list(shape)}")
    for expected, actual in zip(declared, shape, strict=True):
        # Symbolic or unknown dimensions accept any size.
        if isinstance(expected, int) and expected > 0 and expected != actual:
            raise InferenceError(f"Model expects input shape {declared}, got tensor of shape {list(shape)}")


def run(
    session: InferenceSession,
    tensor: NormalizedTensor,
    output_index: int = LAST_OUTPUT,
) -> NDArray[np.float32]:
    """Bind ``tensor`` to the model's single input, run once, and return one output.

    The input name is read from the session on every call. All declared
    outputs are computed; the one at ``output_index`` is copied out as a flat
    float32 vector and the rest are dropped before returning.

    Raises:
        InferenceError: If the model does not have exactly one input, rejects
            the tensor shape, fails during the forward pass, or the selected
            output cannot be read as numbers.
    """
    inputs = session.get_inputs()
    if len(inputs) != 1:
        raise InferenceError(f"Model must declare exactly one input, got {[i.name for i in inputs]}")
    model_input = inputs[0]
    _check_input_shape(list(model_input.shape), tensor.shape)

    try:
        outputs = session.run(None, {model_input.name: tensor.data})
    except (Fail, InvalidArgument, RuntimeException) as exc:
        raise InferenceError(f"Inference failed for input {model_input.name!r}: {exc}") from exc

    try:
        result = np.asarray(outputs[output_index], dtype=np.float32).reshape(-1).copy()
    except IndexError:
        raise InferenceError(f"Output index {output_index} out of range for {len(outputs)} outputs") from None
    except (ValueError, TypeError) as exc:
        raise InferenceError(f"Output {output_index} is not a numeric tensor") from exc
    finally:
        del outputs

    logger.debug("Forward pass on %r produced %d values", model_input.name, result.size)
    return result
