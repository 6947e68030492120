"""
Activation-gradient and softmax front-ends.
"""

from __future__ import annotations

from ...domain._errors import EcountIncommensurate, UnsupportedOperand
from .._checks import (
    ensure_datatypes,
    ensure_dense,
    ensure_float_datatype,
    ensure_no_alias,
    ensure_same_device,
    ensure_same_shape,
)
from .._context import TensorContext, check_context
from ..tensor._tensor import Tensor

ACTIVATIONS = frozenset({"logistic", "tanh", "relu"})


def activation_gradient(
    ctx: TensorContext,
    input_gradient: Tensor,
    output_gradient: Tensor,
    output: Tensor,
    op: str,
) -> Tensor:
    """
    Input gradient of an activation, from its forward output.

    - logistic: `out * (1 - out) * out_grad`
    - tanh:     `(1 - out * out) * out_grad`
    - relu:     `out_grad` where `out > 0`, else 0

    Raises
    ------
    AliasingViolation
        If `input_gradient` overlaps `output` in any way.
    EcountIncommensurate
        If the three element counts differ.
    UnsupportedOperand
        For an activation other than logistic, tanh or relu.
    """
    stream = check_context(ctx)
    ensure_no_alias(stream.driver, input_gradient, output)
    ensure_datatypes(input_gradient.datatype, output, output_gradient)
    ensure_same_device(input_gradient, output, output_gradient)
    ensure_float_datatype(input_gradient.datatype, "activation_gradient")
    if op not in ACTIVATIONS:
        raise UnsupportedOperand(
            "Only logistic, tanh and relu are supported",
            {"op": op, "supported": sorted(ACTIVATIONS)},
        )
    n_elems = output.ecount
    for other in (input_gradient, output_gradient):
        if other.ecount != n_elems:
            raise EcountIncommensurate(
                n_elems, other.ecount, "All element counts must match"
            )
    ensure_dense("activation_gradient", input_gradient, output_gradient, output)

    stream.activation_gradient(
        input_gradient.buffer, output_gradient.buffer, output.buffer, op, n_elems
    )
    return input_gradient


def softmax(ctx: TensorContext, output: Tensor, input: Tensor) -> Tensor:
    """
    Row-wise softmax. The outermost axis is the batch; every other axis is
    collapsed into the features normalized together.

    Raises
    ------
    ShapeError
        If the shapes differ or either tensor is strided.
    """
    stream = check_context(ctx)
    ensure_datatypes(output.datatype, input)
    ensure_same_device(output, input)
    ensure_float_datatype(input.datatype, "softmax")
    ensure_same_shape("softmax", output, input)
    ensure_dense("softmax", output, input)

    batch_count, element_count = input.as_batch_matrix().shape
    stream.softmax(output.buffer, input.buffer, batch_count, element_count)
    return output
