"""
Batch-normalization front-ends.

Three operations share one setup routine:

- `batch_normalize`: normalize with externally supplied statistics.
- `batch_normalize_update_and_apply`: compute batch statistics, blend them
  into the running statistics and normalize with the batch statistics.
- `batch_normalize_gradients`: backward pass; requires the batch statistics
  captured by update-and-apply for the same forward call.

Mode selection
--------------
- Rank-2 input `[batch, features]` (rank 1 is treated as one row): "eltwise"
  mode. Every statistic vector has `features` elements.
- Rank > 2 input in NCHW layout `[batch, channels, d1, d2, ...]`: "spatial"
  mode. Every statistic vector has `channels` elements and is broadcast over
  the trailing spatial extent `d1 * d2 * ...`.

Running statistics are blended as
`running = running * (1 - ave_factor) + batch * ave_factor`. The contents of
`batch_variances` are backend defined; only the running variances are
portable across backends (read them back with `ave_factor=1`).
"""

from __future__ import annotations

from dataclasses import dataclass
from math import prod
from typing import Sequence, Tuple

from ...domain._backend import VectorArg
from ...domain._errors import ShapeError, UnsupportedOperand
from .._checks import (
    check_partial_alias,
    ensure_datatypes,
    ensure_dense,
    ensure_float_datatype,
    ensure_same_device,
    ensure_same_shape,
    ensure_vector_indexable,
)
from .._context import TensorContext, check_context
from ..tensor._tensor import Tensor

BATCH_NORM_EPSILON_FLOOR = 1e-5

ELTWISE = "eltwise"
SPATIAL = "spatial"


@dataclass(frozen=True)
class BatchNormSetup:
    """
    Validated parameters shared by the batch-normalization entry points.

    Attributes
    ----------
    mode : str
        "eltwise" or "spatial".
    batch_count : int
        Extent of the batch axis.
    channel_count : int
        Statistic vector length (features in eltwise mode).
    element_count : int
        Spatial extent per channel (1 in eltwise mode).
    vectors : tuple
        `(buffer, dimensions)` row-vector views of the statistic operands, in
        argument order.
    """

    mode: str
    batch_count: int
    channel_count: int
    element_count: int
    vectors: Tuple[VectorArg, ...]


def batch_norm_setup(
    op: str,
    io_tensors: Sequence[Tensor],
    stat_tensors: Sequence[Tensor],
    epsilon: float,
) -> BatchNormSetup:
    """
    Validate batch-normalization operands and select the mode.

    Parameters
    ----------
    op : str
        Operation name used in error messages.
    io_tensors : Sequence[Tensor]
        Input-shaped tensors; the first one after the output is the input.
    stat_tensors : Sequence[Tensor]
        Per-feature / per-channel vectors.
    epsilon : float
        Must be strictly greater than `BATCH_NORM_EPSILON_FLOOR`.

    Raises
    ------
    DatatypeMismatch, DeviceMismatch, PrecisionUnsupported
    UnsupportedOperand
        If epsilon is not above the floor.
    ShapeError
        For mismatched input/output shapes, strided input/output tensors,
        statistic vectors that are not vector indexable, of unequal shapes, or
        of the wrong length for the selected mode.
    """
    all_tensors = [*io_tensors, *stat_tensors]
    first = io_tensors[0]
    ensure_datatypes(first.datatype, *all_tensors)
    ensure_same_device(*all_tensors)
    ensure_float_datatype(first.datatype, op)
    if not float(epsilon) > BATCH_NORM_EPSILON_FLOOR:
        raise UnsupportedOperand(
            f"Epsilon must be greater than {BATCH_NORM_EPSILON_FLOOR}, got {epsilon}",
            {"epsilon": epsilon, "epsilon_floor": BATCH_NORM_EPSILON_FLOOR},
        )

    ensure_vector_indexable(*stat_tensors)
    ensure_same_shape(op, *stat_tensors)
    vectors = [t.as_row_vector() for t in stat_tensors]
    ensure_same_shape(op, *io_tensors)
    ensure_dense(op, *io_tensors)

    shape = first.shape
    if len(shape) == 1:
        shape = (1, shape[0])
    if len(shape) < 2:
        raise ShapeError(
            "Input shape needs at least 2 dimensions",
            {"op": op, "input_shape": first.shape},
        )

    if len(shape) == 2:
        mode = ELTWISE
        batch_count, channel_count = shape
        element_count = 1
    else:
        mode = SPATIAL
        batch_count, channel_count = shape[0], shape[1]
        element_count = prod(shape[2:])

    stat_len = vectors[0].ecount
    if stat_len != channel_count:
        raise ShapeError(
            f"{op}: {mode} mode needs statistic vectors of length {channel_count}, "
            f"got {stat_len} for input shape {first.shape}",
            {
                "op": op,
                "mode": mode,
                "input_shape": first.shape,
                "expected_length": channel_count,
                "actual_length": stat_len,
            },
        )

    return BatchNormSetup(
        mode=mode,
        batch_count=batch_count,
        channel_count=channel_count,
        element_count=element_count,
        vectors=tuple((v.buffer, v.dimensions) for v in vectors),
    )


def batch_normalize(
    ctx: TensorContext,
    output: Tensor,
    input: Tensor,
    means: Tensor,
    variances: Tensor,
    scale: Tensor,
    bias: Tensor,
    epsilon: float,
) -> Tensor:
    """
    `output = (input - mean) / sqrt(variance + epsilon) * scale + bias`.
    """
    stream = check_context(ctx)
    setup = batch_norm_setup(
        "batch_normalize", [output, input], [means, variances, scale, bias], epsilon
    )
    check_partial_alias(stream.driver, output, input)
    if setup.mode == ELTWISE:
        stream.batch_normalize_eltwise(
            output.buffer,
            input.buffer,
            *setup.vectors,
            epsilon,
            setup.batch_count,
            setup.channel_count,
        )
    else:
        stream.batch_normalize_spatial(
            output.buffer,
            input.buffer,
            *setup.vectors,
            epsilon,
            setup.batch_count,
            setup.channel_count,
            setup.element_count,
        )
    return output


def batch_normalize_update_and_apply(
    ctx: TensorContext,
    output: Tensor,
    input: Tensor,
    batch_means: Tensor,
    batch_variances: Tensor,
    running_means: Tensor,
    running_variances: Tensor,
    ave_factor: float,
    scale: Tensor,
    bias: Tensor,
    epsilon: float,
) -> Tensor:
    """
    Normalize with batch statistics and update the running statistics.
    """
    stream = check_context(ctx)
    setup = batch_norm_setup(
        "batch_normalize_update_and_apply",
        [output, input],
        [batch_means, batch_variances, running_means, running_variances, scale, bias],
        epsilon,
    )
    check_partial_alias(stream.driver, output, input)
    b_means, b_vars, r_means, r_vars, scale_v, bias_v = setup.vectors
    if setup.mode == ELTWISE:
        stream.batch_normalize_update_and_apply_eltwise(
            output.buffer,
            input.buffer,
            b_means,
            b_vars,
            r_means,
            r_vars,
            ave_factor,
            scale_v,
            bias_v,
            epsilon,
            setup.batch_count,
            setup.channel_count,
        )
    else:
        stream.batch_normalize_update_and_apply_spatial(
            output.buffer,
            input.buffer,
            b_means,
            b_vars,
            r_means,
            r_vars,
            ave_factor,
            scale_v,
            bias_v,
            epsilon,
            setup.batch_count,
            setup.channel_count,
            setup.element_count,
        )
    return output


def batch_normalize_gradients(
    ctx: TensorContext,
    input_gradient: Tensor,
    scale_gradient: Tensor,
    bias_gradient: Tensor,
    output_gradient: Tensor,
    output: Tensor,
    input: Tensor,
    batch_means: Tensor,
    batch_variances: Tensor,
    scale: Tensor,
    bias: Tensor,
    epsilon: float,
) -> Tensor:
    """
    Backward pass. Writes `input_gradient` and overwrites `scale_gradient`
    and `bias_gradient`.

    `batch_means` and `batch_variances` must be exactly what
    `batch_normalize_update_and_apply` produced for the same forward call.
    """
    stream = check_context(ctx)
    setup = batch_norm_setup(
        "batch_normalize_gradients",
        [output, input, output_gradient, input_gradient],
        [batch_means, batch_variances, scale, bias, scale_gradient, bias_gradient],
        epsilon,
    )
    check_partial_alias(
        stream.driver, input_gradient, output_gradient, output, input
    )
    b_means, b_vars, scale_v, bias_v, scale_g, bias_g = setup.vectors
    if setup.mode == ELTWISE:
        stream.batch_normalize_gradients_eltwise(
            input_gradient.buffer,
            scale_g,
            bias_g,
            output_gradient.buffer,
            output.buffer,
            input.buffer,
            b_means,
            b_vars,
            scale_v,
            bias_v,
            epsilon,
            setup.batch_count,
            setup.channel_count,
        )
    else:
        stream.batch_normalize_gradients_spatial(
            input_gradient.buffer,
            scale_g,
            bias_g,
            output_gradient.buffer,
            output.buffer,
            input.buffer,
            b_means,
            b_vars,
            scale_v,
            bias_v,
            epsilon,
            setup.batch_count,
            setup.channel_count,
            setup.element_count,
        )
    return input_gradient
