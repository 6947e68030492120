"""
CPU reference implementations of batch normalization (NumPy backend).

Both modes are computed on a single (batch, channels, spatial) view of the
dense input:

- eltwise (rank-2 input): `(batch, features, 1)`, statistics per feature.
- spatial (rank > 2 input, NCHW): `(N, C, H*W*...)`, statistics per channel,
  reduced over the batch and spatial axes.

Statistic vectors are passed as `(flat, dims)` pairs so strided column
vectors are read and written correctly.

Forward:

    y = scale * (x - mean) / sqrt(var + eps) + bias

Running statistics (update-and-apply):

    running_mean = running_mean * (1 - f) + batch_mean * f
    running_var  = running_var  * (1 - f) + unbiased_batch_var * f

The biased batch variance is stored in `batch_variances`; the gradient kernel
consumes exactly that representation.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ...domain._dimensions import Dimensions
from .elementwise_cpu import strided_offsets

VectorArray = Tuple[np.ndarray, Dimensions]

_REDUCE_AXES = (0, 2)


def _read_vec(arg: VectorArray) -> np.ndarray:
    flat, dims = arg
    return flat[strided_offsets(dims)]


def _write_vec(arg: VectorArray, values: np.ndarray) -> None:
    flat, dims = arg
    flat[strided_offsets(dims)] = values.astype(flat.dtype, copy=False)


def _as_3d(
    flat: np.ndarray, batch_count: int, channel_count: int, element_count: int
) -> np.ndarray:
    n = int(batch_count) * int(channel_count) * int(element_count)
    return flat[:n].reshape(int(batch_count), int(channel_count), int(element_count))


def _bc(v: np.ndarray) -> np.ndarray:
    return v.reshape(1, -1, 1)


def _normalize(
    x: np.ndarray,
    mean: np.ndarray,
    var: np.ndarray,
    scale: np.ndarray,
    bias: np.ndarray,
    epsilon: float,
) -> np.ndarray:
    inv_std = 1.0 / np.sqrt(var + epsilon)
    return _bc(scale) * (x - _bc(mean)) * _bc(inv_std) + _bc(bias)


def batch_normalize_cpu(
    output: np.ndarray,
    input: np.ndarray,
    means: VectorArray,
    variances: VectorArray,
    scale: VectorArray,
    bias: VectorArray,
    epsilon: float,
    batch_count: int,
    channel_count: int,
    element_count: int,
) -> None:
    """
    Normalize with externally supplied statistics.

    Parameters
    ----------
    output, input : np.ndarray
        Dense flat buffers of `batch_count * channel_count * element_count`
        elements.
    means, variances, scale, bias : tuple[np.ndarray, Dimensions]
        Per-channel statistic vectors of length `channel_count`.
    epsilon : float
        Added to the variance before the square root.
    batch_count, channel_count, element_count : int
        Extents of the (batch, channels, spatial) view.
    """
    if int(batch_count) * int(channel_count) * int(element_count) == 0:
        return
    x = _as_3d(input, batch_count, channel_count, element_count)
    y = _normalize(
        x,
        _read_vec(means),
        _read_vec(variances),
        _read_vec(scale),
        _read_vec(bias),
        epsilon,
    )
    _as_3d(output, batch_count, channel_count, element_count)[...] = y


def batch_normalize_update_and_apply_cpu(
    output: np.ndarray,
    input: np.ndarray,
    batch_means: VectorArray,
    batch_variances: VectorArray,
    running_means: VectorArray,
    running_variances: VectorArray,
    ave_factor: float,
    scale: VectorArray,
    bias: VectorArray,
    epsilon: float,
    batch_count: int,
    channel_count: int,
    element_count: int,
) -> None:
    """
    Compute batch statistics, blend them into the running statistics and
    normalize with the batch statistics.
    """
    if int(batch_count) * int(channel_count) * int(element_count) == 0:
        return
    x = _as_3d(input, batch_count, channel_count, element_count)
    m = int(batch_count) * int(element_count)

    mean = x.mean(axis=_REDUCE_AXES)
    var = ((x - _bc(mean)) ** 2).mean(axis=_REDUCE_AXES)
    unbiased_var = var * (float(m) / float(max(m - 1, 1)))

    f = float(ave_factor)
    _write_vec(running_means, _read_vec(running_means) * (1.0 - f) + mean * f)
    _write_vec(
        running_variances, _read_vec(running_variances) * (1.0 - f) + unbiased_var * f
    )
    _write_vec(batch_means, mean)
    _write_vec(batch_variances, var)

    y = _normalize(x, mean, var, _read_vec(scale), _read_vec(bias), epsilon)
    _as_3d(output, batch_count, channel_count, element_count)[...] = y


def batch_normalize_gradients_cpu(
    input_gradient: np.ndarray,
    scale_gradient: VectorArray,
    bias_gradient: VectorArray,
    output_gradient: np.ndarray,
    output: np.ndarray,
    input: np.ndarray,
    batch_means: VectorArray,
    batch_variances: VectorArray,
    scale: VectorArray,
    bias: VectorArray,
    epsilon: float,
    batch_count: int,
    channel_count: int,
    element_count: int,
) -> None:
    """
    Backward pass using the batch statistics captured by update-and-apply.

    Writes the input gradient and overwrites the scale and bias gradients:

        x_hat  = (x - mean) / sqrt(var + eps)
        dxhat  = dy * scale
        dx     = inv_std / m * (m * dxhat - sum(dxhat) - x_hat * sum(dxhat * x_hat))
        dscale = sum(dy * x_hat)
        dbias  = sum(dy)

    Sums run over the batch and spatial axes; `m` is their combined extent.
    """
    if int(batch_count) * int(channel_count) * int(element_count) == 0:
        return
    x = _as_3d(input, batch_count, channel_count, element_count)
    dy = _as_3d(output_gradient, batch_count, channel_count, element_count)
    m = float(int(batch_count) * int(element_count))

    mean = _read_vec(batch_means)
    inv_std = 1.0 / np.sqrt(_read_vec(batch_variances) + epsilon)
    x_hat = (x - _bc(mean)) * _bc(inv_std)

    dxhat = dy * _bc(_read_vec(scale))
    sum_dxhat = dxhat.sum(axis=_REDUCE_AXES)
    sum_dxhat_xhat = (dxhat * x_hat).sum(axis=_REDUCE_AXES)

    dx = (
        (1.0 / m)
        * _bc(inv_std)
        * (m * dxhat - _bc(sum_dxhat) - x_hat * _bc(sum_dxhat_xhat))
    )
    _as_3d(input_gradient, batch_count, channel_count, element_count)[...] = dx
    _write_vec(scale_gradient, (dy * x_hat).sum(axis=_REDUCE_AXES))
    _write_vec(bias_gradient, dy.sum(axis=_REDUCE_AXES))
