"""
Tensor construction, slicing and host interop.

Constructors allocate through the driver of the context's stream and wrap the
buffer with default (tightly packed) dimensions. Slicing functions cut
zero-copy sub-buffers. Host interop stages data through host buffers that are
scoped with `resource_context()`, so they are released even when a copy
fails.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import numpy as np

from ...domain._datatype import normalize_datatype
from ...domain._dimensions import Dimensions
from ...domain._errors import ShapeError
from .._context import TensorContext, check_context
from .._resource import release_tensor, resource_context
from ..ops.elementwise import assign
from ._tensor import Tensor


def construct_tensor(device: Any, dimensions: Dimensions, buffer: Any) -> Tensor:
    """
    Wrap an existing buffer.

    Raises
    ------
    ShapeError
        If `dimensions` address more elements than `buffer` holds.
    """
    return Tensor(device, dimensions, buffer)


def new_tensor(
    ctx: TensorContext,
    shape: Sequence[int],
    datatype: Any = None,
    init_value: Optional[float] = 0,
) -> Tensor:
    """
    Allocate a dense tensor on the context's device.

    Parameters
    ----------
    ctx : TensorContext
        Execution context; provides the device and the default datatype.
    shape : Sequence[int]
        Logical shape.
    datatype : optional
        Element datatype. Defaults to `ctx.datatype`.
    init_value : float | None
        Fill value. None leaves the contents as the allocator returned them.
    """
    stream = check_context(ctx)
    datatype = normalize_datatype(ctx.datatype if datatype is None else datatype)
    dims = Dimensions(shape)
    n_elems = dims.ecount
    buffer = stream.driver.allocate_device_buffer(
        n_elems, datatype, device=stream.device
    )
    if init_value is not None:
        stream.memset(buffer, 0, init_value, n_elems)
    return construct_tensor(stream.device, dims, buffer)


def from_numpy(ctx: TensorContext, data: Any, datatype: Any = None) -> Tensor:
    """
    Copy host data into a fresh device tensor with the same shape.

    The data is staged through a host buffer that is released before
    returning. If staging fails the device tensor is released too.
    """
    stream = check_context(ctx)
    datatype = normalize_datatype(ctx.datatype if datatype is None else datatype)
    arr = np.asarray(data)
    result = new_tensor(ctx, arr.shape, datatype, init_value=None)
    n_elems = result.ecount
    try:
        with resource_context() as scope:
            host = scope.track(
                stream.driver, stream.driver.allocate_host_buffer(n_elems, datatype)
            )
            host.view()[...] = arr.reshape(-1)
            stream.copy_host_to_device(host, 0, result.buffer, 0, n_elems)
            # host buffer is released on exit, so the copy must have landed
            stream.sync()
    except Exception:
        release_tensor(stream.driver, result)
        raise
    return result


def to_numpy(ctx: TensorContext, tensor: Tensor, datatype: Any = None) -> np.ndarray:
    """
    Copy a tensor back to the host as an array shaped like the tensor.

    Strided tensors are made dense on the device first. `datatype` converts
    the result on the host; it defaults to the tensor's own datatype.
    """
    stream = check_context(ctx)
    src_datatype = tensor.datatype
    datatype = normalize_datatype(src_datatype if datatype is None else datatype)
    with resource_context() as scope:
        dense = make_dense(ctx, tensor)
        if dense is not tensor:
            scope.track_tensor(stream.driver, dense)
        n_elems = dense.ecount
        host = scope.track(
            stream.driver, stream.driver.allocate_host_buffer(n_elems, src_datatype)
        )
        stream.copy_device_to_host(dense.buffer, 0, host, 0, n_elems)
        stream.sync()
        values = np.array(host.view(), copy=True)
    return values.astype(datatype.value, copy=False).reshape(tensor.shape)


def to_double_array(ctx: TensorContext, tensor: Tensor) -> np.ndarray:
    """
    Flat float64 copy of the tensor's elements in logical order.
    """
    return to_numpy(ctx, tensor, "float64").reshape(-1)


def make_dense(ctx: TensorContext, tensor: Tensor) -> Tensor:
    """
    Return `tensor` when it is dense, otherwise a dense copy of it.
    """
    if tensor.is_dense:
        return tensor
    result = new_tensor(ctx, tensor.shape, tensor.datatype, init_value=None)
    try:
        assign(ctx, result, tensor)
    except Exception:
        release_tensor(check_context(ctx).driver, result)
        raise
    return result


def _sub_buffer(ctx: TensorContext, tensor: Tensor, offset: int, length: int) -> Any:
    return check_context(ctx).driver.sub_buffer(tensor.buffer, offset, length)


def subvector(
    ctx: TensorContext, tensor: Tensor, offset: int, length: Optional[int] = None
) -> Tensor:
    """
    Zero-copy rank-1 window over a dense tensor.

    Raises
    ------
    ShapeError
        If the tensor is strided, `offset` is negative or the window runs past
        the tensor.
    """
    offset = int(offset)
    if offset < 0:
        raise ShapeError("Offset must be >= 0", {"offset": offset})
    if tensor.as_vector() is None:
        raise ShapeError(
            "subvector requires a dense tensor",
            {"shape": tensor.shape, "strides": tensor.strides},
        )
    ecount = tensor.ecount
    new_len = ecount - offset if length is None else int(length)
    if new_len < 0 or offset + new_len > ecount:
        raise ShapeError(
            "Sub-vector out of bounds",
            {"tensor_ecount": ecount, "offset": offset, "new_length": new_len},
        )
    buffer = _sub_buffer(ctx, tensor, offset, new_len)
    return construct_tensor(tensor.device, Dimensions([new_len]), buffer)


def submatrix(
    ctx: TensorContext,
    tensor: Tensor,
    row_start: int,
    row_length: int,
    col_start: int,
    col_length: int,
) -> Tensor:
    """
    Zero-copy `[row_length, col_length]` window of the 2D interpretation.

    The result keeps the parent's column stride, so it is strided whenever
    `col_length` is smaller than the parent's column count.

    Raises
    ------
    ShapeError
        On negative starts or windows that run past the matrix.
    """
    matrix = tensor.as_2d_matrix()
    n_rows, n_cols = matrix.shape
    column_stride = matrix.column_stride
    inner_stride = matrix.strides[-1]
    row_start, row_length = int(row_start), int(row_length)
    col_start, col_length = int(col_start), int(col_length)
    if row_start < 0 or col_start < 0 or row_length < 0 or col_length < 0:
        raise ShapeError(
            "Submatrix starts and lengths must be >= 0",
            {"row_start": row_start, "col_start": col_start},
        )
    if row_start + row_length > n_rows:
        raise ShapeError(
            "Required row length out of bounds",
            {
                "existing_row_length": n_rows,
                "row_start": row_start,
                "row_length": row_length,
            },
        )
    if col_start + col_length > n_cols:
        raise ShapeError(
            "Required col length out of bounds",
            {
                "existing_col_length": n_cols,
                "col_start": col_start,
                "col_length": col_length,
            },
        )

    start_offset = row_start * column_stride + col_start * inner_stride
    if row_length == 0 or col_length == 0:
        buffer = _sub_buffer(ctx, tensor, min(start_offset, tensor.buffer.ecount), 0)
        return construct_tensor(
            tensor.device, Dimensions([row_length, col_length]), buffer
        )
    required = (row_length - 1) * column_stride + (col_length - 1) * inner_stride + 1
    buffer = _sub_buffer(ctx, tensor, start_offset, required)
    return construct_tensor(
        tensor.device,
        Dimensions([row_length, col_length], strides=[column_stride, inner_stride]),
        buffer,
    )


def rows(ctx: TensorContext, tensor: Tensor) -> List[Tensor]:
    """
    One rank-1 view per row of the 2D interpretation.
    """
    matrix = tensor.as_2d_matrix()
    n_rows, n_cols = matrix.shape
    column_stride = matrix.column_stride
    inner_stride = matrix.strides[-1]
    length = (n_cols - 1) * inner_stride + 1 if n_cols else 0
    return [
        construct_tensor(
            tensor.device,
            Dimensions([n_cols], strides=[inner_stride]) if n_cols else Dimensions([0]),
            _sub_buffer(ctx, tensor, idx * column_stride, length),
        )
        for idx in range(n_rows)
    ]


def columns(ctx: TensorContext, tensor: Tensor) -> List[Tensor]:
    """
    One rank-1 view per column of the 2D interpretation, strided by the
    column stride.

    Neighbouring columns partially overlap as buffers, so they cannot be
    combined in a single elementwise call.
    """
    matrix = tensor.as_2d_matrix()
    n_rows, n_cols = matrix.shape
    column_stride = matrix.column_stride
    inner_stride = matrix.strides[-1]
    if n_rows == 0:
        return [
            construct_tensor(
                tensor.device, Dimensions([0]), _sub_buffer(ctx, tensor, 0, 0)
            )
            for _ in range(n_cols)
        ]
    length = (n_rows - 1) * column_stride + 1
    return [
        construct_tensor(
            tensor.device,
            Dimensions([n_rows], strides=[column_stride]),
            _sub_buffer(ctx, tensor, idx * inner_stride, length),
        )
        for idx in range(n_cols)
    ]
