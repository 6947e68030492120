"""
Tensor entity and zero-copy view coercions.

A `Tensor` binds three things together:

- a device descriptor,
- a `Dimensions` object describing the logical view, and
- an opaque backend buffer handle.

It does not own memory. Releasing the buffer is the job of the allocator
(`release_tensor`, `resource_context`); operations never free anything.

Views
-----
All coercions (`reinterpret`, `as_row_vector`, `as_column_vector`,
`as_2d_matrix`, `as_batch_matrix`, `as_vector`) build a new `Tensor` over the
*same* buffer, so the view inherits the buffer's lifetime. Axes are collapsed
only where the collapse can be expressed with a single stride; otherwise a
`ShapeError` is raised instead of silently producing a view that reads the
wrong elements.
"""

from __future__ import annotations

from math import prod
from typing import Any, Optional, Sequence

from ...domain._backend import IBuffer
from ...domain._datatype import DataType, normalize_datatype
from ...domain._dimensions import Dimensions
from ...domain._errors import ShapeError


def _collapse(dims: Dimensions, start: int, stop: int) -> tuple[int, Optional[int]]:
    """
    Merge axes `[start, stop)` into one `(extent, stride)` pair.

    Size-1 axes are ignored since their stride is never used. A stride of None
    means "default" (no addressable axis survived).

    Raises
    ------
    ShapeError
        If the kept axes are not tightly nested.
    """
    axes = [
        (dims.shape[i], dims.strides[i])
        for i in range(start, stop)
        if dims.shape[i] != 1
    ]
    extent = prod(dims.shape[start:stop])
    if not axes:
        return extent, None
    for (_, outer_stride), (inner_n, inner_stride) in zip(axes, axes[1:]):
        if outer_stride != inner_stride * inner_n:
            raise ShapeError(
                f"Axes {start}..{stop - 1} of {dims!r} cannot be collapsed "
                "into a single strided axis",
                {"shape": dims.shape, "strides": dims.strides},
            )
    return extent, axes[-1][1]


def _view_dims(dims: Dimensions, parts: Sequence[tuple[int, Optional[int]]]) -> Dimensions:
    shape = [n for n, _ in parts]
    if prod(shape) == 0:
        return Dimensions(shape)
    return Dimensions(shape, strides=[s for _, s in parts])


class Tensor:
    """
    Non-owning view over a backend buffer.

    Parameters
    ----------
    device : DeviceLike
        Device the buffer lives on.
    dimensions : Dimensions
        Logical shape and strides of the view.
    buffer : IBuffer
        Backend buffer handle.

    Raises
    ------
    ShapeError
        If the view addresses more elements than the buffer holds.
    """

    __slots__ = ("_device", "_dimensions", "_buffer")

    def __init__(self, device: Any, dimensions: Dimensions, buffer: IBuffer) -> None:
        if dimensions.buffer_ecount > buffer.ecount:
            raise ShapeError(
                f"Dimensions {dimensions!r} address {dimensions.buffer_ecount} "
                f"elements but the buffer holds {buffer.ecount}",
                {
                    "shape": dimensions.shape,
                    "strides": dimensions.strides,
                    "dimension_buffer_ecount": dimensions.buffer_ecount,
                    "buffer_ecount": buffer.ecount,
                },
            )
        self._device = device
        self._dimensions = dimensions
        self._buffer = buffer

    @property
    def device(self) -> Any:
        return self._device

    @property
    def dimensions(self) -> Dimensions:
        return self._dimensions

    @property
    def buffer(self) -> IBuffer:
        return self._buffer

    @property
    def datatype(self) -> DataType:
        return normalize_datatype(self._buffer.datatype)

    @property
    def shape(self) -> tuple[int, ...]:
        return self._dimensions.shape

    @property
    def strides(self) -> tuple[int, ...]:
        return self._dimensions.strides

    @property
    def ecount(self) -> int:
        return self._dimensions.ecount

    @property
    def rank(self) -> int:
        return self._dimensions.rank

    @property
    def is_dense(self) -> bool:
        return self._dimensions.is_dense

    @property
    def column_stride(self) -> int:
        return self._dimensions.column_stride

    @property
    def num_columns(self) -> int:
        return self._dimensions.num_columns

    @property
    def batch_size(self) -> int:
        """
        Extent of the outermost axis.
        """
        return self._dimensions.outermost

    def reinterpret(self, dimensions: Dimensions) -> "Tensor":
        """
        View the same buffer under new dimensions.
        """
        return Tensor(self._device, dimensions, self._buffer)

    def _ensure_vector_coercible(self, kind: str) -> None:
        if not (self.num_columns == 1 or self.is_dense):
            raise ShapeError(
                f"{kind} vectors must either be dense or have num-columns = 1",
                {"dense": self.is_dense, "num_columns": self.num_columns},
            )

    def _vector_part(self) -> tuple[int, Optional[int]]:
        if self.is_dense:
            return self.ecount, None
        return _collapse(self._dimensions, 0, self.rank)

    def as_row_vector(self) -> "Tensor":
        """
        View as a rank-1 vector of `ecount` elements.

        Raises
        ------
        ShapeError
            If the tensor is neither dense nor a single-column view.
        """
        self._ensure_vector_coercible("Row")
        return self.reinterpret(_view_dims(self._dimensions, [self._vector_part()]))

    def as_column_vector(self) -> "Tensor":
        """
        View as an `[ecount, 1]` matrix.

        Raises
        ------
        ShapeError
            If the tensor is neither dense nor a single-column view.
        """
        self._ensure_vector_coercible("Column")
        return self.reinterpret(
            _view_dims(self._dimensions, [self._vector_part(), (1, None)])
        )

    def as_vector(self) -> Optional["Tensor"]:
        """
        Rank-1 view of a dense tensor, None for strided tensors.
        """
        if not self.is_dense:
            return None
        return self.reinterpret(Dimensions([self.ecount]))

    def as_2d_matrix(self) -> "Tensor":
        """
        View as `[everything-else, innermost]`.
        """
        rows, cols = self._dimensions.as_2d_shape()
        if self.rank == 1:
            return self.reinterpret(
                _view_dims(self._dimensions, [(1, None), (cols, self.strides[-1])])
            )
        return self.reinterpret(
            _view_dims(
                self._dimensions,
                [
                    _collapse(self._dimensions, 0, self.rank - 1),
                    (cols, self.strides[-1]),
                ],
            )
        )

    def as_batch_matrix(self) -> "Tensor":
        """
        View as `[outermost, everything-else]`.
        """
        batch, features = self._dimensions.as_batch_shape()
        if self.rank == 1:
            return self.reinterpret(
                _view_dims(self._dimensions, [(1, None), (features, self.strides[-1])])
            )
        return self.reinterpret(
            _view_dims(
                self._dimensions,
                [(batch, self.strides[0]), _collapse(self._dimensions, 1, self.rank)],
            )
        )

    def __repr__(self) -> str:
        return (
            f"Tensor(device={self._device!r}, dimensions={self._dimensions!r}, "
            f"buffer={self._buffer!r})"
        )
