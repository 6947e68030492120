"""
Shape/stride/name metadata for tensor views.

A `Dimensions` object describes how a logical multi-dimensional view maps
onto a flat buffer. By convention index 0 is the slowest-varying (outermost)
axis and the last index is the fastest-varying (innermost) axis.

Stride invariant
----------------
For every axis `i`, walking from the innermost axis outward:

    strides[i] >= strides[i + 1] * shape[i + 1]

A stride may be larger than the tightly packed minimum (row padding) but never
smaller, since a smaller stride would make distinct logical elements share a
memory location. Missing strides are filled with the minimum legal value.

Density
-------
A view is dense iff `strides[0] == product(shape[1:])`. Together with the
stride invariant this implies that every inner stride is tight as well, so a
dense view addresses exactly `ecount` consecutive elements.
"""

from __future__ import annotations

from math import prod
from typing import Optional, Sequence

from ._errors import ShapeError


class Dimensions:
    """
    Immutable shape, strides and optional axis names.

    Parameters
    ----------
    shape : Sequence[int]
        Extent of each axis, outermost first. Extents must be non-negative.
    names : Sequence[object], optional
        Optional label for each axis.
    strides : Sequence[Optional[int]], optional
        Explicit strides. Entries that are None are filled with the minimum
        legal stride. A sequence shorter than `shape` is aligned to the
        innermost axes.

    Raises
    ------
    ShapeError
        If an explicit stride is smaller than the minimum legal stride for its
        axis, if a stride or extent is negative, or if the lengths of
        `names`/`strides` exceed the rank.
    """

    __slots__ = ("_shape", "_strides", "_names")

    def __init__(
        self,
        shape: Sequence[int],
        *,
        names: Optional[Sequence[object]] = None,
        strides: Optional[Sequence[Optional[int]]] = None,
    ) -> None:
        shape_t = tuple(int(s) for s in shape)
        if any(s < 0 for s in shape_t):
            raise ShapeError(
                f"Shape extents must be non-negative, got {shape_t}",
                {"shape": shape_t},
            )
        rank = len(shape_t)

        requested: list[Optional[int]] = [None] * rank
        if strides is not None:
            strides_l = list(strides)
            if len(strides_l) > rank:
                raise ShapeError(
                    f"Got {len(strides_l)} strides for shape {shape_t}",
                    {"shape": shape_t, "strides": tuple(strides_l)},
                )
            # align to the innermost axes
            requested[rank - len(strides_l) :] = [
                None if s is None else int(s) for s in strides_l
            ]

        if names is not None and len(names) != rank:
            raise ShapeError(
                f"Got {len(names)} names for shape {shape_t}",
                {"shape": shape_t, "names": tuple(names)},
            )

        computed = [0] * rank
        for axis in range(rank - 1, -1, -1):
            cur = requested[axis]
            if axis == rank - 1:
                min_stride = 1
            else:
                min_stride = computed[axis + 1] * shape_t[axis + 1]
            if cur is None:
                computed[axis] = min_stride
                continue
            if cur < 1 or cur < min_stride:
                raise ShapeError(
                    f"Invalid stride (too small) detected on axis {axis}: "
                    f"stride {cur} < minimum {max(min_stride, 1)}",
                    {
                        "axis": axis,
                        "shape": shape_t,
                        "strides": tuple(requested),
                        "stride": cur,
                        "min_stride": max(min_stride, 1),
                    },
                )
            computed[axis] = cur

        self._shape = shape_t
        self._strides = tuple(computed)
        self._names = tuple(names) if names is not None else None

    @classmethod
    def from_map(
        cls,
        *,
        batch_size: int = 1,
        channels: int = 1,
        height: int = 1,
        width: int = 1,
    ) -> "Dimensions":
        """
        Build named NCHW dimensions.
        """
        return cls(
            [batch_size, channels, height, width],
            names=["batch_size", "channels", "height", "width"],
        )

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def strides(self) -> tuple[int, ...]:
        return self._strides

    @property
    def names(self) -> Optional[tuple[object, ...]]:
        return self._names

    @property
    def rank(self) -> int:
        return len(self._shape)

    @property
    def ecount(self) -> int:
        """
        Total logical element count (product of the shape).
        """
        return prod(self._shape)

    @property
    def buffer_ecount(self) -> int:
        """
        Minimum number of buffer elements needed to address the whole view.

        This is one past the offset of the last addressable element, summed
        over every axis so that padding on interior axes and strided innermost
        axes are accounted for:

            1 + sum((shape[i] - 1) * strides[i])

        Returns 0 for an empty view. Padding on an axis of extent 1 is never
        addressed, so such a view is not dense yet has `buffer_ecount == ecount`.
        """
        if self.ecount == 0:
            return 0
        return 1 + sum((n - 1) * s for n, s in zip(self._shape, self._strides))

    @property
    def outermost(self) -> int:
        """
        Extent of the least rapidly changing axis.
        """
        self._ensure_rank(1)
        return self._shape[0]

    @property
    def innermost(self) -> int:
        """
        Extent of the most rapidly changing axis.
        """
        self._ensure_rank(1)
        return self._shape[-1]

    @property
    def is_dense(self) -> bool:
        """
        True iff the outermost stride equals the product of all inner extents.
        """
        if not self._shape:
            return True
        return self._strides[0] == prod(self._shape[1:])

    @property
    def column_stride(self) -> int:
        """
        Stride between consecutive rows of the 2D interpretation.

        The second-to-innermost stride, or the axis-0 extent for rank 1.
        """
        if len(self._strides) > 1:
            return self._strides[-2]
        self._ensure_rank(1)
        return self._shape[0]

    @property
    def num_columns(self) -> int:
        """
        The second shape element, 1 when the rank is below 2.
        """
        return self._shape[1] if len(self._shape) > 1 else 1

    def as_2d_shape(self) -> tuple[int, int]:
        """
        Keep the innermost axis and collapse every other axis into rows.

        Returns
        -------
        tuple[int, int]
            `(rows, cols)`; rank-1 shapes give `(1, n)`.
        """
        self._ensure_rank(1, "Invalid shape in dimension map")
        if len(self._shape) == 1:
            return (1, self._shape[0])
        return (prod(self._shape[:-1]), self._shape[-1])

    def as_batch_shape(self) -> tuple[int, int]:
        """
        Keep the outermost axis as the batch and collapse everything else.

        Returns
        -------
        tuple[int, int]
            `(batch, features)`; rank-1 shapes give `(1, n)`.
        """
        self._ensure_rank(1, "Invalid shape in dimension map")
        if len(self._shape) == 1:
            return (1, self._shape[0])
        return (self._shape[0], prod(self._shape[1:]))

    def _ensure_rank(self, minimum: int, message: str = "Rank too low") -> None:
        if len(self._shape) < minimum:
            raise ShapeError(
                f"{message}: shape {self._shape} needs at least {minimum} dimension(s)",
                {"shape": self._shape},
            )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dimensions):
            return NotImplemented
        return (self._shape, self._strides, self._names) == (
            other._shape,
            other._strides,
            other._names,
        )

    def __hash__(self) -> int:
        return hash((self._shape, self._strides, self._names))

    def __repr__(self) -> str:
        if self._names is None:
            return f"Dimensions(shape={list(self._shape)}, strides={list(self._strides)})"
        return (
            f"Dimensions(shape={list(self._shape)}, strides={list(self._strides)}, "
            f"names={list(self._names)})"
        )
