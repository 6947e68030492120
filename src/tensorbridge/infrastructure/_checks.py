"""
Compatibility and aliasing checks shared by every operation front-end.

Each check either returns normally or raises one of the structured errors
from `tensorbridge.domain._errors`. The front-ends compose them before
issuing any backend call, so a rejected call has no side effects.
"""

from __future__ import annotations

from itertools import combinations
from typing import Any, Iterable

from ..domain._datatype import FLOAT_DATATYPES, normalize_datatype
from ..domain._errors import (
    AliasingViolation,
    DatatypeMismatch,
    DeviceMismatch,
    DriverMismatch,
    EcountIncommensurate,
    PrecisionUnsupported,
    ShapeError,
)
from ..domain._backend import IDriver
from .tensor._tensor import Tensor


def _datatype_of(item: Any) -> Any:
    return normalize_datatype(item.datatype)


def ensure_datatypes(expected: Any, *operands: Any) -> None:
    """
    Require every operand to report the `expected` datatype.

    Raises
    ------
    DatatypeMismatch
        Naming the expected datatype and each operand's datatype.
    """
    expected = normalize_datatype(expected)
    actual = [_datatype_of(o) for o in operands]
    if any(a != expected for a in actual):
        raise DatatypeMismatch(expected, actual)


def same_device(*tensors: Tensor) -> bool:
    if not tensors:
        return True
    first = tensors[0].device
    return all(t.device == first for t in tensors[1:])


def ensure_same_device(*tensors: Tensor) -> None:
    """
    Raises
    ------
    DeviceMismatch
        If the tensors do not all live on one device.
    """
    if not same_device(*tensors):
        raise DeviceMismatch([t.device for t in tensors])


def ensure_same_driver(*tensors: Tensor) -> None:
    """
    Raises
    ------
    DriverMismatch
        If the tensors are not all served by one backend driver.
    """
    drivers = [getattr(t.device, "driver", None) for t in tensors]
    if any(d != drivers[0] for d in drivers[1:]):
        raise DriverMismatch(drivers)


def is_bulk_copy(dest: Tensor, src: Tensor) -> bool:
    """
    True iff `src` can be moved into `dest` with one device-to-device copy.
    """
    return (
        dest.is_dense
        and src.is_dense
        and dest.datatype == src.datatype
        and dest.ecount == src.ecount
    )


def ensure_assignment_matches(dest: Tensor, src: Tensor) -> None:
    """
    Device rules for assignment.

    Pairs that move with a raw bulk copy (dense, same datatype, equal
    element count) only need a common driver. Every other pair must share
    a device.
    """
    if is_bulk_copy(dest, src):
        ensure_same_driver(dest, src)
    else:
        ensure_same_device(dest, src)


def commensurate(lhs_ecount: int, rhs_ecount: int) -> bool:
    """
    True iff the smaller count is zero or evenly divides the larger.
    """
    small = min(lhs_ecount, rhs_ecount)
    large = max(lhs_ecount, rhs_ecount)
    return small == 0 or large % small == 0


def ensure_ecounts_commensurate(x: Tensor, y: Tensor) -> None:
    """
    Raises
    ------
    EcountIncommensurate
        If the element counts of `x` and `y` are not commensurate.
    """
    if not commensurate(x.ecount, y.ecount):
        raise EcountIncommensurate(x.ecount, y.ecount)


def check_partial_alias(driver: IDriver, *tensors: Tensor) -> None:
    """
    Reject any pair of operands whose buffers overlap without being the
    identical region.

    Raises
    ------
    AliasingViolation
    """
    for a, b in combinations(tensors, 2):
        if driver.partially_alias(a.buffer, b.buffer):
            raise AliasingViolation(
                "Partially overlapping arguments detected",
                {"lhs": repr(a.buffer), "rhs": repr(b.buffer)},
            )


def ensure_no_alias(driver: IDriver, dest: Tensor, *inputs: Tensor) -> None:
    """
    Reject `dest` aliasing (exactly or partially) any of `inputs`.

    Raises
    ------
    AliasingViolation
    """
    for item in inputs:
        if driver.alias(dest.buffer, item.buffer) or driver.partially_alias(
            dest.buffer, item.buffer
        ):
            raise AliasingViolation(
                "Destination may not alias an input of this operation",
                {"dest": repr(dest.buffer), "input": repr(item.buffer)},
            )


def ensure_float_datatype(datatype: Any, op: str) -> None:
    """
    Raises
    ------
    PrecisionUnsupported
        If `datatype` is not float32 or float64.
    """
    if normalize_datatype(datatype) not in FLOAT_DATATYPES:
        raise PrecisionUnsupported(op, datatype)


def ensure_vector_indexable(*tensors: Tensor) -> None:
    """
    Require each tensor to be dense or have a single column.

    Raises
    ------
    ShapeError
    """
    for t in tensors:
        if not (t.is_dense or t.num_columns == 1):
            raise ShapeError(
                "Argument is not vector indexable",
                {"shape": t.shape, "strides": t.strides},
            )


def ensure_dense(op: str, *tensors: Tensor) -> None:
    """
    Raises
    ------
    ShapeError
        If any tensor is strided.
    """
    for t in tensors:
        if not t.is_dense:
            raise ShapeError(
                f"{op} requires dense tensors",
                {"op": op, "shape": t.shape, "strides": t.strides},
            )


def ensure_same_shape(op: str, *tensors: Tensor) -> None:
    """
    Raises
    ------
    ShapeError
        If the tensors do not all have the same shape.
    """
    shapes = [t.shape for t in tensors]
    if any(s != shapes[0] for s in shapes[1:]):
        raise ShapeError(
            f"{op}: shapes must match, got {shapes}", {"op": op, "shapes": shapes}
        )


def max_ecount(items: Iterable[Tensor]) -> int:
    return max((t.ecount for t in items), default=0)
