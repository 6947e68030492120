"""
CPU reference implementations of the elementwise kernels (NumPy backend).

These functions are the numerical ground truth for every elementwise entry
point of the backend contract. They operate on flat NumPy arrays paired with
the `Dimensions` that describe how to read them, and they favor clarity over
performance.

Iteration model
---------------
Every kernel iterates over `n_elems` logical indices. Operand `k` with element
count `e_k` is read at logical index `i % e_k`, which is how a smaller operand
is repeated to cover a larger one (broadcasting). Logical indices are mapped
to buffer offsets through the operand's shape and strides, so padded and
strided views are handled uniformly.

The iteration is processed in chunks of one destination length. Within a
chunk every destination element is written at most once; across chunks the
destination is re-read, so an accumulate kernel whose other operand is larger
than the destination sums (or otherwise folds) the repeats sequentially.

Design notes
------------
- Rounding is half-up (`floor(v + 0.5)`), matching the host scalar path.
- Division follows IEEE semantics; NumPy floating-point warnings are
  suppressed inside the kernels.
- An empty operand makes the whole call a no-op.
"""

from __future__ import annotations

from typing import Callable, Iterator, Sequence

import numpy as np

from ...domain._dimensions import Dimensions
from ._operations import BINARY_FUNCTIONS, TERNARY_FUNCTIONS, UNARY_FUNCTIONS


def strided_offsets(dims: Dimensions) -> np.ndarray:
    """
    Buffer offset of every logical element of `dims`, in row-major order.

    Parameters
    ----------
    dims : Dimensions
        Shape and strides of the view.

    Returns
    -------
    np.ndarray
        int64 array of length `dims.ecount`.
    """
    n = dims.ecount
    if n == 0:
        return np.zeros(0, dtype=np.int64)
    if dims.rank == 0:
        return np.zeros(1, dtype=np.int64)
    coords = np.unravel_index(np.arange(n, dtype=np.int64), dims.shape)
    offsets = np.zeros(n, dtype=np.int64)
    for c, stride in zip(coords, dims.strides):
        offsets += c.astype(np.int64) * int(stride)
    return offsets


def _chunks(n_elems: int, dest_ecount: int) -> Iterator[np.ndarray]:
    step = max(int(dest_ecount), 1)
    for start in range(0, int(n_elems), step):
        yield np.arange(start, min(start + step, int(n_elems)), dtype=np.int64)


class _Operand:
    """Flat array plus precomputed offsets, indexed by remainder."""

    __slots__ = ("flat", "offsets", "ecount")

    def __init__(self, flat: np.ndarray, dims: Dimensions) -> None:
        self.flat = flat
        self.offsets = strided_offsets(dims)
        self.ecount = dims.ecount

    def at(self, idx: np.ndarray) -> np.ndarray:
        return self.offsets[idx % self.ecount]

    def read(self, idx: np.ndarray) -> np.ndarray:
        return self.flat[self.at(idx)]


def _run(
    n_elems: int,
    dest: _Operand,
    compute: Callable[[np.ndarray], np.ndarray],
    *others: _Operand,
) -> None:
    if n_elems <= 0 or dest.ecount == 0 or any(o.ecount == 0 for o in others):
        return
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        for idx in _chunks(n_elems, dest.ecount):
            dest.flat[dest.at(idx)] = compute(idx)


def assign_constant_cpu(
    flat: np.ndarray, dims: Dimensions, value: float, n_elems: int
) -> None:
    """
    Write `value` into every element of a (possibly strided) view.
    """
    dest = _Operand(flat, dims)
    _run(n_elems, dest, lambda idx: value)


def assign_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    src_flat: np.ndarray,
    src_dims: Dimensions,
    n_elems: int,
) -> None:
    """
    Strided assignment with broadcasting: `dest[i % |dest|] = src[i % |src|]`.
    """
    dest = _Operand(dest_flat, dest_dims)
    src = _Operand(src_flat, src_dims)
    _run(n_elems, dest, src.read, src)


def unary_accum_cpu(
    flat: np.ndarray, dims: Dimensions, alpha: float, op: str, n_elems: int
) -> None:
    """
    In-place unary op: `dest = op(alpha * dest)`.
    """
    fn = UNARY_FUNCTIONS[op]
    dest = _Operand(flat, dims)
    _run(n_elems, dest, lambda idx: fn(alpha * dest.read(idx)))


def unary_op_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    x_flat: np.ndarray,
    x_dims: Dimensions,
    alpha: float,
    op: str,
    n_elems: int,
) -> None:
    """
    `dest = op(alpha * x)`.
    """
    fn = UNARY_FUNCTIONS[op]
    dest = _Operand(dest_flat, dest_dims)
    x = _Operand(x_flat, x_dims)
    _run(n_elems, dest, lambda idx: fn(alpha * x.read(idx)), x)


def _ordered(
    fn: Callable[[np.ndarray, np.ndarray], np.ndarray], reverse_operands: bool
) -> Callable[[np.ndarray, np.ndarray], np.ndarray]:
    if reverse_operands:
        return lambda lhs, rhs: fn(rhs, lhs)
    return fn


def binary_accum_constant_cpu(
    flat: np.ndarray,
    dims: Dimensions,
    dest_alpha: float,
    scalar: float,
    n_elems: int,
    op: str,
    reverse_operands: bool,
) -> None:
    """
    `dest = dest_alpha * dest OP scalar` (operands swapped when reversed).
    """
    fn = _ordered(BINARY_FUNCTIONS[op], reverse_operands)
    dest = _Operand(flat, dims)
    _run(n_elems, dest, lambda idx: fn(dest_alpha * dest.read(idx), scalar))


def binary_op_constant_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    x_flat: np.ndarray,
    x_dims: Dimensions,
    x_alpha: float,
    scalar: float,
    n_elems: int,
    op: str,
    reverse_operands: bool,
) -> None:
    """
    `dest = x_alpha * x OP scalar` (operands swapped when reversed).
    """
    fn = _ordered(BINARY_FUNCTIONS[op], reverse_operands)
    dest = _Operand(dest_flat, dest_dims)
    x = _Operand(x_flat, x_dims)
    _run(n_elems, dest, lambda idx: fn(x_alpha * x.read(idx), scalar), x)


def binary_accum_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    dest_alpha: float,
    y_flat: np.ndarray,
    y_dims: Dimensions,
    y_alpha: float,
    n_elems: int,
    op: str,
    reverse_operands: bool,
) -> None:
    """
    `dest = dest_alpha * dest OP y_alpha * y` (operands swapped when reversed).
    """
    fn = _ordered(BINARY_FUNCTIONS[op], reverse_operands)
    dest = _Operand(dest_flat, dest_dims)
    y = _Operand(y_flat, y_dims)
    _run(
        n_elems,
        dest,
        lambda idx: fn(dest_alpha * dest.read(idx), y_alpha * y.read(idx)),
        y,
    )


def binary_op_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    x_flat: np.ndarray,
    x_dims: Dimensions,
    x_alpha: float,
    y_flat: np.ndarray,
    y_dims: Dimensions,
    y_alpha: float,
    n_elems: int,
    op: str,
) -> None:
    """
    `dest = x_alpha * x OP y_alpha * y`.
    """
    fn = BINARY_FUNCTIONS[op]
    dest = _Operand(dest_flat, dest_dims)
    x = _Operand(x_flat, x_dims)
    y = _Operand(y_flat, y_dims)
    _run(
        n_elems,
        dest,
        lambda idx: fn(x_alpha * x.read(idx), y_alpha * y.read(idx)),
        x,
        y,
    )


def ternary_op_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    x_flat: np.ndarray,
    x_dims: Dimensions,
    x_alpha: float,
    y_flat: np.ndarray,
    y_dims: Dimensions,
    y_alpha: float,
    z_flat: np.ndarray,
    z_dims: Dimensions,
    z_alpha: float,
    n_elems: int,
    op: str,
) -> None:
    """
    `dest = op(x_alpha * x, y_alpha * y, z_alpha * z)` with three tensors.
    """
    fn = TERNARY_FUNCTIONS[op]
    dest = _Operand(dest_flat, dest_dims)
    x = _Operand(x_flat, x_dims)
    y = _Operand(y_flat, y_dims)
    z = _Operand(z_flat, z_dims)
    _run(
        n_elems,
        dest,
        lambda idx: fn(
            x_alpha * x.read(idx), y_alpha * y.read(idx), z_alpha * z.read(idx)
        ),
        x,
        y,
        z,
    )


def _slot_values(
    arg_order: Sequence[str], values: Sequence[object]
) -> tuple[object, object, object]:
    slots = dict(zip(arg_order, values))
    return slots["x"], slots["y"], slots["z"]


def ternary_op_constant_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    a_flat: np.ndarray,
    a_dims: Dimensions,
    a_alpha: float,
    b_flat: np.ndarray,
    b_dims: Dimensions,
    b_alpha: float,
    constant: float,
    n_elems: int,
    op: str,
    arg_order: Sequence[str],
) -> None:
    """
    Ternary op with two tensors and one constant.

    `arg_order` names the logical slot ("x", "y" or "z") filled by `a`, `b` and
    `constant` respectively.
    """
    fn = TERNARY_FUNCTIONS[op]
    dest = _Operand(dest_flat, dest_dims)
    a = _Operand(a_flat, a_dims)
    b = _Operand(b_flat, b_dims)

    def compute(idx: np.ndarray) -> np.ndarray:
        x, y, z = _slot_values(
            arg_order, (a_alpha * a.read(idx), b_alpha * b.read(idx), constant)
        )
        return fn(x, y, z)

    _run(n_elems, dest, compute, a, b)


def ternary_op_constant_constant_cpu(
    dest_flat: np.ndarray,
    dest_dims: Dimensions,
    a_flat: np.ndarray,
    a_dims: Dimensions,
    a_alpha: float,
    constant_1: float,
    constant_2: float,
    n_elems: int,
    op: str,
    arg_order: Sequence[str],
) -> None:
    """
    Ternary op with one tensor and two constants, slots given by `arg_order`.
    """
    fn = TERNARY_FUNCTIONS[op]
    dest = _Operand(dest_flat, dest_dims)
    a = _Operand(a_flat, a_dims)

    def compute(idx: np.ndarray) -> np.ndarray:
        x, y, z = _slot_values(
            arg_order, (a_alpha * a.read(idx), constant_1, constant_2)
        )
        return fn(
            np.broadcast_to(x, idx.shape),
            np.broadcast_to(y, idx.shape),
            np.broadcast_to(z, idx.shape),
        )

    _run(n_elems, dest, compute, a)
