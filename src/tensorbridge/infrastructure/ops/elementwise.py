"""
Elementwise operation front-ends: assign, unary, binary and ternary ops.

Each entry point resolves the kind of its operands (number or tensor) once,
routes the call through a fixed dispatch table keyed by the kind tuple,
validates the operands and forwards normalized arguments to one backend entry
point of the context's stream.

Semantics
---------
- `assign(ctx, dest, src)`:                 `dest = src`
- `unary_op(ctx, dest, alpha, x, op)`:      `dest = op(alpha * x)`
- `binary_op(ctx, dest, alpha, x, beta, y, op)`:
                                            `dest = alpha * x OP beta * y`
- `ternary_op(ctx, dest, alpha, x, beta, y, gamma, z, op)`:
                                            `dest = op(alpha * x, beta * y, gamma * z)`

Smaller tensor operands are repeated to cover larger ones (broadcasting by
remainder). Every operation iterates over the largest element count among its
tensor operands, which must all be commensurate with `dest`.

When `dest` is exactly the same buffer region as an input of a unary or binary
op, the accumulate form of the kernel is used. Partial overlap is always
rejected. Ternary ops have no accumulate form, so `dest` may not alias any of
their inputs at all.

All operations return `dest`.
"""

from __future__ import annotations

from itertools import product
from typing import Any, Dict, Tuple

import numpy as np

from ...domain._errors import EcountIncommensurate, UnsupportedOperand
from ...domain.utils._operand_dispatch import (
    OperandKind,
    create_dispatch_table,
    is_scalar,
    operand_kinds,
)
from .._checks import (
    check_partial_alias,
    ensure_assignment_matches,
    ensure_datatypes,
    ensure_ecounts_commensurate,
    ensure_no_alias,
    ensure_same_device,
    is_bulk_copy,
    max_ecount,
)
from .._context import TensorContext, check_context
from ..tensor._tensor import Tensor
from ._operations import (
    BINARY_FUNCTIONS,
    BINARY_OPS,
    TERNARY_FUNCTIONS,
    TERNARY_OPS,
    UNARY_FUNCTIONS,
    UNARY_OPS,
    host_compute,
)

NUMBER = OperandKind.NUMBER
TENSOR = OperandKind.TENSOR

_UNARY_ALIASES = {"-": "negate"}

_assign_paths = create_dispatch_table("assign")
_unary_paths = create_dispatch_table("unary_op")
_binary_paths = create_dispatch_table("binary_op")
_ternary_paths = create_dispatch_table("ternary_op")


def _normalize_op(op: str, known: frozenset, kind: str) -> str:
    op = _UNARY_ALIASES.get(op, op) if kind == "unary" else op
    if op not in known:
        raise UnsupportedOperand(
            f"Unknown {kind} operation {op!r}",
            {"op": op, "supported": sorted(known)},
        )
    return op


def _cast_to(dest: Tensor, value: float) -> Any:
    with np.errstate(invalid="ignore", over="ignore"):
        return np.asarray(value, dtype=np.float64).astype(dest.datatype.value).item()


# ----------------------------------------------------------------------
# assign
# ----------------------------------------------------------------------
@_assign_paths.register(TENSOR, NUMBER)
def _assign_number(ctx: TensorContext, dest: Tensor, src: float) -> Tensor:
    stream = check_context(ctx)
    if dest.is_dense:
        stream.memset(dest.buffer, 0, src, dest.ecount)
    else:
        stream.assign_constant(dest.buffer, dest.dimensions, src, dest.ecount)
    return dest


@_assign_paths.register(TENSOR, TENSOR)
def _assign_tensor(ctx: TensorContext, dest: Tensor, src: Tensor) -> Tensor:
    stream = check_context(ctx)
    if dest.ecount < src.ecount:
        raise EcountIncommensurate(
            dest.ecount,
            src.ecount,
            "Destination element count must be >= source element count",
        )
    ensure_ecounts_commensurate(dest, src)
    ensure_assignment_matches(dest, src)
    check_partial_alias(stream.driver, dest, src)
    if is_bulk_copy(dest, src):
        stream.copy_device_to_device(src.buffer, 0, dest.buffer, 0, dest.ecount)
    else:
        stream.assign(
            dest.buffer,
            dest.dimensions,
            src.buffer,
            src.dimensions,
            max(dest.ecount, src.ecount),
        )
    return dest


def assign(ctx: TensorContext, dest: Any, src: Any) -> Tensor:
    """
    `dest = src`, where `src` is a number or a tensor.

    A number is written into every element of `dest`. A tensor source must
    not have more elements than `dest` and its element count must divide
    `dest`'s; the source pattern is tiled across `dest`.

    Raises
    ------
    EcountIncommensurate
        If `src` is larger than `dest` or the counts are not commensurate.
    DeviceMismatch, DriverMismatch
        If the tensors cannot reach each other.
    AliasingViolation
        If `dest` and `src` partially overlap.
    UnsupportedOperand
        If `dest` is not a tensor.
    """
    check_context(ctx)
    handler = _assign_paths.lookup(*operand_kinds(dest, src))
    return handler(ctx, dest, src)


# ----------------------------------------------------------------------
# unary
# ----------------------------------------------------------------------
@_unary_paths.register(TENSOR, NUMBER)
def _unary_number(
    ctx: TensorContext, dest: Tensor, alpha: float, x: float, op: str
) -> Tensor:
    value = host_compute(UNARY_FUNCTIONS[op], alpha * x)
    return assign(ctx, dest, _cast_to(dest, value))


@_unary_paths.register(TENSOR, TENSOR)
def _unary_tensor(
    ctx: TensorContext, dest: Tensor, alpha: float, x: Tensor, op: str
) -> Tensor:
    stream = check_context(ctx)
    driver = stream.driver
    if driver.alias(dest.buffer, x.buffer):
        stream.unary_accum(dest.buffer, dest.dimensions, alpha, op, dest.ecount)
        return dest
    ensure_datatypes(dest.datatype, x)
    ensure_same_device(dest, x)
    ensure_ecounts_commensurate(dest, x)
    check_partial_alias(driver, dest, x)
    stream.unary_op(
        dest.buffer,
        dest.dimensions,
        x.buffer,
        x.dimensions,
        alpha,
        op,
        max_ecount((dest, x)),
    )
    return dest


def unary_op(ctx: TensorContext, dest: Any, alpha: float, x: Any, op: str) -> Tensor:
    """
    `dest = op(alpha * x)` for `op` in ceil, round, floor, negate, tanh,
    logistic ("-" is accepted for negate).

    A number `x` is evaluated on the host and assigned. Rounding is half-up.
    """
    check_context(ctx)
    op = _normalize_op(op, UNARY_OPS, "unary")
    handler = _unary_paths.lookup(*operand_kinds(dest, x))
    return handler(ctx, dest, alpha, x, op)


# ----------------------------------------------------------------------
# binary
# ----------------------------------------------------------------------
@_binary_paths.register(TENSOR, NUMBER, NUMBER)
def _binary_numbers(
    ctx: TensorContext,
    dest: Tensor,
    alpha: float,
    x: float,
    beta: float,
    y: float,
    op: str,
) -> Tensor:
    value = host_compute(BINARY_FUNCTIONS[op], alpha * x, beta * y)
    return assign(ctx, dest, _cast_to(dest, value))


def _binary_with_constant(
    ctx: TensorContext,
    dest: Tensor,
    tensor: Tensor,
    tensor_alpha: float,
    scalar: float,
    op: str,
    reverse_operands: bool,
) -> Tensor:
    stream = check_context(ctx)
    driver = stream.driver
    ensure_datatypes(dest.datatype, tensor)
    ensure_same_device(dest, tensor)
    ensure_ecounts_commensurate(dest, tensor)
    n_elems = max_ecount((dest, tensor))
    if driver.alias(dest.buffer, tensor.buffer):
        stream.binary_accum_constant(
            dest.buffer,
            dest.dimensions,
            tensor_alpha,
            scalar,
            n_elems,
            op,
            reverse_operands,
        )
        return dest
    check_partial_alias(driver, dest, tensor)
    stream.binary_op_constant(
        dest.buffer,
        dest.dimensions,
        tensor.buffer,
        tensor.dimensions,
        tensor_alpha,
        scalar,
        n_elems,
        op,
        reverse_operands,
    )
    return dest


@_binary_paths.register(TENSOR, TENSOR, NUMBER)
def _binary_tensor_number(
    ctx: TensorContext,
    dest: Tensor,
    alpha: float,
    x: Tensor,
    beta: float,
    y: float,
    op: str,
) -> Tensor:
    return _binary_with_constant(ctx, dest, x, alpha, beta * y, op, False)


@_binary_paths.register(TENSOR, NUMBER, TENSOR)
def _binary_number_tensor(
    ctx: TensorContext,
    dest: Tensor,
    alpha: float,
    x: float,
    beta: float,
    y: Tensor,
    op: str,
) -> Tensor:
    return _binary_with_constant(ctx, dest, y, beta, alpha * x, op, True)


@_binary_paths.register(TENSOR, TENSOR, TENSOR)
def _binary_tensors(
    ctx: TensorContext,
    dest: Tensor,
    alpha: float,
    x: Tensor,
    beta: float,
    y: Tensor,
    op: str,
) -> Tensor:
    stream = check_context(ctx)
    driver = stream.driver
    ensure_datatypes(dest.datatype, x, y)
    ensure_same_device(dest, x, y)
    ensure_ecounts_commensurate(dest, x)
    ensure_ecounts_commensurate(dest, y)
    ensure_ecounts_commensurate(x, y)
    check_partial_alias(driver, dest, x, y)

    if driver.alias(dest.buffer, x.buffer):
        stream.binary_accum(
            dest.buffer,
            dest.dimensions,
            alpha,
            y.buffer,
            y.dimensions,
            beta,
            max_ecount((dest, y)),
            op,
            False,
        )
    elif driver.alias(dest.buffer, y.buffer):
        stream.binary_accum(
            dest.buffer,
            dest.dimensions,
            beta,
            x.buffer,
            x.dimensions,
            alpha,
            max_ecount((dest, x)),
            op,
            True,
        )
    else:
        stream.binary_op(
            dest.buffer,
            dest.dimensions,
            x.buffer,
            x.dimensions,
            alpha,
            y.buffer,
            y.dimensions,
            beta,
            max_ecount((dest, x, y)),
            op,
        )
    return dest


def binary_op(
    ctx: TensorContext,
    dest: Any,
    alpha: float,
    x: Any,
    beta: float,
    y: Any,
    op: str,
) -> Tensor:
    """
    `dest = alpha * x OP beta * y` for `OP` in +, -, *, /, max, min.

    Either operand may be a number. When `dest` is exactly `x` (or `y`) the
    operation accumulates into `dest`; operand order is preserved for the
    non-commutative operators.

    Raises
    ------
    UnsupportedOperand
        For an unknown operator or a number `dest`.
    DatatypeMismatch, DeviceMismatch, EcountIncommensurate, AliasingViolation
        When the tensor operands are incompatible.
    """
    check_context(ctx)
    op = _normalize_op(op, BINARY_OPS, "binary")
    handler = _binary_paths.lookup(*operand_kinds(dest, x, y))
    return handler(ctx, dest, alpha, x, beta, y, op)


# ----------------------------------------------------------------------
# ternary
# ----------------------------------------------------------------------
_SLOTS = ("x", "y", "z")


@_ternary_paths.register(TENSOR, NUMBER, NUMBER, NUMBER)
def _ternary_numbers(
    ctx: TensorContext, dest: Tensor, operands: Tuple[Tuple[float, Any], ...], op: str
) -> Tensor:
    values = [coeff * value for coeff, value in operands]
    result = host_compute(TERNARY_FUNCTIONS[op], *values)
    return assign(ctx, dest, _cast_to(dest, result))


def _ternary_with_tensors(
    ctx: TensorContext, dest: Tensor, operands: Tuple[Tuple[float, Any], ...], op: str
) -> Tensor:
    stream = check_context(ctx)
    tensors = []
    constants = []
    for slot, (coeff, value) in zip(_SLOTS, operands):
        if is_scalar(value):
            constants.append((slot, coeff * value))
        else:
            tensors.append((slot, coeff, value))

    inputs = [t for _, _, t in tensors]
    ensure_datatypes(dest.datatype, *inputs)
    ensure_same_device(dest, *inputs)
    for t in inputs:
        ensure_ecounts_commensurate(dest, t)
    ensure_no_alias(stream.driver, dest, *inputs)

    n_elems = max_ecount([dest, *inputs])
    arg_order = tuple(slot for slot, _, _ in tensors) + tuple(
        slot for slot, _ in constants
    )
    tensor_args = [
        arg for _, coeff, t in tensors for arg in (t.buffer, t.dimensions, coeff)
    ]
    constant_args = [value for _, value in constants]

    if len(tensors) == 3:
        stream.ternary_op(dest.buffer, dest.dimensions, *tensor_args, n_elems, op)
    elif len(tensors) == 2:
        stream.ternary_op_constant(
            dest.buffer,
            dest.dimensions,
            *tensor_args,
            *constant_args,
            n_elems,
            op,
            arg_order,
        )
    else:
        stream.ternary_op_constant_constant(
            dest.buffer,
            dest.dimensions,
            *tensor_args,
            *constant_args,
            n_elems,
            op,
            arg_order,
        )
    return dest


for _kinds in product((NUMBER, TENSOR), repeat=3):
    if TENSOR in _kinds:
        _ternary_paths.register(TENSOR, *_kinds)(_ternary_with_tensors)
del _kinds


def ternary_op(
    ctx: TensorContext,
    dest: Any,
    alpha: float,
    x: Any,
    beta: float,
    y: Any,
    gamma: float,
    z: Any,
    op: str,
) -> Tensor:
    """
    `dest = op(alpha * x, beta * y, gamma * z)`.

    The only operation is "select": `gamma * z` where `alpha * x >= 0`,
    otherwise `beta * y`. Any operand may be a number; the backend receives
    the tensor operands first and an `arg_order` naming the logical slot each
    argument fills.

    Raises
    ------
    AliasingViolation
        If `dest` aliases (exactly or partially) any tensor operand.
    """
    check_context(ctx)
    op = _normalize_op(op, TERNARY_OPS, "ternary")
    handler = _ternary_paths.lookup(*operand_kinds(dest, x, y, z))
    return handler(ctx, dest, ((alpha, x), (beta, y), (gamma, z)), op)


OPERATION_TABLES: Dict[str, Any] = {
    "assign": _assign_paths,
    "unary_op": _unary_paths,
    "binary_op": _binary_paths,
    "ternary_op": _ternary_paths,
}
