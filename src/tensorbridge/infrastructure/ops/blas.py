"""
Linear-algebra bridge: argument derivation for gemm and gemv.

The bridge validates operands and translates tensors into BLAS-style
arguments (row/column counts, column strides, vector increments). It assumes
the standard row-major layout with optional row padding: the innermost stride
of every matrix operand must be 1.
"""

from __future__ import annotations

from typing import Tuple

from ...domain._errors import ShapeError
from .._checks import (
    check_partial_alias,
    ensure_datatypes,
    ensure_float_datatype,
    ensure_same_device,
    ensure_vector_indexable,
)
from .._context import TensorContext, check_context
from ..tensor._tensor import Tensor


def _matrix(tensor: Tensor, op: str) -> Tensor:
    matrix = tensor.as_2d_matrix()
    if matrix.ecount and matrix.strides[-1] != 1:
        raise ShapeError(
            f"{op} requires matrices with a unit innermost stride",
            {"op": op, "shape": tensor.shape, "strides": tensor.strides},
        )
    return matrix


def trans_2d_shape(trans: bool, tensor: Tensor) -> Tuple[int, int]:
    """
    2D shape of `tensor`, reversed when `trans` is set.
    """
    rows, cols = tensor.dimensions.as_2d_shape()
    return (cols, rows) if trans else (rows, cols)


def blas_vector_increment(tensor: Tensor) -> int:
    """
    BLAS increment of a vector-indexable tensor: 1 when dense, otherwise the
    stride of its row-vector view.
    """
    if tensor.is_dense:
        return 1
    return tensor.as_row_vector().strides[0]


def gemm(
    ctx: TensorContext,
    C: Tensor,
    trans_a: bool,
    trans_b: bool,
    alpha: float,
    A: Tensor,
    B: Tensor,
    beta: float,
) -> Tensor:
    """
    `C = alpha * op(A) @ op(B) + beta * C`.

    Parameters
    ----------
    ctx : TensorContext
        Execution context.
    C : Tensor
        Output matrix, updated in place.
    trans_a, trans_b : bool
        Transpose flags for A and B.
    alpha, beta : float
        Scaling coefficients.
    A, B : Tensor
        Input matrices. Tensors of rank > 2 are read through their 2D
        interpretation.

    Returns
    -------
    Tensor
        `C`.

    Raises
    ------
    ShapeError
        If `op(A).cols != op(B).rows`, `op(A).rows != C.rows` or
        `op(B).cols != C.cols`. The message names both shapes.
    DatatypeMismatch, DeviceMismatch, PrecisionUnsupported
    """
    stream = check_context(ctx)
    ensure_datatypes(C.datatype, A, B)
    ensure_same_device(C, A, B)
    ensure_float_datatype(C.datatype, "gemm")

    a_rows, a_cols = a_shape = trans_2d_shape(trans_a, A)
    b_rows, b_cols = b_shape = trans_2d_shape(trans_b, B)
    c_rows, c_cols = c_shape = C.dimensions.as_2d_shape()

    if a_cols != b_rows:
        raise ShapeError(
            f"A and B have incompatible shapes: A {a_shape}, B {b_shape}",
            {"a_shape": a_shape, "b_shape": b_shape},
        )
    if a_rows != c_rows:
        raise ShapeError(
            f"A and C have incompatible shapes: A {a_shape}, C {c_shape}",
            {"a_shape": a_shape, "c_shape": c_shape},
        )
    if b_cols != c_cols:
        raise ShapeError(
            f"B and C have incompatible shapes: B {b_shape}, C {c_shape}",
            {"b_shape": b_shape, "c_shape": c_shape},
        )

    a = _matrix(A, "gemm")
    b = _matrix(B, "gemm")
    c = _matrix(C, "gemm")
    for operand in (A, B):
        check_partial_alias(stream.driver, C, operand)

    stream.gemm(
        C.buffer,
        c.column_stride,
        trans_a,
        trans_b,
        alpha,
        A.buffer,
        a_rows,
        a_cols,
        a.column_stride,
        B.buffer,
        b_cols,
        b.column_stride,
        beta,
    )
    return C


def gemv(
    ctx: TensorContext,
    c: Tensor,
    trans_a: bool,
    alpha: float,
    A: Tensor,
    x: Tensor,
    beta: float,
) -> Tensor:
    """
    `c = alpha * op(A) @ x + beta * c`.

    `x` and `c` must be vector indexable (dense, or a single column); their
    BLAS increments are derived from their strides.

    Raises
    ------
    ShapeError
        If `x` or `c` are not vector indexable, `|x| != op(A).cols` or
        `|c| != op(A).rows`.
    """
    stream = check_context(ctx)
    ensure_datatypes(c.datatype, A, x)
    ensure_same_device(c, A, x)
    ensure_float_datatype(c.datatype, "gemv")
    ensure_vector_indexable(x, c)

    a_rows, a_cols = A.dimensions.as_2d_shape()
    op_rows, op_cols = op_shape = trans_2d_shape(trans_a, A)
    if x.ecount != op_cols:
        raise ShapeError(
            f"x has {x.ecount} elements but op(A) has shape {op_shape}",
            {"a_shape": op_shape, "x_ecount": x.ecount},
        )
    if c.ecount != op_rows:
        raise ShapeError(
            f"c has {c.ecount} elements but op(A) has shape {op_shape}",
            {"a_shape": op_shape, "c_ecount": c.ecount},
        )

    a = _matrix(A, "gemv")
    for operand in (A, x):
        check_partial_alias(stream.driver, c, operand)

    stream.gemv(
        c.buffer,
        blas_vector_increment(c),
        trans_a,
        alpha,
        A.buffer,
        a_rows,
        a_cols,
        a.column_stride,
        x.buffer,
        blas_vector_increment(x),
        beta,
    )
    return c
