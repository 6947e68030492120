"""
CPU reference implementations of gemm and gemv (NumPy backend).

Matrices are passed BLAS style: a flat array, a row count, a column count and
a column stride (the distance between the starts of consecutive rows). Rows
may therefore be padded. Vectors are passed as a flat array plus an
increment.

Conventions
-----------
- gemm receives the shape of `op(A)` (after the optional transpose) through
  `a_row_count` / `a_col_count`, and the column count of `op(B)`.
- gemv receives the stored (untransposed) shape of `A`.
- When `beta == 0` the previous contents of the output are ignored, so
  uninitialized outputs (NaN included) never leak into the result.
"""

from __future__ import annotations

import numpy as np


def _matrix_index(rows: int, cols: int, colstride: int) -> np.ndarray:
    return (
        np.arange(rows, dtype=np.int64)[:, None] * int(colstride)
        + np.arange(cols, dtype=np.int64)[None, :]
    )


def read_matrix(flat: np.ndarray, rows: int, cols: int, colstride: int) -> np.ndarray:
    """
    Gather a (rows, cols) matrix out of a padded row-major buffer.
    """
    return flat[_matrix_index(rows, cols, colstride)]


def _write_matrix(
    flat: np.ndarray, value: np.ndarray, rows: int, cols: int, colstride: int
) -> None:
    flat[_matrix_index(rows, cols, colstride)] = value


def _vector_index(n: int, inc: int) -> np.ndarray:
    return np.arange(n, dtype=np.int64) * int(inc)


def gemm_cpu(
    c_flat: np.ndarray,
    c_colstride: int,
    trans_a: bool,
    trans_b: bool,
    alpha: float,
    a_flat: np.ndarray,
    a_row_count: int,
    a_col_count: int,
    a_colstride: int,
    b_flat: np.ndarray,
    b_col_count: int,
    b_colstride: int,
    beta: float,
) -> None:
    """
    Reference GEMM: `C = alpha * op(A) @ op(B) + beta * C`.

    Parameters
    ----------
    c_flat : np.ndarray
        Output buffer, written in place.
    c_colstride : int
        Row pitch of C.
    trans_a, trans_b : bool
        Whether A / B are read transposed.
    alpha, beta : float
        Scaling coefficients.
    a_flat : np.ndarray
        Buffer holding A.
    a_row_count, a_col_count : int
        Shape of `op(A)`.
    a_colstride : int
        Row pitch of A as stored.
    b_flat : np.ndarray
        Buffer holding B.
    b_col_count : int
        Column count of `op(B)`; its row count is `a_col_count`.
    b_colstride : int
        Row pitch of B as stored.
    """
    m, k, n = int(a_row_count), int(a_col_count), int(b_col_count)
    if m == 0 or n == 0:
        return

    if trans_a:
        a = read_matrix(a_flat, k, m, a_colstride).T
    else:
        a = read_matrix(a_flat, m, k, a_colstride)
    if trans_b:
        b = read_matrix(b_flat, n, k, b_colstride).T
    else:
        b = read_matrix(b_flat, k, n, b_colstride)

    result = alpha * (a @ b)
    if beta != 0:
        result = result + beta * read_matrix(c_flat, m, n, c_colstride)
    _write_matrix(c_flat, result.astype(c_flat.dtype, copy=False), m, n, c_colstride)


def gemv_cpu(
    c_flat: np.ndarray,
    inc_c: int,
    trans_a: bool,
    alpha: float,
    a_flat: np.ndarray,
    a_row_count: int,
    a_col_count: int,
    a_colstride: int,
    x_flat: np.ndarray,
    inc_x: int,
    beta: float,
) -> None:
    """
    Reference GEMV: `c = alpha * op(A) @ x + beta * c`.

    `a_row_count` / `a_col_count` describe A as stored; `x` has `op(A)`'s
    column count and `c` its row count.
    """
    a = read_matrix(a_flat, a_row_count, a_col_count, a_colstride)
    if trans_a:
        a = a.T
    rows, cols = a.shape
    if rows == 0:
        return

    x = x_flat[_vector_index(cols, inc_x)]
    result = alpha * (a @ x)
    c_idx = _vector_index(rows, inc_c)
    if beta != 0:
        result = result + beta * c_flat[c_idx]
    c_flat[c_idx] = result.astype(c_flat.dtype, copy=False)
