from __future__ import annotations

import unittest

import numpy as np

from src.tensorbridge.domain._dimensions import Dimensions
from src.tensorbridge.domain._errors import (
    AliasingViolation,
    DatatypeMismatch,
    PrecisionUnsupported,
    ShapeError,
)
from src.tensorbridge.infrastructure.ops.blas import (
    blas_vector_increment,
    gemm,
    gemv,
    trans_2d_shape,
)
from src.tensorbridge.infrastructure.tensor._tensor_builder import (
    columns,
    from_numpy,
    new_tensor,
    submatrix,
    subvector,
    to_numpy,
)

from .._cpu_test_utils import assert_allclose_by_dtype, make_ctx


class TestGemm(unittest.TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        rng = np.random.default_rng(1)
        self.A = rng.standard_normal((3, 4))
        self.B = rng.standard_normal((4, 2))

    def test_plain_product(self):
        A = from_numpy(self.ctx, self.A)
        B = from_numpy(self.ctx, self.B)
        C = new_tensor(self.ctx, [3, 2])
        out = gemm(self.ctx, C, False, False, 1.0, A, B, 0.0)
        self.assertIs(out, C)
        assert_allclose_by_dtype(to_numpy(self.ctx, C), self.A @ self.B, np.float64)

    def test_alpha_and_beta(self):
        A = from_numpy(self.ctx, self.A)
        B = from_numpy(self.ctx, self.B)
        c0 = np.ones((3, 2))
        C = from_numpy(self.ctx, c0)
        gemm(self.ctx, C, False, False, 2.0, A, B, 0.5)
        assert_allclose_by_dtype(
            to_numpy(self.ctx, C), 2.0 * self.A @ self.B + 0.5 * c0, np.float64
        )

    def test_beta_zero_ignores_previous_contents(self):
        A = from_numpy(self.ctx, self.A)
        B = from_numpy(self.ctx, self.B)
        C = from_numpy(self.ctx, np.full((3, 2), np.nan))
        gemm(self.ctx, C, False, False, 1.0, A, B, 0.0)
        self.assertFalse(np.isnan(to_numpy(self.ctx, C)).any())

    def test_transposed_operands(self):
        At = from_numpy(self.ctx, self.A.T.copy())
        Bt = from_numpy(self.ctx, self.B.T.copy())
        C = new_tensor(self.ctx, [3, 2])
        gemm(self.ctx, C, True, True, 1.0, At, Bt, 0.0)
        assert_allclose_by_dtype(to_numpy(self.ctx, C), self.A @ self.B, np.float64)

    def test_padded_operands(self):
        big_a = np.zeros((5, 6))
        big_a[1:4, 2:6] = self.A
        big_c = np.zeros((4, 5))
        A = submatrix(self.ctx, from_numpy(self.ctx, big_a), 1, 3, 2, 4)
        B = from_numpy(self.ctx, self.B)
        parent_c = from_numpy(self.ctx, big_c)
        C = submatrix(self.ctx, parent_c, 1, 3, 1, 2)
        gemm(self.ctx, C, False, False, 1.0, A, B, 0.0)
        expected = big_c.copy()
        expected[1:4, 1:3] = self.A @ self.B
        assert_allclose_by_dtype(to_numpy(self.ctx, parent_c), expected, np.float64)

    def test_higher_rank_reads_2d_interpretation(self):
        A = from_numpy(self.ctx, self.A.reshape(3, 1, 4))
        B = from_numpy(self.ctx, self.B)
        C = new_tensor(self.ctx, [3, 2])
        gemm(self.ctx, C, False, False, 1.0, A, B, 0.0)
        assert_allclose_by_dtype(to_numpy(self.ctx, C), self.A @ self.B, np.float64)

    def test_inner_dimension_mismatch_names_both_shapes(self):
        A = from_numpy(self.ctx, self.A)
        B = new_tensor(self.ctx, [5, 2])
        C = new_tensor(self.ctx, [3, 2])
        with self.assertRaises(ShapeError) as cm:
            gemm(self.ctx, C, False, False, 1.0, A, B, 0.0)
        self.assertIn("(3, 4)", str(cm.exception))
        self.assertIn("(5, 2)", str(cm.exception))
        self.assertEqual(cm.exception.data["a_shape"], (3, 4))
        self.assertEqual(cm.exception.data["b_shape"], (5, 2))

    def test_output_shape_mismatch(self):
        A = from_numpy(self.ctx, self.A)
        B = from_numpy(self.ctx, self.B)
        with self.assertRaises(ShapeError):
            gemm(self.ctx, new_tensor(self.ctx, [4, 2]), False, False, 1.0, A, B, 0.0)
        with self.assertRaises(ShapeError):
            gemm(self.ctx, new_tensor(self.ctx, [3, 3]), False, False, 1.0, A, B, 0.0)

    def test_datatype_mismatch(self):
        A = from_numpy(self.ctx, self.A, "float32")
        B = from_numpy(self.ctx, self.B)
        with self.assertRaises(DatatypeMismatch):
            gemm(self.ctx, new_tensor(self.ctx, [3, 2]), False, False, 1.0, A, B, 0.0)

    def test_integer_datatype_rejected(self):
        ctx = make_ctx("int32")
        A = new_tensor(ctx, [3, 4])
        B = new_tensor(ctx, [4, 2])
        with self.assertRaises(PrecisionUnsupported):
            gemm(ctx, new_tensor(ctx, [3, 2]), False, False, 1.0, A, B, 0.0)

    def test_output_partially_overlapping_input(self):
        base = new_tensor(self.ctx, [20])
        A = subvector(self.ctx, base, 0, 12).reinterpret(Dimensions([3, 4]))
        C = subvector(self.ctx, base, 8, 6).reinterpret(Dimensions([3, 2]))
        B = from_numpy(self.ctx, self.B)
        with self.assertRaises(AliasingViolation):
            gemm(self.ctx, C, False, False, 1.0, A, B, 0.0)

    def test_unit_inner_stride_required(self):
        base = new_tensor(self.ctx, [24])
        A = base.reinterpret(Dimensions([3, 4], strides=[8, 2]))
        B = from_numpy(self.ctx, self.B)
        with self.assertRaises(ShapeError):
            gemm(self.ctx, new_tensor(self.ctx, [3, 2]), False, False, 1.0, A, B, 0.0)


class TestGemv(unittest.TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        rng = np.random.default_rng(2)
        self.A = rng.standard_normal((3, 4))
        self.x = rng.standard_normal(4)
        self.y = rng.standard_normal(3)

    def test_plain(self):
        A = from_numpy(self.ctx, self.A)
        x = from_numpy(self.ctx, self.x)
        c = from_numpy(self.ctx, np.ones(3))
        gemv(self.ctx, c, False, 2.0, A, x, 1.0)
        assert_allclose_by_dtype(
            to_numpy(self.ctx, c), 2.0 * self.A @ self.x + 1.0, np.float64
        )

    def test_transposed(self):
        A = from_numpy(self.ctx, self.A)
        y = from_numpy(self.ctx, self.y)
        c = new_tensor(self.ctx, [4])
        gemv(self.ctx, c, True, 1.0, A, y, 0.0)
        assert_allclose_by_dtype(to_numpy(self.ctx, c), self.A.T @ self.y, np.float64)

    def test_strided_vectors_use_increments(self):
        A = from_numpy(self.ctx, self.A)
        holder = from_numpy(self.ctx, np.tile(self.x[:, None], (1, 3)))
        x = columns(self.ctx, holder)[2]
        self.assertEqual(blas_vector_increment(x), 3)
        out_holder = new_tensor(self.ctx, [3, 2])
        c = columns(self.ctx, out_holder)[1]
        gemv(self.ctx, c, False, 1.0, A, x, 0.0)
        out = to_numpy(self.ctx, out_holder)
        assert_allclose_by_dtype(out[:, 1], self.A @ self.x, np.float64)
        np.testing.assert_array_equal(out[:, 0], np.zeros(3))

    def test_column_vector_shapes_are_accepted(self):
        A = from_numpy(self.ctx, self.A)
        x = from_numpy(self.ctx, self.x.reshape(4, 1))
        c = new_tensor(self.ctx, [3, 1])
        gemv(self.ctx, c, False, 1.0, A, x, 0.0)
        self.assertEqual(blas_vector_increment(x), 1)
        assert_allclose_by_dtype(
            to_numpy(self.ctx, c).reshape(-1), self.A @ self.x, np.float64
        )

    def test_length_checks(self):
        A = from_numpy(self.ctx, self.A)
        with self.assertRaises(ShapeError):
            gemv(self.ctx, new_tensor(self.ctx, [3]), False, 1.0, A, new_tensor(self.ctx, [3]), 0.0)
        with self.assertRaises(ShapeError):
            gemv(self.ctx, new_tensor(self.ctx, [4]), False, 1.0, A, new_tensor(self.ctx, [4]), 0.0)

    def test_vectors_must_be_vector_indexable(self):
        A = from_numpy(self.ctx, self.A)
        x = submatrix(self.ctx, new_tensor(self.ctx, [4, 4]), 0, 2, 0, 2)
        with self.assertRaises(ShapeError):
            gemv(self.ctx, new_tensor(self.ctx, [3]), False, 1.0, A, x, 0.0)

    def test_trans_2d_shape(self):
        A = new_tensor(self.ctx, [3, 4])
        self.assertEqual(trans_2d_shape(False, A), (3, 4))
        self.assertEqual(trans_2d_shape(True, A), (4, 3))


if __name__ == "__main__":
    unittest.main()
