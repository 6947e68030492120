from __future__ import annotations

import unittest
from unittest.mock import patch

import numpy as np

from src.tensorbridge.domain._dimensions import Dimensions
from src.tensorbridge.domain._errors import AliasingViolation, ShapeError
from src.tensorbridge.infrastructure.ops.elementwise import assign, binary_op
from src.tensorbridge.infrastructure.tensor._tensor_builder import (
    columns,
    from_numpy,
    make_dense,
    new_tensor,
    rows,
    submatrix,
    subvector,
    to_double_array,
    to_numpy,
)

from .._cpu_test_utils import make_ctx


class TestConstruction(unittest.TestCase):
    def setUp(self):
        self.ctx = make_ctx()

    def test_new_tensor_fills_init_value(self):
        t = new_tensor(self.ctx, [2, 3], init_value=1.5)
        np.testing.assert_array_equal(to_numpy(self.ctx, t), np.full((2, 3), 1.5))

    def test_new_tensor_uses_context_datatype(self):
        ctx = make_ctx("float32")
        self.assertEqual(str(new_tensor(ctx, [3]).datatype), "float32")
        self.assertEqual(str(new_tensor(ctx, [3], "int32").datatype), "int32")

    def test_round_trip_through_dense_copy(self):
        values = np.random.randn(3, 5)
        t = from_numpy(self.ctx, values)
        same = t.reinterpret(Dimensions([3, 5]))
        out = to_numpy(self.ctx, make_dense(self.ctx, same))
        np.testing.assert_array_equal(out, values)

    def test_round_trip_integer_datatype(self):
        values = np.arange(12, dtype=np.int32).reshape(3, 4)
        t = from_numpy(self.ctx, values, "int32")
        out = to_numpy(self.ctx, t)
        self.assertEqual(out.dtype, np.int32)
        np.testing.assert_array_equal(out, values)

    def test_to_numpy_converts_datatype(self):
        t = from_numpy(self.ctx, [1.25, 2.5])
        out = to_numpy(self.ctx, t, "float32")
        self.assertEqual(out.dtype, np.float32)

    def test_to_double_array_is_flat(self):
        t = from_numpy(self.ctx, np.ones((2, 2), dtype=np.float32), "float32")
        out = to_double_array(self.ctx, t)
        self.assertEqual(out.dtype, np.float64)
        self.assertEqual(out.shape, (4,))

    def test_make_dense_returns_same_tensor_when_dense(self):
        t = new_tensor(self.ctx, [4])
        self.assertIs(make_dense(self.ctx, t), t)

    def test_make_dense_copies_strided_tensor(self):
        t = from_numpy(self.ctx, np.arange(10.0))
        padded = t.reinterpret(Dimensions([2, 3], strides=[5, 1]))
        dense = make_dense(self.ctx, padded)
        self.assertTrue(dense.is_dense)
        self.assertIsNot(dense.buffer, t.buffer)
        np.testing.assert_array_equal(
            to_numpy(self.ctx, dense), [[0.0, 1.0, 2.0], [5.0, 6.0, 7.0]]
        )


class TestFailedStaging(unittest.TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        self.driver = self.ctx.driver
        self.allocated = []
        real_allocate = self.driver.allocate_device_buffer

        def record(*args, **kwargs):
            buffer = real_allocate(*args, **kwargs)
            self.allocated.append(buffer)
            return buffer

        self.record = record

    def test_from_numpy_releases_device_tensor(self):
        with patch.object(
            self.driver, "allocate_device_buffer", side_effect=self.record
        ), patch.object(
            self.ctx.stream, "copy_host_to_device", side_effect=RuntimeError("copy")
        ):
            with self.assertRaises(RuntimeError):
                from_numpy(self.ctx, [1.0, 2.0, 3.0])
        self.assertEqual(len(self.allocated), 1)
        self.assertTrue(self.allocated[0].released)

    def test_make_dense_releases_copy(self):
        column = submatrix(self.ctx, new_tensor(self.ctx, [2, 3]), 0, 2, 1, 1)
        with patch.object(
            self.driver, "allocate_device_buffer", side_effect=self.record
        ), patch.object(
            self.ctx.stream, "assign", side_effect=RuntimeError("assign")
        ):
            with self.assertRaises(RuntimeError):
                make_dense(self.ctx, column)
        self.assertEqual(len(self.allocated), 1)
        self.assertTrue(self.allocated[0].released)


class TestSlicing(unittest.TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        self.values = np.arange(20.0).reshape(4, 5)
        self.m = from_numpy(self.ctx, self.values)

    def test_subvector(self):
        v = subvector(self.ctx, self.m, 3, 4)
        np.testing.assert_array_equal(to_numpy(self.ctx, v), [3.0, 4.0, 5.0, 6.0])
        tail = subvector(self.ctx, self.m, 18)
        np.testing.assert_array_equal(to_numpy(self.ctx, tail), [18.0, 19.0])

    def test_subvector_writes_through(self):
        v = subvector(self.ctx, self.m, 0, 2)
        assign(self.ctx, v, -1.0)
        self.assertEqual(to_numpy(self.ctx, self.m)[0, :2].tolist(), [-1.0, -1.0])

    def test_subvector_bounds(self):
        with self.assertRaises(ShapeError):
            subvector(self.ctx, self.m, 19, 2)
        with self.assertRaises(ShapeError):
            subvector(self.ctx, self.m, -1, 1)

    def test_subvector_rejects_strided(self):
        sub = submatrix(self.ctx, self.m, 0, 2, 0, 2)
        with self.assertRaises(ShapeError):
            subvector(self.ctx, sub, 0, 1)

    def test_submatrix(self):
        sub = submatrix(self.ctx, self.m, 1, 2, 1, 3)
        self.assertEqual(sub.shape, (2, 3))
        self.assertEqual(sub.column_stride, 5)
        self.assertFalse(sub.is_dense)
        np.testing.assert_array_equal(to_numpy(self.ctx, sub), self.values[1:3, 1:4])

    def test_submatrix_writes_through(self):
        sub = submatrix(self.ctx, self.m, 2, 2, 3, 2)
        assign(self.ctx, sub, 0.0)
        expected = self.values.copy()
        expected[2:4, 3:5] = 0.0
        np.testing.assert_array_equal(to_numpy(self.ctx, self.m), expected)

    def test_submatrix_bounds(self):
        with self.assertRaises(ShapeError):
            submatrix(self.ctx, self.m, 3, 2, 0, 1)
        with self.assertRaises(ShapeError):
            submatrix(self.ctx, self.m, 0, 1, 4, 2)
        with self.assertRaises(ShapeError):
            submatrix(self.ctx, self.m, -1, 1, 0, 1)

    def test_empty_submatrix(self):
        sub = submatrix(self.ctx, self.m, 1, 0, 1, 3)
        self.assertEqual(sub.shape, (0, 3))
        self.assertEqual(sub.ecount, 0)

    def test_rows(self):
        rs = rows(self.ctx, self.m)
        self.assertEqual(len(rs), 4)
        for idx, row in enumerate(rs):
            self.assertTrue(row.is_dense)
            np.testing.assert_array_equal(to_numpy(self.ctx, row), self.values[idx])

    def test_columns(self):
        cs = columns(self.ctx, self.m)
        self.assertEqual(len(cs), 5)
        for idx, col in enumerate(cs):
            self.assertEqual(col.strides, (5,))
            np.testing.assert_array_equal(
                to_numpy(self.ctx, col), self.values[:, idx]
            )

    def test_rows_of_submatrix(self):
        sub = submatrix(self.ctx, self.m, 1, 2, 2, 3)
        rs = rows(self.ctx, sub)
        np.testing.assert_array_equal(to_numpy(self.ctx, rs[1]), self.values[2, 2:5])

    def test_neighbouring_columns_partially_overlap(self):
        c0, c1 = columns(self.ctx, self.m)[:2]
        with self.assertRaises(AliasingViolation):
            binary_op(self.ctx, c0, 1.0, c0, 1.0, c1, "+")

    def test_sliced_views_keep_parent_storage_alive(self):
        v = subvector(self.ctx, self.m, 0, 5)
        self.ctx.driver.release(self.m.buffer)
        np.testing.assert_array_equal(to_numpy(self.ctx, v), self.values[0])


if __name__ == "__main__":
    unittest.main()
