from __future__ import annotations

import itertools
import unittest

from src.tensorbridge.domain._dimensions import Dimensions
from src.tensorbridge.domain._errors import ShapeError


class TestDimensionsConstruction(unittest.TestCase):
    def test_default_strides_are_tightly_packed(self):
        dims = Dimensions([2, 3, 4])
        self.assertEqual(dims.shape, (2, 3, 4))
        self.assertEqual(dims.strides, (12, 4, 1))
        self.assertTrue(dims.is_dense)

    def test_partial_strides_align_to_innermost_axes(self):
        dims = Dimensions([2, 3, 4], strides=[6, 1])
        self.assertEqual(dims.strides, (18, 6, 1))

    def test_none_entries_take_minimum(self):
        dims = Dimensions([3, 4], strides=[None, 1])
        self.assertEqual(dims.strides, (4, 1))

    def test_padded_rows_are_not_dense(self):
        dims = Dimensions([3, 4], strides=[6, 1])
        self.assertFalse(dims.is_dense)
        self.assertEqual(dims.column_stride, 6)

    def test_too_small_stride_raises_with_details(self):
        with self.assertRaises(ShapeError) as cm:
            Dimensions([3, 4], strides=[3, 1])
        err = cm.exception
        self.assertEqual(err.data["axis"], 0)
        self.assertEqual(err.data["stride"], 3)
        self.assertEqual(err.data["min_stride"], 4)
        self.assertEqual(err.data["shape"], (3, 4))

    def test_negative_extent_raises(self):
        with self.assertRaises(ShapeError):
            Dimensions([2, -1])

    def test_zero_innermost_stride_raises(self):
        with self.assertRaises(ShapeError):
            Dimensions([4], strides=[0])

    def test_too_many_strides_raises(self):
        with self.assertRaises(ShapeError):
            Dimensions([4], strides=[4, 1])

    def test_names_length_must_match_rank(self):
        with self.assertRaises(ShapeError):
            Dimensions([2, 2], names=["rows"])

    def test_shape_error_is_value_error(self):
        with self.assertRaises(ValueError):
            Dimensions([3, 4], strides=[2, 1])

    def test_from_map_builds_named_nchw(self):
        dims = Dimensions.from_map(batch_size=2, channels=3, height=4, width=5)
        self.assertEqual(dims.shape, (2, 3, 4, 5))
        self.assertEqual(dims.names, ("batch_size", "channels", "height", "width"))
        self.assertEqual(dims.outermost, 2)
        self.assertEqual(dims.innermost, 5)

    def test_equality_and_hash(self):
        a = Dimensions([2, 3], strides=[4, 1])
        b = Dimensions([2, 3], strides=[4, 1])
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))
        self.assertNotEqual(a, Dimensions([2, 3]))


class TestDimensionsQueries(unittest.TestCase):
    def test_ecount_never_exceeds_buffer_ecount(self):
        shapes = [(2, 3), (4, 1, 5), (3,), (2, 2, 2)]
        for shape in shapes:
            rank = len(shape)
            for pads in itertools.product((0, 1, 3), repeat=rank):
                # build strides inside-out with optional padding per axis
                strides = [0] * rank
                for axis in range(rank - 1, -1, -1):
                    if axis == rank - 1:
                        strides[axis] = 1 + pads[axis]
                    else:
                        strides[axis] = (
                            strides[axis + 1] * shape[axis + 1] + pads[axis]
                        )
                with self.subTest(shape=shape, strides=strides):
                    dims = Dimensions(shape, strides=strides)
                    self.assertLessEqual(dims.ecount, dims.buffer_ecount)

    def test_buffer_ecount_equals_ecount_iff_dense(self):
        dense = Dimensions([4, 5])
        self.assertEqual(dense.ecount, dense.buffer_ecount)
        padded = Dimensions([4, 5], strides=[7, 1])
        self.assertFalse(padded.is_dense)
        self.assertGreater(padded.buffer_ecount, padded.ecount)
        self.assertEqual(padded.buffer_ecount, 3 * 7 + 5)

    def test_padding_on_unit_outer_axis_is_never_addressed(self):
        dims = Dimensions([1, 3], strides=[10, 1])
        self.assertFalse(dims.is_dense)
        self.assertEqual(dims.buffer_ecount, dims.ecount)
        self.assertEqual(dims.buffer_ecount, 3)

    def test_buffer_ecount_counts_interior_padding(self):
        dims = Dimensions([2, 3, 4], strides=[18, 6, 1])
        self.assertEqual(dims.buffer_ecount, 18 + 2 * 6 + 3 + 1)

    def test_empty_view_needs_no_buffer(self):
        dims = Dimensions([0, 4])
        self.assertEqual(dims.ecount, 0)
        self.assertEqual(dims.buffer_ecount, 0)

    def test_as_2d_shape(self):
        self.assertEqual(Dimensions([2, 3, 4]).as_2d_shape(), (6, 4))
        self.assertEqual(Dimensions([7]).as_2d_shape(), (1, 7))

    def test_as_batch_shape(self):
        self.assertEqual(Dimensions([2, 3, 4]).as_batch_shape(), (2, 12))
        self.assertEqual(Dimensions([7]).as_batch_shape(), (1, 7))

    def test_empty_shape_queries_raise(self):
        dims = Dimensions([])
        with self.assertRaises(ShapeError):
            dims.as_2d_shape()
        with self.assertRaises(ShapeError):
            dims.as_batch_shape()
        with self.assertRaises(ShapeError):
            _ = dims.outermost

    def test_column_stride_and_num_columns(self):
        self.assertEqual(Dimensions([5]).column_stride, 5)
        self.assertEqual(Dimensions([5]).num_columns, 1)
        self.assertEqual(Dimensions([3, 4]).column_stride, 4)
        self.assertEqual(Dimensions([3, 4]).num_columns, 4)


if __name__ == "__main__":
    unittest.main()
