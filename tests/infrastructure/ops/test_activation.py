from __future__ import annotations

import unittest
from unittest.mock import patch

import numpy as np

from src.tensorbridge.domain._dimensions import Dimensions
from src.tensorbridge.domain._errors import (
    AliasingViolation,
    EcountIncommensurate,
    PrecisionUnsupported,
    ShapeError,
    UnsupportedOperand,
)
from src.tensorbridge.infrastructure.ops.activation import activation_gradient, softmax
from src.tensorbridge.infrastructure.tensor._tensor_builder import (
    from_numpy,
    new_tensor,
    subvector,
    to_numpy,
)

from .._cpu_test_utils import assert_allclose_by_dtype, make_ctx


class TestActivationGradient(unittest.TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        rng = np.random.default_rng(3)
        self.pre = rng.standard_normal(12)
        self.dy = rng.standard_normal(12)

    def _run(self, op, y):
        output = from_numpy(self.ctx, y)
        dy = from_numpy(self.ctx, self.dy)
        dx = new_tensor(self.ctx, [12])
        activation_gradient(self.ctx, dx, dy, output, op)
        return to_numpy(self.ctx, dx)

    def test_logistic(self):
        y = 1.0 / (1.0 + np.exp(-self.pre))
        assert_allclose_by_dtype(
            self._run("logistic", y), y * (1.0 - y) * self.dy, np.float64
        )

    def test_tanh(self):
        y = np.tanh(self.pre)
        assert_allclose_by_dtype(self._run("tanh", y), (1.0 - y * y) * self.dy, np.float64)

    def test_relu(self):
        y = np.maximum(self.pre, 0.0)
        assert_allclose_by_dtype(
            self._run("relu", y), np.where(y > 0, self.dy, 0.0), np.float64
        )

    def test_input_gradient_identical_to_output_rejected_before_compute(self):
        output = from_numpy(self.ctx, np.tanh(self.pre))
        dy = from_numpy(self.ctx, self.dy)
        with patch.object(self.ctx.stream, "activation_gradient") as kernel:
            with self.assertRaises(AliasingViolation):
                activation_gradient(self.ctx, output, dy, output, "tanh")
            kernel.assert_not_called()

    def test_input_gradient_overlapping_output_rejected(self):
        base = new_tensor(self.ctx, [20])
        output = subvector(self.ctx, base, 0, 12)
        dx = subvector(self.ctx, base, 6, 12)
        with self.assertRaises(AliasingViolation):
            activation_gradient(
                self.ctx, dx, from_numpy(self.ctx, self.dy), output, "relu"
            )

    def test_gradient_may_overwrite_output_gradient(self):
        y = np.tanh(self.pre)
        output = from_numpy(self.ctx, y)
        dy = from_numpy(self.ctx, self.dy)
        activation_gradient(self.ctx, dy, dy, output, "tanh")
        assert_allclose_by_dtype(to_numpy(self.ctx, dy), (1.0 - y * y) * self.dy, np.float64)

    def test_element_counts_must_match(self):
        with self.assertRaises(EcountIncommensurate):
            activation_gradient(
                self.ctx,
                new_tensor(self.ctx, [12]),
                new_tensor(self.ctx, [6]),
                new_tensor(self.ctx, [12]),
                "relu",
            )

    def test_unknown_activation(self):
        t = [new_tensor(self.ctx, [4]) for _ in range(3)]
        with self.assertRaises(UnsupportedOperand):
            activation_gradient(self.ctx, t[0], t[1], t[2], "gelu")

    def test_integer_tensors_rejected(self):
        ctx = make_ctx("int32")
        t = [new_tensor(ctx, [4]) for _ in range(3)]
        with self.assertRaises(PrecisionUnsupported):
            activation_gradient(ctx, t[0], t[1], t[2], "relu")


class TestSoftmax(unittest.TestCase):
    def setUp(self):
        self.ctx = make_ctx()

    def test_rows_sum_to_one(self):
        values = np.random.default_rng(4).standard_normal((4, 10))
        out = new_tensor(self.ctx, [4, 10])
        softmax(self.ctx, out, from_numpy(self.ctx, values))
        result = to_numpy(self.ctx, out)
        np.testing.assert_allclose(result.sum(axis=1), np.ones(4), rtol=1e-12)
        e = np.exp(values - values.max(axis=1, keepdims=True))
        assert_allclose_by_dtype(result, e / e.sum(axis=1, keepdims=True), np.float64)

    def test_large_inputs_are_stable(self):
        values = np.array([[1000.0, 1000.0], [-1000.0, 0.0]])
        out = new_tensor(self.ctx, [2, 2])
        softmax(self.ctx, out, from_numpy(self.ctx, values))
        result = to_numpy(self.ctx, out)
        self.assertFalse(np.isnan(result).any())
        np.testing.assert_allclose(result[0], [0.5, 0.5])

    def test_float32_in_place(self):
        ctx = make_ctx("float32")
        values = np.random.default_rng(5).standard_normal((3, 7)).astype(np.float32)
        t = from_numpy(ctx, values)
        softmax(ctx, t, t)
        np.testing.assert_allclose(to_numpy(ctx, t).sum(axis=1), np.ones(3), rtol=1e-5)

    def test_higher_rank_uses_batch_matrix(self):
        values = np.random.default_rng(6).standard_normal((2, 3, 4))
        out = new_tensor(self.ctx, [2, 3, 4])
        softmax(self.ctx, out, from_numpy(self.ctx, values))
        sums = to_numpy(self.ctx, out).reshape(2, -1).sum(axis=1)
        np.testing.assert_allclose(sums, np.ones(2))

    def test_shape_mismatch(self):
        with self.assertRaises(ShapeError):
            softmax(self.ctx, new_tensor(self.ctx, [4, 10]), new_tensor(self.ctx, [10, 4]))

    def test_strided_rejected(self):
        base = new_tensor(self.ctx, [24])
        padded = base.reinterpret(Dimensions([2, 10], strides=[12, 1]))
        with self.assertRaises(ShapeError):
            softmax(self.ctx, padded, new_tensor(self.ctx, [2, 10]))


if __name__ == "__main__":
    unittest.main()
