"""
CPU reference implementations of activation gradients and softmax.

Activation gradients are expressed in terms of the forward *output* `y`, not
the forward input:

- logistic: `dx = y * (1 - y) * dy`
- tanh:     `dx = (1 - y**2) * dy`
- relu:     `dx = dy` where `y > 0`, else `0`

Softmax normalizes each row of a (batch, features) matrix independently and
subtracts the row maximum before exponentiating for numerical stability.
"""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np


def _logistic_grad(y: np.ndarray, dy: np.ndarray) -> np.ndarray:
    return y * (1.0 - y) * dy


def _tanh_grad(y: np.ndarray, dy: np.ndarray) -> np.ndarray:
    return (1.0 - y * y) * dy


def _relu_grad(y: np.ndarray, dy: np.ndarray) -> np.ndarray:
    return np.where(y > 0, dy, np.zeros_like(dy))


ACTIVATION_GRADIENTS: Dict[str, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    "logistic": _logistic_grad,
    "tanh": _tanh_grad,
    "relu": _relu_grad,
}


def activation_gradient_cpu(
    input_gradient: np.ndarray,
    output_gradient: np.ndarray,
    output: np.ndarray,
    op: str,
    n_elems: int,
) -> None:
    """
    Write the activation input gradient for the first `n_elems` elements.

    Parameters
    ----------
    input_gradient : np.ndarray
        Flat output buffer for dL/dx.
    output_gradient : np.ndarray
        Flat buffer holding dL/dy.
    output : np.ndarray
        Flat buffer holding the forward output y.
    op : str
        One of "logistic", "tanh", "relu".
    n_elems : int
        Number of elements to process.
    """
    fn = ACTIVATION_GRADIENTS[op]
    n = int(n_elems)
    input_gradient[:n] = fn(output[:n], output_gradient[:n])


def softmax_cpu(
    output: np.ndarray, input: np.ndarray, batch_count: int, element_count: int
) -> None:
    """
    Row-wise softmax over a dense (batch_count, element_count) matrix.
    """
    n = int(batch_count) * int(element_count)
    if n == 0:
        return
    x = input[:n].reshape(int(batch_count), int(element_count))
    shifted = x - x.max(axis=1, keepdims=True)
    e = np.exp(shifted)
    output[:n] = (e / e.sum(axis=1, keepdims=True)).reshape(-1)
