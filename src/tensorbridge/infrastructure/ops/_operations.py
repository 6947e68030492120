"""
Elementwise operation names and their scalar semantics.

The tables below define which op names the elementwise front-ends accept and
what each op computes. The host scalar path evaluates them directly; the
reference backend applies the same functions to whole arrays.
"""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np


def _logistic(v: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-v))


def _round_half_up(v: np.ndarray) -> np.ndarray:
    return np.floor(v + 0.5)


def _select(x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
    return np.where(x >= 0, z, y)


UNARY_FUNCTIONS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "ceil": np.ceil,
    "round": _round_half_up,
    "floor": np.floor,
    "negate": np.negative,
    "tanh": np.tanh,
    "logistic": _logistic,
}

BINARY_FUNCTIONS: Dict[str, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "max": np.maximum,
    "min": np.minimum,
}

TERNARY_FUNCTIONS: Dict[
    str, Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]
] = {
    "select": _select,
}

UNARY_OPS = frozenset(UNARY_FUNCTIONS)
BINARY_OPS = frozenset(BINARY_FUNCTIONS)
TERNARY_OPS = frozenset(TERNARY_FUNCTIONS)


def host_compute(fn: Callable[..., np.ndarray], *args: float) -> float:
    """
    Evaluate an op on host scalars in double precision.

    IEEE results (inf, nan) are returned as-is.
    """
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        return float(fn(*(np.float64(a) for a in args)))
