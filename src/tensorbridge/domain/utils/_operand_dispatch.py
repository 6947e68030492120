"""
Operand-kind dispatch tables via decorators.

Elementwise operations accept either scalars (plain numbers) or tensors in
several argument positions. Which backend entry point applies depends on the
combination, e.g. `(TENSOR, NUMBER)` for a binary op with a constant right
operand. This module provides a small mechanism for routing a call to one of
several registered handlers based on that combination.

Core idea
---------
- Each operation builds its own table with `create_dispatch_table()`.
- Handlers are registered for a fixed key, a tuple of `OperandKind` values:

      binary_paths = create_dispatch_table("binary_op")

      @binary_paths.register(OperandKind.TENSOR, OperandKind.NUMBER)
      def _binary_tensor_number(ctx, dest, alpha, x, beta, y, op): ...

- At call time the caller resolves the kinds once with `operand_kind` and the
  table returns the matching handler. A missing combination raises
  `UnsupportedOperand` rather than falling through to some default.

Important notes
---------------
- The set of keys is closed: tables never synthesize handlers, and
  registering a key twice is an error.
- Tables are independent of each other; each operation owns its mapping.
"""

from __future__ import annotations

from enum import Enum
from numbers import Number
from typing import Callable, Dict, Hashable, Tuple

from typing_extensions import ParamSpec, TypeVar

from .._errors import UnsupportedOperand

P = ParamSpec("P")
R = TypeVar("R")


class OperandKind(Enum):
    """
    Kind of an elementwise operand.

    Attributes
    ----------
    NUMBER : OperandKind
        A host scalar (int or float).
    TENSOR : OperandKind
        A tensor view over a backend buffer.
    """

    NUMBER = "number"
    TENSOR = "tensor"


def is_scalar(item: object) -> bool:
    """
    Return True if `item` is a host number (bool excluded).
    """
    return isinstance(item, Number) and not isinstance(item, bool)


def operand_kind(item: object) -> OperandKind:
    """
    Classify an operand.

    Anything exposing `dimensions` and `buffer` counts as a tensor, which keeps
    the domain layer free of an import on the concrete tensor class.

    Raises
    ------
    UnsupportedOperand
        If `item` is neither a number nor tensor-like.
    """
    if is_scalar(item):
        return OperandKind.NUMBER
    if hasattr(item, "dimensions") and hasattr(item, "buffer"):
        return OperandKind.TENSOR
    raise UnsupportedOperand(
        f"Operand must be a number or a tensor, got {type(item).__name__}",
        {"operand_type": type(item).__name__},
    )


def operand_kinds(*items: object) -> Tuple[OperandKind, ...]:
    """
    Classify several operands at once.
    """
    return tuple(operand_kind(i) for i in items)


class DispatchTable:
    """
    Fixed mapping from a tuple of keys to a handler.

    Parameters
    ----------
    op_name : str
        Name used in error messages.
    """

    def __init__(self, op_name: str) -> None:
        self.op_name = op_name
        self._handlers: Dict[Tuple[Hashable, ...], Callable] = {}

    def register(
        self, *key: Hashable
    ) -> Callable[[Callable[P, R]], Callable[P, R]]:
        """
        Build a decorator that registers a handler for `key`.

        Raises
        ------
        TypeError
            If the key is not hashable.
        ValueError
            If a handler is already registered for the key.
        """
        try:
            hash(key)
        except TypeError:
            raise TypeError(f"Dispatch key must be hashable. Got {key!r}") from None

        def decorator(handler: Callable[P, R]) -> Callable[P, R]:
            if key in self._handlers:
                raise ValueError(
                    f"{self.op_name}: a handler is already registered for {key!r}"
                )
            self._handlers[key] = handler
            return handler

        return decorator

    def lookup(self, *key: Hashable) -> Callable:
        """
        Return the handler registered for `key`.

        Raises
        ------
        UnsupportedOperand
            If no handler is registered for the combination.
        """
        if handler := self._handlers.get(key):
            return handler
        raise UnsupportedOperand(
            f"{self.op_name} has no path for operand kinds "
            f"{[getattr(k, 'value', k) for k in key]}",
            {"op": self.op_name, "operand_kinds": [getattr(k, "value", k) for k in key]},
        )

    def keys(self) -> Tuple[Tuple[Hashable, ...], ...]:
        return tuple(self._handlers)


def create_dispatch_table(op_name: str) -> DispatchTable:
    """
    Create an empty dispatch table for one operation.
    """
    return DispatchTable(op_name)
