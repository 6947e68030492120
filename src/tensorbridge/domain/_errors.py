"""
Validation errors raised by the tensor core.

Every operation entry point validates its arguments before a single backend
call is issued. When validation fails, one of the exceptions below is raised
synchronously at the call site, so a rejected call never leaves partial side
effects behind.

All errors derive from `TensorError`, which keeps the structured fields that
were used to build the message in a `data` mapping. Callers (and tests) can
therefore inspect *why* a call was rejected without parsing strings.

Error kinds
-----------
- `ShapeError`: invalid stride, shape mismatch, rank too low, out-of-bounds
  sub-views.
- `DatatypeMismatch`: operands disagree on element datatype.
- `DeviceMismatch`: operands live on different devices.
- `DriverMismatch`: operands are served by different backend drivers.
- `EcountIncommensurate`: the broadcasting rule (smaller element count must
  evenly divide the larger) is violated.
- `AliasingViolation`: partial overlap between distinct logical operands, or
  aliasing that the operation cannot tolerate.
- `UnsupportedOperand`: wrong operand kind or an unknown operation name.
- `PrecisionUnsupported`: a non float32/float64 datatype where the backend
  demands floating point.
- `MissingContext`: no execution stream is bound to the context.

None of these are retried: they indicate programmer error in argument
construction. Failures raised inside a backend propagate unchanged.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence


class TensorError(RuntimeError):
    """
    Base class for structured tensor-core errors.

    Parameters
    ----------
    message : str
        Human-readable description.
    data : Mapping[str, Any], optional
        Structured fields describing the failure (shapes, counts, datatypes).
    """

    def __init__(self, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.data: dict[str, Any] = dict(data or {})


class ShapeError(TensorError, ValueError):
    """
    Raised for invalid strides, mismatched shapes or insufficient rank.

    Also a `ValueError` so generic callers that guard shape arguments with
    `except ValueError` keep working.
    """


class DatatypeMismatch(TensorError):
    """
    Raised when operands do not share the required element datatype.

    Attributes
    ----------
    expected : str
        The datatype every operand was required to have.
    actual : tuple[str, ...]
        The datatype reported by each operand, in argument order.
    """

    def __init__(self, expected: object, actual: Sequence[object]) -> None:
        self.expected = str(expected)
        self.actual = tuple(str(a) for a in actual)
        super().__init__(
            f"Not all arguments match required datatype {self.expected}: "
            f"got {list(self.actual)}",
            {"datatype": self.expected, "argument_datatypes": list(self.actual)},
        )


class DeviceMismatch(TensorError):
    """
    Raised when an operation is attempted between tensors on different devices.
    """

    def __init__(self, devices: Sequence[object]) -> None:
        self.devices = tuple(str(d) for d in devices)
        super().__init__(
            f"Tensor arguments are not all on same device: {list(self.devices)}",
            {"devices": list(self.devices)},
        )


class DriverMismatch(TensorError):
    """
    Raised when tensors that must share a backend driver do not.
    """

    def __init__(self, drivers: Sequence[object]) -> None:
        self.drivers = tuple(str(d) for d in drivers)
        super().__init__(
            f"Tensor arguments must have same driver: {list(self.drivers)}",
            {"drivers": list(self.drivers)},
        )


class EcountIncommensurate(TensorError):
    """
    Raised when two element counts violate the broadcasting contract.

    Attributes
    ----------
    lhs_ecount, rhs_ecount : int
        The two element counts that were compared.
    """

    def __init__(
        self,
        lhs_ecount: int,
        rhs_ecount: int,
        message: str = "Element counts are not commensurate",
    ) -> None:
        self.lhs_ecount = int(lhs_ecount)
        self.rhs_ecount = int(rhs_ecount)
        super().__init__(
            f"{message}: {self.lhs_ecount} vs {self.rhs_ecount}",
            {"lhs_ecount": self.lhs_ecount, "rhs_ecount": self.rhs_ecount},
        )


class AliasingViolation(TensorError):
    """
    Raised for partial overlap between operands or forbidden aliasing.
    """


class UnsupportedOperand(TensorError):
    """
    Raised for an operand kind or operation name an entry point cannot handle.
    """


class PrecisionUnsupported(TensorError):
    """
    Raised when an operation is only defined for float32/float64 tensors.
    """

    def __init__(self, op: str, datatype: object) -> None:
        self.op = op
        self.datatype = str(datatype)
        super().__init__(
            f"{op} is only defined for float32 and float64 tensors, got {self.datatype}",
            {"op": op, "datatype": self.datatype},
        )


class MissingContext(TensorError):
    """
    Raised when an operation runs without an execution stream bound.
    """

    def __init__(self) -> None:
        super().__init__("Tensor stream is not bound to the execution context")
