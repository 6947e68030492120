"""
Execution context threaded through every tensor operation.

A `TensorContext` bundles the compute stream an operation is issued on with
the default element datatype used when a caller does not name one. It is an
explicit argument of every entry point; there is no module-level "current"
stream or datatype.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..domain._backend import IComputeStream, IDriver
from ..domain._datatype import DataType, normalize_datatype
from ..domain._errors import MissingContext


@dataclass(frozen=True)
class TensorContext:
    """
    Stream plus default datatype for tensor operations.

    Attributes
    ----------
    stream : IComputeStream | None
        The stream that receives every backend call. A context without a
        stream is legal to build but every operation using it raises
        `MissingContext`.
    datatype : DataType
        Datatype used by constructors when none is given. Defaults to
        float64.
    """

    stream: Optional[IComputeStream]
    datatype: Any = DataType.FLOAT64

    def __post_init__(self) -> None:
        object.__setattr__(self, "datatype", normalize_datatype(self.datatype))

    def check_stream(self) -> IComputeStream:
        """
        Return the bound stream.

        Raises
        ------
        MissingContext
            If no stream is bound.
        """
        if self.stream is None:
            raise MissingContext()
        return self.stream

    @property
    def driver(self) -> IDriver:
        """
        Driver of the bound stream.
        """
        return self.check_stream().driver

    @property
    def device(self) -> Any:
        """
        Device of the bound stream.
        """
        return self.check_stream().device

    def with_datatype(self, datatype: Any) -> "TensorContext":
        """
        Return a copy of this context with a different default datatype.
        """
        return TensorContext(self.stream, datatype)


def check_context(ctx: Optional[TensorContext]) -> IComputeStream:
    """
    Resolve the stream of `ctx`, treating a missing context like a missing
    stream.
    """
    if ctx is None:
        raise MissingContext()
    return ctx.check_stream()
