"""
Scoped acquisition and release of backend buffers.

Operations never free memory. Buffers and tensors that should only live for
the duration of a block are registered with a `ResourceScope` opened by
`resource_context()`; every registered buffer is released through its driver
when the block exits, whether normally or by an exception.

    with resource_context() as scope:
        host = scope.track(driver, driver.allocate_host_buffer(n, "float32"))
        ...
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, List, Tuple

from ..domain._backend import IBuffer, IDriver


class ResourceScope:
    """
    Ordered set of (driver, buffer) pairs released together.
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[IDriver, IBuffer]] = []

    def track(self, driver: IDriver, buffer: IBuffer) -> IBuffer:
        """
        Register `buffer` for release and return it unchanged.
        """
        self._entries.append((driver, buffer))
        return buffer

    def track_tensor(self, driver: IDriver, tensor: Any) -> Any:
        """
        Register the buffer of `tensor` for release and return the tensor.
        """
        self.track(driver, tensor.buffer)
        return tensor

    def release_all(self) -> None:
        """
        Release every tracked buffer, most recent first.

        The first release failure is re-raised after the remaining buffers
        have been released.
        """
        first_error: BaseException | None = None
        while self._entries:
            driver, buffer = self._entries.pop()
            try:
                driver.release(buffer)
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def __len__(self) -> int:
        return len(self._entries)


@contextmanager
def resource_context() -> Iterator[ResourceScope]:
    """
    Open a scope whose tracked buffers are released on exit.
    """
    scope = ResourceScope()
    try:
        yield scope
    finally:
        scope.release_all()


def release_tensor(driver: IDriver, tensor: Any) -> None:
    """
    Release the buffer behind `tensor`.
    """
    driver.release(tensor.buffer)
