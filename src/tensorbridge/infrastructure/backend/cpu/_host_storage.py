"""
Host storage and lifetime management for the CPU reference driver.

This module defines `_HostStorage`, a reference-counted wrapper around a
single flat NumPy allocation. It is the CPU driver's "allocation table entry":
every `CpuBuffer` handed out by the driver is an (offset, length) window onto
exactly one storage object, and two buffers alias iff they share a storage.

Core Concepts
-------------
- **Shared storage**:
    Sub-buffers, rows and columns reference the storage of the buffer they
    were cut from instead of copying memory. Each new window increments the
    reference count.

- **Reference counting**:
    `incref()` / `decref()` track how many buffers still reference the
    allocation. The array is dropped exactly once, when the count reaches
    zero.

Thread Safety
-------------
Reference count updates are protected by an internal lock, allowing storage
to be shared across threads. Element access itself is not synchronized;
buffers are assumed single-writer-at-a-time per logical operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import threading

import numpy as np

_storage_ids = itertools.count(1)


@dataclass(eq=False)
class _HostStorage:
    """
    Reference-counted wrapper around one flat NumPy allocation.

    Attributes
    ----------
    array : np.ndarray | None
        Flat, C-contiguous backing array. Set to None once released.
    device_index : int
        Index of the CPU device the allocation belongs to (-1 for host
        staging buffers).
    storage_id : int
        Process-unique identifier used in reprs and aliasing diagnostics.
    """

    array: np.ndarray | None
    device_index: int
    storage_id: int = field(default_factory=lambda: next(_storage_ids))

    _refcnt: int = 1
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def nbytes(self) -> int:
        return 0 if self.array is None else int(self.array.nbytes)

    @property
    def released(self) -> bool:
        return self.array is None

    def incref(self) -> None:
        """
        Increment the storage reference count.
        """
        with self._lock:
            if self.array is None:
                raise RuntimeError(
                    f"Storage #{self.storage_id} was already released"
                )
            self._refcnt += 1

    def decref(self) -> None:
        """
        Decrement the reference count and drop the array when it reaches zero.

        Calls after the storage has been released have no effect.
        """
        with self._lock:
            if self.array is None:
                return
            self._refcnt -= 1
            if self._refcnt == 0:
                self.array = None

    def refcount(self) -> int:
        with self._lock:
            return self._refcnt
