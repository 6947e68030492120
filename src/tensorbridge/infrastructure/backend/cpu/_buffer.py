"""
Buffer handles and the allocator for the CPU reference driver.

A `CpuBuffer` is a non-owning (offset, length) window onto a `_HostStorage`.
`CpuDriver` plays the role of the backend buffer allocator: it allocates
device and host buffers, cuts zero-copy sub-buffers, answers the exact-alias
and partial-overlap predicates, and releases buffers when the resource layer
asks it to.

Several CPU devices ("cpu:0", "cpu:1", ...) may be served by one driver.
Their allocations are distinct NumPy arrays, so buffers on different devices
never alias.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from ....domain._datatype import DataType, normalize_datatype
from ....domain.device._device import Device
from ._host_storage import _HostStorage

HOST_DEVICE_INDEX = -1


def to_numpy_dtype(datatype: Any) -> np.dtype:
    """
    Map a datatype-like value onto the matching NumPy dtype.
    """
    return np.dtype(normalize_datatype(datatype).value)


class CpuBuffer:
    """
    Window onto a host storage allocation.

    Parameters
    ----------
    storage : _HostStorage
        Backing allocation. The caller is responsible for the reference it
        hands over.
    offset : int
        Element offset of the window.
    ecount : int
        Number of elements in the window.
    """

    __slots__ = ("_storage", "_offset", "_ecount", "_datatype", "_released")

    def __init__(self, storage: _HostStorage, offset: int, ecount: int) -> None:
        self._storage = storage
        self._offset = int(offset)
        self._ecount = int(ecount)
        self._datatype = normalize_datatype(storage.array.dtype)
        self._released = False

    @property
    def datatype(self) -> DataType:
        return self._datatype

    @property
    def ecount(self) -> int:
        return self._ecount

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def storage(self) -> _HostStorage:
        return self._storage

    @property
    def device_index(self) -> int:
        return self._storage.device_index

    @property
    def released(self) -> bool:
        return self._released or self._storage.released

    def view(self) -> np.ndarray:
        """
        Return the window as a writable 1-D NumPy view.

        Raises
        ------
        RuntimeError
            If the buffer (or its storage) has been released.
        """
        if self.released:
            raise RuntimeError(f"Use of released buffer {self!r}")
        return self._storage.array[self._offset : self._offset + self._ecount]

    def __repr__(self) -> str:
        return (
            f"CpuBuffer(storage=#{self._storage.storage_id}, offset={self._offset}, "
            f"ecount={self._ecount})"
        )


class CpuDriver:
    """
    Buffer allocator and aliasing oracle for CPU devices.
    """

    name = "cpu"

    def allocate_device_buffer(
        self, ecount: int, datatype: Any, *, device: Device
    ) -> CpuBuffer:
        """
        Allocate a zero-initialized buffer on a CPU device.

        Raises
        ------
        ValueError
            If `device` is not served by this driver or `ecount` is negative.
        """
        if getattr(device, "driver", None) != self.name:
            raise ValueError(f"CpuDriver cannot allocate on device '{device}'")
        return self._allocate(ecount, datatype, int(device.index))

    def allocate_host_buffer(self, ecount: int, datatype: Any) -> CpuBuffer:
        """
        Allocate a host staging buffer.
        """
        return self._allocate(ecount, datatype, HOST_DEVICE_INDEX)

    def _allocate(self, ecount: int, datatype: Any, device_index: int) -> CpuBuffer:
        ecount = int(ecount)
        if ecount < 0:
            raise ValueError(f"Buffer element count must be >= 0, got {ecount}")
        array = np.zeros(ecount, dtype=to_numpy_dtype(datatype))
        return CpuBuffer(_HostStorage(array, device_index), 0, ecount)

    def sub_buffer(self, buffer: CpuBuffer, offset: int, length: int) -> CpuBuffer:
        """
        Return a zero-copy window `[offset, offset + length)` of `buffer`.

        Raises
        ------
        ValueError
            If the window does not fit inside `buffer`.
        """
        offset = int(offset)
        length = int(length)
        if offset < 0 or length < 0 or offset + length > buffer.ecount:
            raise ValueError(
                f"Sub-buffer [{offset}, {offset + length}) out of range for "
                f"buffer of {buffer.ecount} elements"
            )
        buffer.storage.incref()
        return CpuBuffer(buffer.storage, buffer.offset + offset, length)

    def alias(self, lhs: CpuBuffer, rhs: CpuBuffer) -> bool:
        """
        True iff both buffers reference the identical region.
        """
        if lhs is rhs:
            return True
        return (
            lhs.storage is rhs.storage
            and lhs.offset == rhs.offset
            and lhs.ecount == rhs.ecount
        )

    def partially_alias(self, lhs: CpuBuffer, rhs: CpuBuffer) -> bool:
        """
        True iff the buffers share memory but are not the identical region.
        """
        if lhs.storage is not rhs.storage or self.alias(lhs, rhs):
            return False
        if lhs.ecount == 0 or rhs.ecount == 0:
            return False
        return (
            lhs.offset < rhs.offset + rhs.ecount
            and rhs.offset < lhs.offset + lhs.ecount
        )

    def release(self, buffer: CpuBuffer) -> None:
        """
        Drop the buffer's reference to its storage. Idempotent per buffer.
        """
        if buffer._released:
            return
        buffer._released = True
        buffer.storage.decref()

    def create_stream(self, index: int = 0) -> "CpuStream":
        """
        Create a reference stream bound to device `cpu:<index>`.
        """
        from ._stream import CpuStream

        return CpuStream(Device(f"cpu:{int(index)}"), self)

    def __repr__(self) -> str:
        return "CpuDriver()"
