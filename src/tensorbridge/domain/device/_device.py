"""
Device abstraction utilities.

This module defines lightweight abstractions for representing computation
devices in a backend-agnostic way. It provides:

- `DeviceType`: an enumeration of supported device categories. The device
  type doubles as the *driver* name: two devices of the same type are served
  by the same backend driver.
- `Device`: a concrete device descriptor that validates and normalizes
  user-facing device strings such as "cpu", "cpu:1" or "cuda:0".

The design avoids backend-specific dependencies and is suitable for use
across domain and infrastructure layers.
"""

from enum import Enum
import re


class DeviceType(Enum):
    """
    Enumeration of supported device categories.

    Attributes
    ----------
    CPU : DeviceType
        Host memory served by the NumPy reference driver.
    CUDA : DeviceType
        NVIDIA CUDA-enabled Graphics Processing Unit.
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Concrete computation device descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be one of:
        - "cpu" (shorthand for "cpu:0")
        - "cpu:<index>"
        - "cuda:<index>"

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.

    Notes
    -----
    - Several CPU devices may exist side by side. They share one driver, which
      is what makes raw bulk copies between them legal while strided
      operations across them are not.
    - This class does not allocate or manage any backend resources.
    """

    __slots__ = ("type", "index")

    _PATTERN = re.compile(r"^(cpu|cuda):(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = 0
            return
        m = self._PATTERN.match(device)
        if not m:
            raise ValueError(
                f"Invalid device '{device}'. Expected 'cpu', 'cpu:<index>' "
                "or 'cuda:<index>'"
            )
        self.type = DeviceType(m.group(1))
        self.index = int(m.group(2))

    @property
    def driver(self) -> str:
        """
        Name of the backend driver serving this device.

        Returns
        -------
        str
            "cpu" or "cuda".
        """
        return self.type.value

    def __str__(self) -> str:
        if self.type is DeviceType.CPU and self.index == 0:
            return "cpu"
        return f"{self.type.value}:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        """
        Devices are equal if they have the same type and index.
        """
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """
        Check whether this device represents host memory.

        Returns
        -------
        bool
            True if the device type is CPU, False otherwise.
        """
        return self.type is DeviceType.CPU
