"""
Device abstraction contracts.

This module defines a duck-typed `DeviceLike` protocol that represents a
computation device descriptor without coupling to a specific concrete class.

Compatibility checks in the tensor core only ever compare devices for
equality and compare their `driver` names, so any object that provides these
members can stand in for `Device` (test doubles included).
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class DeviceLike(Protocol):
    """
    Duck-typed device contract.

    Notes
    -----
    `driver` names the backend that serves the device. Raw bulk copies are
    permitted between devices that share a driver.
    """

    type: object
    index: Optional[int]

    @property
    def driver(self) -> str: ...

    def is_cpu(self) -> bool: ...
    def __str__(self) -> str: ...
