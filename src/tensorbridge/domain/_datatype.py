"""
Element datatypes understood by the tensor core.

Datatypes are identified by their canonical lowercase names ("float32",
"float64", ...). Backends report the datatype of each buffer through the
`datatype` attribute; the core only compares these values for equality and
checks membership in `FLOAT_DATATYPES`.

The domain layer does not import NumPy. `normalize_datatype` nevertheless
accepts NumPy dtypes and scalar types structurally, by reading their `name`
or `__name__`.
"""

from __future__ import annotations

from enum import Enum


class DataType(str, Enum):
    """
    Canonical element datatypes.
    """

    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    def __str__(self) -> str:
        return self.value


FLOAT_DATATYPES = frozenset({DataType.FLOAT32, DataType.FLOAT64})

_ALIASES = {
    "float": DataType.FLOAT32,
    "double": DataType.FLOAT64,
    "int": DataType.INT32,
    "long": DataType.INT64,
    "short": DataType.INT16,
    "byte": DataType.INT8,
}


def normalize_datatype(datatype: object) -> DataType:
    """
    Convert a datatype-like value into a `DataType`.

    Parameters
    ----------
    datatype : object
        A `DataType`, a canonical name ("float32"), a short alias ("double"),
        or any object exposing `name` / `__name__` (e.g. a NumPy dtype).

    Returns
    -------
    DataType
        The canonical datatype.

    Raises
    ------
    ValueError
        If the value does not name a supported datatype.
    """
    if isinstance(datatype, DataType):
        return datatype
    if isinstance(datatype, str):
        name = datatype
    else:
        name = getattr(datatype, "name", None)
        if not isinstance(name, str):
            name = getattr(datatype, "__name__", None)
        if not isinstance(name, str):
            raise ValueError(f"Unsupported datatype: {datatype!r}")
    name = name.lower()
    if name in _ALIASES:
        return _ALIASES[name]
    try:
        return DataType(name)
    except ValueError:
        raise ValueError(f"Unsupported datatype: {datatype!r}") from None


def is_float_datatype(datatype: object) -> bool:
    """
    Return True if `datatype` is float32 or float64.
    """
    try:
        return normalize_datatype(datatype) in FLOAT_DATATYPES
    except ValueError:
        return False
