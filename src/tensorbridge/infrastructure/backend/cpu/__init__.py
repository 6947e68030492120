from ._buffer import CpuBuffer, CpuDriver
from ._stream import CpuStream

__all__ = [CpuBuffer.__name__, CpuDriver.__name__, CpuStream.__name__]
