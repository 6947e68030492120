"""
tensorbridge: device-agnostic tensor views and operation dispatch.

Typical usage
-------------
    from tensorbridge import CpuDriver, TensorContext, from_numpy, binary_op

    ctx = TensorContext(CpuDriver().create_stream())
    x = from_numpy(ctx, [[1.0, 2.0], [3.0, 4.0]])
    binary_op(ctx, x, 1.0, x, 2.0, 1.0, "+")
"""

from .domain._datatype import DataType
from .domain._dimensions import Dimensions
from .domain._errors import (
    AliasingViolation,
    DatatypeMismatch,
    DeviceMismatch,
    DriverMismatch,
    EcountIncommensurate,
    MissingContext,
    PrecisionUnsupported,
    ShapeError,
    TensorError,
    UnsupportedOperand,
)
from .domain.device._device import Device
from .infrastructure._context import TensorContext
from .infrastructure._resource import release_tensor, resource_context
from .infrastructure.backend.cpu import CpuDriver, CpuStream
from .infrastructure.ops.activation import activation_gradient, softmax
from .infrastructure.ops.batchnorm import (
    BATCH_NORM_EPSILON_FLOOR,
    batch_normalize,
    batch_normalize_gradients,
    batch_normalize_update_and_apply,
)
from .infrastructure.ops.blas import gemm, gemv
from .infrastructure.ops.elementwise import assign, binary_op, ternary_op, unary_op
from .infrastructure.tensor._tensor import Tensor
from .infrastructure.tensor._tensor_builder import (
    columns,
    construct_tensor,
    from_numpy,
    make_dense,
    new_tensor,
    rows,
    submatrix,
    subvector,
    to_double_array,
    to_numpy,
)

__all__ = [
    "AliasingViolation",
    "BATCH_NORM_EPSILON_FLOOR",
    "CpuDriver",
    "CpuStream",
    "DataType",
    "DatatypeMismatch",
    "Device",
    "DeviceMismatch",
    "Dimensions",
    "DriverMismatch",
    "EcountIncommensurate",
    "MissingContext",
    "PrecisionUnsupported",
    "ShapeError",
    "Tensor",
    "TensorContext",
    "TensorError",
    "UnsupportedOperand",
    "activation_gradient",
    "assign",
    "batch_normalize",
    "batch_normalize_gradients",
    "batch_normalize_update_and_apply",
    "binary_op",
    "columns",
    "construct_tensor",
    "from_numpy",
    "gemm",
    "gemv",
    "make_dense",
    "new_tensor",
    "release_tensor",
    "resource_context",
    "rows",
    "softmax",
    "submatrix",
    "subvector",
    "ternary_op",
    "to_double_array",
    "to_numpy",
    "unary_op",
]
