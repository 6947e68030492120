"""
Backend contracts for the tensor core.

The core never touches element data. It validates arguments, derives the
parameters of a backend call and forwards them to one of the collaborators
described here:

- `IBuffer`: an opaque, non-owning handle to a region of backend memory.
- `IDriver`: the buffer allocator for a family of devices. It owns the
  allocation table and answers the aliasing predicates.
- `IStream`: the execution context. Calls issued on one stream are processed
  in submission order; completion relative to the host is asynchronous until
  `sync()` is called.
- `ITensorMath`: the numeric kernels, one entry point per operation. This is
  the only place that loops over elements.

All contracts use structural typing so concrete backends do not need to
inherit from anything defined here.

Calling conventions
-------------------
- Element offsets and counts are in elements, never bytes.
- `Dimensions` arguments always accompany the buffer they describe.
- Scalar coefficients are plain Python numbers.
- `n_elems` is the number of logical iterations; operands smaller than
  `n_elems` are indexed by remainder (broadcasting).
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from ._dimensions import Dimensions
from .device._device_protocol import DeviceLike

VectorArg = tuple["IBuffer", Dimensions]
"""A buffer paired with the (rank-1) dimensions used to read it as a vector."""


@runtime_checkable
class IBuffer(Protocol):
    """
    Opaque backend buffer handle.
    """

    @property
    def datatype(self) -> Any: ...

    @property
    def ecount(self) -> int: ...


@runtime_checkable
class IHostBuffer(IBuffer, Protocol):
    """
    Host-resident staging buffer whose elements the core may read and write.

    `view()` returns a writable, flat array-like object (a NumPy array for the
    reference backend).
    """

    def view(self) -> Any: ...


@runtime_checkable
class IDriver(Protocol):
    """
    Buffer allocator and aliasing oracle for one backend family.
    """

    @property
    def name(self) -> str: ...

    def allocate_device_buffer(
        self, ecount: int, datatype: Any, *, device: DeviceLike
    ) -> IBuffer: ...

    def allocate_host_buffer(self, ecount: int, datatype: Any) -> IHostBuffer: ...

    def sub_buffer(self, buffer: IBuffer, offset: int, length: int) -> IBuffer: ...

    def alias(self, lhs: IBuffer, rhs: IBuffer) -> bool: ...

    def partially_alias(self, lhs: IBuffer, rhs: IBuffer) -> bool: ...

    def release(self, buffer: IBuffer) -> None: ...


@runtime_checkable
class IStream(Protocol):
    """
    Execution context: ordered submission plus bulk memory movement.
    """

    @property
    def device(self) -> DeviceLike: ...

    @property
    def driver(self) -> IDriver: ...

    def sync(self) -> None: ...

    def copy_host_to_device(
        self,
        host_buffer: IBuffer,
        host_offset: int,
        device_buffer: IBuffer,
        device_offset: int,
        n_elems: int,
    ) -> None: ...

    def copy_device_to_host(
        self,
        device_buffer: IBuffer,
        device_offset: int,
        host_buffer: IBuffer,
        host_offset: int,
        n_elems: int,
    ) -> None: ...

    def copy_device_to_device(
        self,
        src: IBuffer,
        src_offset: int,
        dst: IBuffer,
        dst_offset: int,
        n_elems: int,
    ) -> None: ...

    def memset(self, buffer: IBuffer, offset: int, value: float, n_elems: int) -> None: ...


@runtime_checkable
class ITensorMath(Protocol):
    """
    Numeric kernel entry points.

    Every argument has already been validated by the core.
    """

    # ------------------------------------------------------------------
    # Elementwise
    # ------------------------------------------------------------------
    def assign_constant(
        self, buffer: IBuffer, dims: Dimensions, value: float, n_elems: int
    ) -> None: ...

    def assign(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        src: IBuffer,
        src_dims: Dimensions,
        n_elems: int,
    ) -> None: ...

    def unary_accum(
        self, dest: IBuffer, dest_dims: Dimensions, alpha: float, op: str, n_elems: int
    ) -> None: ...

    def unary_op(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        x: IBuffer,
        x_dims: Dimensions,
        alpha: float,
        op: str,
        n_elems: int,
    ) -> None: ...

    def binary_accum_constant(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        dest_alpha: float,
        scalar: float,
        n_elems: int,
        op: str,
        reverse_operands: bool,
    ) -> None: ...

    def binary_op_constant(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        x: IBuffer,
        x_dims: Dimensions,
        x_alpha: float,
        scalar: float,
        n_elems: int,
        op: str,
        reverse_operands: bool,
    ) -> None: ...

    def binary_accum(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        dest_alpha: float,
        y: IBuffer,
        y_dims: Dimensions,
        y_alpha: float,
        n_elems: int,
        op: str,
        reverse_operands: bool,
    ) -> None: ...

    def binary_op(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        x: IBuffer,
        x_dims: Dimensions,
        x_alpha: float,
        y: IBuffer,
        y_dims: Dimensions,
        y_alpha: float,
        n_elems: int,
        op: str,
    ) -> None: ...

    def ternary_op(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        x: IBuffer,
        x_dims: Dimensions,
        x_alpha: float,
        y: IBuffer,
        y_dims: Dimensions,
        y_alpha: float,
        z: IBuffer,
        z_dims: Dimensions,
        z_alpha: float,
        n_elems: int,
        op: str,
    ) -> None: ...

    def ternary_op_constant(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        a: IBuffer,
        a_dims: Dimensions,
        a_alpha: float,
        b: IBuffer,
        b_dims: Dimensions,
        b_alpha: float,
        constant: float,
        n_elems: int,
        op: str,
        arg_order: Sequence[str],
    ) -> None: ...

    def ternary_op_constant_constant(
        self,
        dest: IBuffer,
        dest_dims: Dimensions,
        a: IBuffer,
        a_dims: Dimensions,
        a_alpha: float,
        constant_1: float,
        constant_2: float,
        n_elems: int,
        op: str,
        arg_order: Sequence[str],
    ) -> None: ...

    # ------------------------------------------------------------------
    # BLAS
    # ------------------------------------------------------------------
    def gemm(
        self,
        c: IBuffer,
        c_colstride: int,
        trans_a: bool,
        trans_b: bool,
        alpha: float,
        a: IBuffer,
        a_row_count: int,
        a_col_count: int,
        a_colstride: int,
        b: IBuffer,
        b_col_count: int,
        b_colstride: int,
        beta: float,
    ) -> None: ...

    def gemv(
        self,
        c: IBuffer,
        inc_c: int,
        trans_a: bool,
        alpha: float,
        a: IBuffer,
        a_row_count: int,
        a_col_count: int,
        a_colstride: int,
        x: IBuffer,
        inc_x: int,
        beta: float,
    ) -> None: ...

    # ------------------------------------------------------------------
    # Batch normalization (eltwise: rank-2 input, spatial: rank > 2)
    # ------------------------------------------------------------------
    def batch_normalize_eltwise(
        self,
        output: IBuffer,
        input: IBuffer,
        means: VectorArg,
        variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        element_count: int,
    ) -> None: ...

    def batch_normalize_spatial(
        self,
        output: IBuffer,
        input: IBuffer,
        means: VectorArg,
        variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        channel_count: int,
        element_count: int,
    ) -> None: ...

    def batch_normalize_update_and_apply_eltwise(
        self,
        output: IBuffer,
        input: IBuffer,
        batch_means: VectorArg,
        batch_variances: VectorArg,
        running_means: VectorArg,
        running_variances: VectorArg,
        ave_factor: float,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        element_count: int,
    ) -> None: ...

    def batch_normalize_update_and_apply_spatial(
        self,
        output: IBuffer,
        input: IBuffer,
        batch_means: VectorArg,
        batch_variances: VectorArg,
        running_means: VectorArg,
        running_variances: VectorArg,
        ave_factor: float,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        channel_count: int,
        element_count: int,
    ) -> None: ...

    def batch_normalize_gradients_eltwise(
        self,
        input_gradient: IBuffer,
        scale_gradient: VectorArg,
        bias_gradient: VectorArg,
        output_gradient: IBuffer,
        output: IBuffer,
        input: IBuffer,
        batch_means: VectorArg,
        batch_variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        element_count: int,
    ) -> None: ...

    def batch_normalize_gradients_spatial(
        self,
        input_gradient: IBuffer,
        scale_gradient: VectorArg,
        bias_gradient: VectorArg,
        output_gradient: IBuffer,
        output: IBuffer,
        input: IBuffer,
        batch_means: VectorArg,
        batch_variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        channel_count: int,
        element_count: int,
    ) -> None: ...

    # ------------------------------------------------------------------
    # Activations
    # ------------------------------------------------------------------
    def activation_gradient(
        self,
        input_gradient: IBuffer,
        output_gradient: IBuffer,
        output: IBuffer,
        op: str,
        n_elems: int,
    ) -> None: ...

    def softmax(
        self, output: IBuffer, input: IBuffer, batch_count: int, element_count: int
    ) -> None: ...


@runtime_checkable
class IComputeStream(IStream, ITensorMath, Protocol):
    """
    A stream that also exposes the numeric kernels.

    The reference CPU stream implements both halves; accelerator backends are
    expected to do the same.
    """


__all__ = [
    "IBuffer",
    "IHostBuffer",
    "IDriver",
    "IStream",
    "ITensorMath",
    "IComputeStream",
    "VectorArg",
]

