"""
Reference execution stream for CPU devices.

`CpuStream` implements both halves of the backend contract: the memory
movement primitives of `IStream` and the numeric kernels of `ITensorMath`.
Calls execute synchronously on the calling thread, which trivially satisfies
the in-order submission guarantee; `sync()` is a no-op.

Every kernel entry point unwraps its `CpuBuffer` arguments into flat NumPy
views and delegates to the matching function in
`tensorbridge.infrastructure.ops.*_cpu`.
"""

from __future__ import annotations

from typing import Sequence
import warnings

import numpy as np

from ....domain._backend import VectorArg
from ....domain._dimensions import Dimensions
from ....domain.device._device import Device
from ...ops import activation_cpu, batchnorm_cpu, blas_cpu, elementwise_cpu
from ._buffer import CpuBuffer, CpuDriver


def _window(buffer: CpuBuffer, offset: int, n_elems: int) -> np.ndarray:
    offset = int(offset)
    n_elems = int(n_elems)
    if offset < 0 or n_elems < 0 or offset + n_elems > buffer.ecount:
        raise ValueError(
            f"Range [{offset}, {offset + n_elems}) out of bounds for {buffer!r}"
        )
    return buffer.view()[offset : offset + n_elems]


def _vec(arg: VectorArg) -> batchnorm_cpu.VectorArray:
    buffer, dims = arg
    return buffer.view(), dims


def _fill_value(value: float, dtype: np.dtype) -> float:
    """
    Cast a fill value to the buffer dtype, warning when integer storage
    truncates it.
    """
    if np.issubdtype(dtype, np.integer) and float(value) != int(value):
        warnings.warn(
            f"Fill value {value!r} truncated to {int(value)} for {dtype} buffer",
            RuntimeWarning,
            stacklevel=3,
        )
        return int(value)
    return value


class CpuStream:
    """
    Synchronous NumPy stream bound to one CPU device.

    Parameters
    ----------
    device : Device
        The CPU device this stream executes on.
    driver : CpuDriver
        The allocator that owns every buffer the stream touches.
    """

    def __init__(self, device: Device, driver: CpuDriver) -> None:
        if not device.is_cpu():
            raise ValueError(f"CpuStream requires a CPU device, got '{device}'")
        self._device = device
        self._driver = driver

    @property
    def device(self) -> Device:
        return self._device

    @property
    def driver(self) -> CpuDriver:
        return self._driver

    def sync(self) -> None:
        """
        Wait for completion. Work is already complete when a call returns.
        """
        return None

    # ------------------------------------------------------------------
    # Memory movement
    # ------------------------------------------------------------------
    def copy_host_to_device(
        self,
        host_buffer: CpuBuffer,
        host_offset: int,
        device_buffer: CpuBuffer,
        device_offset: int,
        n_elems: int,
    ) -> None:
        _window(device_buffer, device_offset, n_elems)[...] = _window(
            host_buffer, host_offset, n_elems
        )

    def copy_device_to_host(
        self,
        device_buffer: CpuBuffer,
        device_offset: int,
        host_buffer: CpuBuffer,
        host_offset: int,
        n_elems: int,
    ) -> None:
        _window(host_buffer, host_offset, n_elems)[...] = _window(
            device_buffer, device_offset, n_elems
        )

    def copy_device_to_device(
        self,
        src: CpuBuffer,
        src_offset: int,
        dst: CpuBuffer,
        dst_offset: int,
        n_elems: int,
    ) -> None:
        _window(dst, dst_offset, n_elems)[...] = _window(src, src_offset, n_elems)

    def memset(self, buffer: CpuBuffer, offset: int, value: float, n_elems: int) -> None:
        target = _window(buffer, offset, n_elems)
        target[...] = _fill_value(value, target.dtype)

    # ------------------------------------------------------------------
    # Elementwise
    # ------------------------------------------------------------------
    def assign_constant(
        self, buffer: CpuBuffer, dims: Dimensions, value: float, n_elems: int
    ) -> None:
        flat = buffer.view()
        elementwise_cpu.assign_constant_cpu(
            flat, dims, _fill_value(value, flat.dtype), n_elems
        )

    def assign(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        src: CpuBuffer,
        src_dims: Dimensions,
        n_elems: int,
    ) -> None:
        elementwise_cpu.assign_cpu(
            dest.view(), dest_dims, src.view(), src_dims, n_elems
        )

    def unary_accum(
        self, dest: CpuBuffer, dest_dims: Dimensions, alpha: float, op: str, n_elems: int
    ) -> None:
        elementwise_cpu.unary_accum_cpu(dest.view(), dest_dims, alpha, op, n_elems)

    def unary_op(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        x: CpuBuffer,
        x_dims: Dimensions,
        alpha: float,
        op: str,
        n_elems: int,
    ) -> None:
        elementwise_cpu.unary_op_cpu(
            dest.view(), dest_dims, x.view(), x_dims, alpha, op, n_elems
        )

    def binary_accum_constant(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        dest_alpha: float,
        scalar: float,
        n_elems: int,
        op: str,
        reverse_operands: bool,
    ) -> None:
        elementwise_cpu.binary_accum_constant_cpu(
            dest.view(), dest_dims, dest_alpha, scalar, n_elems, op, reverse_operands
        )

    def binary_op_constant(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        x: CpuBuffer,
        x_dims: Dimensions,
        x_alpha: float,
        scalar: float,
        n_elems: int,
        op: str,
        reverse_operands: bool,
    ) -> None:
        elementwise_cpu.binary_op_constant_cpu(
            dest.view(),
            dest_dims,
            x.view(),
            x_dims,
            x_alpha,
            scalar,
            n_elems,
            op,
            reverse_operands,
        )

    def binary_accum(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        dest_alpha: float,
        y: CpuBuffer,
        y_dims: Dimensions,
        y_alpha: float,
        n_elems: int,
        op: str,
        reverse_operands: bool,
    ) -> None:
        elementwise_cpu.binary_accum_cpu(
            dest.view(),
            dest_dims,
            dest_alpha,
            y.view(),
            y_dims,
            y_alpha,
            n_elems,
            op,
            reverse_operands,
        )

    def binary_op(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        x: CpuBuffer,
        x_dims: Dimensions,
        x_alpha: float,
        y: CpuBuffer,
        y_dims: Dimensions,
        y_alpha: float,
        n_elems: int,
        op: str,
    ) -> None:
        elementwise_cpu.binary_op_cpu(
            dest.view(),
            dest_dims,
            x.view(),
            x_dims,
            x_alpha,
            y.view(),
            y_dims,
            y_alpha,
            n_elems,
            op,
        )

    def ternary_op(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        x: CpuBuffer,
        x_dims: Dimensions,
        x_alpha: float,
        y: CpuBuffer,
        y_dims: Dimensions,
        y_alpha: float,
        z: CpuBuffer,
        z_dims: Dimensions,
        z_alpha: float,
        n_elems: int,
        op: str,
    ) -> None:
        elementwise_cpu.ternary_op_cpu(
            dest.view(),
            dest_dims,
            x.view(),
            x_dims,
            x_alpha,
            y.view(),
            y_dims,
            y_alpha,
            z.view(),
            z_dims,
            z_alpha,
            n_elems,
            op,
        )

    def ternary_op_constant(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        a: CpuBuffer,
        a_dims: Dimensions,
        a_alpha: float,
        b: CpuBuffer,
        b_dims: Dimensions,
        b_alpha: float,
        constant: float,
        n_elems: int,
        op: str,
        arg_order: Sequence[str],
    ) -> None:
        elementwise_cpu.ternary_op_constant_cpu(
            dest.view(),
            dest_dims,
            a.view(),
            a_dims,
            a_alpha,
            b.view(),
            b_dims,
            b_alpha,
            constant,
            n_elems,
            op,
            arg_order,
        )

    def ternary_op_constant_constant(
        self,
        dest: CpuBuffer,
        dest_dims: Dimensions,
        a: CpuBuffer,
        a_dims: Dimensions,
        a_alpha: float,
        constant_1: float,
        constant_2: float,
        n_elems: int,
        op: str,
        arg_order: Sequence[str],
    ) -> None:
        elementwise_cpu.ternary_op_constant_constant_cpu(
            dest.view(),
            dest_dims,
            a.view(),
            a_dims,
            a_alpha,
            constant_1,
            constant_2,
            n_elems,
            op,
            arg_order,
        )

    # ------------------------------------------------------------------
    # BLAS
    # ------------------------------------------------------------------
    def gemm(
        self,
        c: CpuBuffer,
        c_colstride: int,
        trans_a: bool,
        trans_b: bool,
        alpha: float,
        a: CpuBuffer,
        a_row_count: int,
        a_col_count: int,
        a_colstride: int,
        b: CpuBuffer,
        b_col_count: int,
        b_colstride: int,
        beta: float,
    ) -> None:
        blas_cpu.gemm_cpu(
            c.view(),
            c_colstride,
            trans_a,
            trans_b,
            alpha,
            a.view(),
            a_row_count,
            a_col_count,
            a_colstride,
            b.view(),
            b_col_count,
            b_colstride,
            beta,
        )

    def gemv(
        self,
        c: CpuBuffer,
        inc_c: int,
        trans_a: bool,
        alpha: float,
        a: CpuBuffer,
        a_row_count: int,
        a_col_count: int,
        a_colstride: int,
        x: CpuBuffer,
        inc_x: int,
        beta: float,
    ) -> None:
        blas_cpu.gemv_cpu(
            c.view(),
            inc_c,
            trans_a,
            alpha,
            a.view(),
            a_row_count,
            a_col_count,
            a_colstride,
            x.view(),
            inc_x,
            beta,
        )

    # ------------------------------------------------------------------
    # Batch normalization
    # ------------------------------------------------------------------
    def batch_normalize_eltwise(
        self,
        output: CpuBuffer,
        input: CpuBuffer,
        means: VectorArg,
        variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        element_count: int,
    ) -> None:
        batchnorm_cpu.batch_normalize_cpu(
            output.view(),
            input.view(),
            _vec(means),
            _vec(variances),
            _vec(scale),
            _vec(bias),
            epsilon,
            batch_count,
            element_count,
            1,
        )

    def batch_normalize_spatial(
        self,
        output: CpuBuffer,
        input: CpuBuffer,
        means: VectorArg,
        variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        channel_count: int,
        element_count: int,
    ) -> None:
        batchnorm_cpu.batch_normalize_cpu(
            output.view(),
            input.view(),
            _vec(means),
            _vec(variances),
            _vec(scale),
            _vec(bias),
            epsilon,
            batch_count,
            channel_count,
            element_count,
        )

    def batch_normalize_update_and_apply_eltwise(
        self,
        output: CpuBuffer,
        input: CpuBuffer,
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
    ) -> None:
        batchnorm_cpu.batch_normalize_update_and_apply_cpu(
            output.view(),
            input.view(),
            _vec(batch_means),
            _vec(batch_variances),
            _vec(running_means),
            _vec(running_variances),
            ave_factor,
            _vec(scale),
            _vec(bias),
            epsilon,
            batch_count,
            element_count,
            1,
        )

    def batch_normalize_update_and_apply_spatial(
        self,
        output: CpuBuffer,
        input: CpuBuffer,
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
    ) -> None:
        batchnorm_cpu.batch_normalize_update_and_apply_cpu(
            output.view(),
            input.view(),
            _vec(batch_means),
            _vec(batch_variances),
            _vec(running_means),
            _vec(running_variances),
            ave_factor,
            _vec(scale),
            _vec(bias),
            epsilon,
            batch_count,
            channel_count,
            element_count,
        )

    def batch_normalize_gradients_eltwise(
        self,
        input_gradient: CpuBuffer,
        scale_gradient: VectorArg,
        bias_gradient: VectorArg,
        output_gradient: CpuBuffer,
        output: CpuBuffer,
        input: CpuBuffer,
        batch_means: VectorArg,
        batch_variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        element_count: int,
    ) -> None:
        batchnorm_cpu.batch_normalize_gradients_cpu(
            input_gradient.view(),
            _vec(scale_gradient),
            _vec(bias_gradient),
            output_gradient.view(),
            output.view(),
            input.view(),
            _vec(batch_means),
            _vec(batch_variances),
            _vec(scale),
            _vec(bias),
            epsilon,
            batch_count,
            element_count,
            1,
        )

    def batch_normalize_gradients_spatial(
        self,
        input_gradient: CpuBuffer,
        scale_gradient: VectorArg,
        bias_gradient: VectorArg,
        output_gradient: CpuBuffer,
        output: CpuBuffer,
        input: CpuBuffer,
        batch_means: VectorArg,
        batch_variances: VectorArg,
        scale: VectorArg,
        bias: VectorArg,
        epsilon: float,
        batch_count: int,
        channel_count: int,
        element_count: int,
    ) -> None:
        batchnorm_cpu.batch_normalize_gradients_cpu(
            input_gradient.view(),
            _vec(scale_gradient),
            _vec(bias_gradient),
            output_gradient.view(),
            output.view(),
            input.view(),
            _vec(batch_means),
            _vec(batch_variances),
            _vec(scale),
            _vec(bias),
            epsilon,
            batch_count,
            channel_count,
            element_count,
        )

    # ------------------------------------------------------------------
    # Activations
    # ------------------------------------------------------------------
    def activation_gradient(
        self,
        input_gradient: CpuBuffer,
        output_gradient: CpuBuffer,
        output: CpuBuffer,
        op: str,
        n_elems: int,
    ) -> None:
        activation_cpu.activation_gradient_cpu(
            input_gradient.view(), output_gradient.view(), output.view(), op, n_elems
        )

    def softmax(
        self, output: CpuBuffer, input: CpuBuffer, batch_count: int, element_count: int
    ) -> None:
        activation_cpu.softmax_cpu(
            output.view(), input.view(), batch_count, element_count
        )

    def __repr__(self) -> str:
        return f"CpuStream(device={self._device!r})"
