from __future__ import annotations

import unittest

import numpy as np

from src.tensorbridge.domain._backend import IComputeStream
from src.tensorbridge.domain._dimensions import Dimensions
from src.tensorbridge.domain.device._device import Device
from src.tensorbridge.infrastructure.backend.cpu import CpuDriver, CpuStream


class TestCpuStream(unittest.TestCase):
    def setUp(self):
        self.driver = CpuDriver()
        self.stream = self.driver.create_stream()
        self.device = self.stream.device

    def _device_buffer(self, values, datatype="float64"):
        buf = self.driver.allocate_device_buffer(len(values), datatype, device=self.device)
        buf.view()[...] = values
        return buf

    def test_satisfies_compute_stream_protocol(self):
        self.assertIsInstance(self.stream, IComputeStream)

    def test_requires_cpu_device(self):
        with self.assertRaises(ValueError):
            CpuStream(Device("cuda:0"), self.driver)

    def test_host_device_copies(self):
        host = self.driver.allocate_host_buffer(4, "float64")
        host.view()[...] = [1.0, 2.0, 3.0, 4.0]
        dev = self.driver.allocate_device_buffer(6, "float64", device=self.device)
        self.stream.copy_host_to_device(host, 1, dev, 2, 3)
        self.stream.sync()
        np.testing.assert_array_equal(dev.view(), [0.0, 0.0, 2.0, 3.0, 4.0, 0.0])

        back = self.driver.allocate_host_buffer(2, "float64")
        self.stream.copy_device_to_host(dev, 3, back, 0, 2)
        np.testing.assert_array_equal(back.view(), [3.0, 4.0])

    def test_device_to_device_copy(self):
        src = self._device_buffer([1.0, 2.0, 3.0])
        dst = self.driver.allocate_device_buffer(3, "float64", device=self.device)
        self.stream.copy_device_to_device(src, 0, dst, 0, 3)
        np.testing.assert_array_equal(dst.view(), [1.0, 2.0, 3.0])

    def test_copies_are_bounds_checked(self):
        src = self._device_buffer([1.0, 2.0])
        dst = self.driver.allocate_device_buffer(2, "float64", device=self.device)
        with self.assertRaises(ValueError):
            self.stream.copy_device_to_device(src, 1, dst, 0, 2)
        with self.assertRaises(ValueError):
            self.stream.memset(dst, 0, 1.0, 3)

    def test_memset_range(self):
        buf = self.driver.allocate_device_buffer(5, "float64", device=self.device)
        self.stream.memset(buf, 1, 9.0, 3)
        np.testing.assert_array_equal(buf.view(), [0.0, 9.0, 9.0, 9.0, 0.0])

    def test_memset_integer_truncation_warns(self):
        buf = self.driver.allocate_device_buffer(2, "int16", device=self.device)
        with self.assertWarns(RuntimeWarning):
            self.stream.memset(buf, 0, 2.7, 2)
        np.testing.assert_array_equal(buf.view(), [2, 2])

    def test_strided_assign_kernel(self):
        dest = self.driver.allocate_device_buffer(8, "float64", device=self.device)
        src = self._device_buffer([1.0, 2.0, 3.0])
        self.stream.assign(
            dest, Dimensions([2, 3], strides=[4, 1]), src, Dimensions([3]), 6
        )
        np.testing.assert_array_equal(
            dest.view(), [1.0, 2.0, 3.0, 0.0, 1.0, 2.0, 3.0, 0.0]
        )

    def test_empty_operand_is_noop(self):
        dest = self._device_buffer([5.0, 5.0])
        empty = self.driver.allocate_device_buffer(0, "float64", device=self.device)
        self.stream.assign(dest, Dimensions([2]), empty, Dimensions([0]), 2)
        np.testing.assert_array_equal(dest.view(), [5.0, 5.0])

    def test_division_by_zero_follows_ieee(self):
        dest = self.driver.allocate_device_buffer(3, "float64", device=self.device)
        x = self._device_buffer([1.0, -1.0, 0.0])
        y = self._device_buffer([0.0, 0.0, 0.0])
        dims = Dimensions([3])
        self.stream.binary_op(dest, dims, x, dims, 1.0, y, dims, 1.0, 3, "/")
        out = dest.view()
        self.assertEqual(out[0], np.inf)
        self.assertEqual(out[1], -np.inf)
        self.assertTrue(np.isnan(out[2]))

    def test_gemm_kernel_with_padded_rows(self):
        a = self._device_buffer([1.0, 2.0, -1.0, 3.0, 4.0, -1.0])
        b = self._device_buffer([1.0, 0.0, 0.0, 1.0])
        c = self.driver.allocate_device_buffer(4, "float64", device=self.device)
        self.stream.gemm(c, 2, False, False, 1.0, a, 2, 2, 3, b, 2, 2, 0.0)
        np.testing.assert_array_equal(c.view(), [1.0, 2.0, 3.0, 4.0])


if __name__ == "__main__":
    unittest.main()
