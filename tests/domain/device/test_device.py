from __future__ import annotations

import unittest

from src.tensorbridge.domain.device._device import Device, DeviceType
from src.tensorbridge.domain.device._device_protocol import DeviceLike


class TestDevice(unittest.TestCase):
    def test_cpu_shorthand(self):
        d = Device("cpu")
        self.assertIs(d.type, DeviceType.CPU)
        self.assertEqual(d.index, 0)
        self.assertEqual(str(d), "cpu")
        self.assertEqual(d, Device("cpu:0"))

    def test_indexed_devices(self):
        d = Device("cpu:2")
        self.assertEqual(d.index, 2)
        self.assertEqual(str(d), "cpu:2")
        self.assertTrue(d.is_cpu())

        g = Device("cuda:1")
        self.assertFalse(g.is_cpu())
        self.assertEqual(repr(g), "Device('cuda:1')")

    def test_driver_is_device_type(self):
        self.assertEqual(Device("cpu:0").driver, "cpu")
        self.assertEqual(Device("cpu:3").driver, "cpu")
        self.assertEqual(Device("cuda:0").driver, "cuda")

    def test_distinct_devices_share_driver(self):
        a, b = Device("cpu:0"), Device("cpu:1")
        self.assertNotEqual(a, b)
        self.assertEqual(a.driver, b.driver)

    def test_hashable(self):
        self.assertEqual(len({Device("cpu"), Device("cpu:0"), Device("cpu:1")}), 2)

    def test_invalid_strings(self):
        for bad in ("gpu", "cuda", "cpu:-1", "cpu:x", ""):
            with self.subTest(device=bad):
                with self.assertRaises(ValueError):
                    Device(bad)

    def test_satisfies_device_protocol(self):
        self.assertIsInstance(Device("cpu"), DeviceLike)


if __name__ == "__main__":
    unittest.main()
