import io
import unittest
from unittest.mock import MagicMock, patch
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import device_driver
from mouse_m913 import MouseM913
from mouse_models import EmptyMouse, GenericMouse, MouseM908
from mouse_transport import HidTransport, UsbDeviceInfo, UsbTransport
from mouse_types import TransferError
from settings_report import hexdump_packets, print_settings

M908_DEV = UsbDeviceInfo(0x04D9, 0xFC4D, bus=1, address=5)
M913_DEV = UsbDeviceInfo(0x25A7, 0xFA07, bus=2, address=3)
HUB = UsbDeviceInfo(0x1D6B, 0x0002, bus=1, address=1)


class TestDetect(unittest.TestCase):
    def test_detect_known_model(self):
        mouse = device_driver.detect(devices=[HUB, M908_DEV])
        self.assertIsInstance(mouse, MouseM908)
        self.assertEqual((mouse.vid, mouse.pid), (0x04D9, 0xFC4D))
        self.assertEqual((mouse.bus, mouse.address), (1, 5))

    def test_detect_m913(self):
        self.assertIsInstance(device_driver.detect(devices=[M913_DEV]), MouseM913)

    def test_first_matching_device_wins(self):
        self.assertIsInstance(device_driver.detect(devices=[M913_DEV, M908_DEV]), MouseM913)

    def test_specific_model_beats_earlier_holtek_device(self):
        keyboard = UsbDeviceInfo(0x04D9, 0x1702, bus=1, address=2)
        mouse = device_driver.detect(devices=[keyboard, M908_DEV])
        self.assertIsInstance(mouse, MouseM908)
        self.assertEqual(mouse.address, 5)
        # iterators are consumed once per pass
        self.assertIsInstance(device_driver.detect(devices=iter([keyboard, M908_DEV])), MouseM908)
        generic = device_driver.detect("generic", devices=[HUB, keyboard, M908_DEV])
        self.assertIsInstance(generic, GenericMouse)
        self.assertEqual(generic.pid, 0x1702)

    def test_unknown_holtek_falls_back_to_generic(self):
        mouse = device_driver.detect(devices=[UsbDeviceInfo(0x04D9, 0x1234)])
        self.assertIsInstance(mouse, GenericMouse)
        self.assertEqual(mouse.pid, 0x1234)

    def test_nothing_found(self):
        mouse = device_driver.detect(devices=[HUB])
        self.assertIsInstance(mouse, GenericMouse)
        self.assertIsNone(mouse.vid)
        self.assertEqual(device_driver.detect("m908", devices=[HUB]).get_name(), "")

    def test_requested_model(self):
        self.assertIsInstance(device_driver.detect("m908", devices=[M913_DEV, M908_DEV]), MouseM908)
        self.assertIsInstance(device_driver.detect("m913", devices=[M908_DEV]), EmptyMouse)
        self.assertIsInstance(device_driver.detect("modelX", devices=[M908_DEV]), EmptyMouse)

    def test_scans_usb_bus_by_default(self):
        with patch("device_driver.enumerate_usb_devices", return_value=[M908_DEV]) as scan:
            self.assertIsInstance(device_driver.detect(), MouseM908)
        scan.assert_called_once_with()

    def test_model_table(self):
        names = device_driver.supported_models()
        self.assertEqual(names[-1], "generic")
        for name in ("m607", "m709", "m711", "m715", "m719", "m721", "m908", "m913", "m990",
                     "m990chroma"):
            self.assertIn(name, names)
        ids = [(vid, pid) for vid, pid, _ in device_driver.DEVICE_TABLE]
        self.assertIn((0x04D9, 0xFC4D, "m908"), device_driver.DEVICE_TABLE)
        self.assertEqual(len(ids), len(set(ids)))
        self.assertIsInstance(device_driver.model_by_name(" M908 "), MouseM908)
        self.assertEqual(device_driver.model_by_name("m913").pid, 0xFA07)
        self.assertIsInstance(device_driver.model_by_name("nope"), EmptyMouse)


class TestTransportSelection(unittest.TestCase):
    def test_default_transports(self):
        m908 = device_driver.detect(devices=[M908_DEV])
        transport = m908._default_transport()
        self.assertIsInstance(transport, UsbTransport)
        self.assertEqual((transport.bus, transport.address), (1, 5))

        m913 = device_driver.detect(devices=[M913_DEV])
        transport = m913._default_transport()
        self.assertIsInstance(transport, HidTransport)
        self.assertEqual(transport.interface, 1)

    def test_unbound_mouse_cannot_open(self):
        with self.assertRaises(TransferError):
            EmptyMouse().open()

    def test_detach_flag_is_passed_on(self):
        mouse = MouseM908()
        mouse.set_detach_kernel_driver(False)
        self.assertFalse(mouse._default_transport().detach_kernel_driver)

    def test_transport_not_open(self):
        with self.assertRaises(TransferError):
            UsbTransport(0x04D9, 0xFC4D).send(bytes(16))
        with self.assertRaises(TransferError):
            HidTransport(b"/dev/hidraw0").receive(17, 0x08)
        with self.assertRaises(ValueError):
            UsbTransport()

    def test_short_usb_write(self):
        transport = UsbTransport(0x04D9, 0xFC4D, packet_delay=0)
        transport._dev = MagicMock()
        transport._dev.ctrl_transfer.return_value = 8
        with self.assertRaises(TransferError):
            transport.send(bytes(16))
        transport._dev.ctrl_transfer.return_value = 16
        transport.send(bytes([0x02]) + bytes(15))
        args = transport._dev.ctrl_transfer.call_args.args
        self.assertEqual(args[:4], (0x21, 0x09, 0x0302, 2))


class TestReport(unittest.TestCase):
    def test_print_settings(self):
        mouse = MouseM908()
        mouse.set_key_mapping(0, "side_2", bytes([0xEE, 0x00, 0x00, 0x00]))
        mouse.set_macro(0, "down key a\nup key a")
        out = io.StringIO()
        print_settings(mouse, out)
        text = out.getvalue()
        self.assertIn("# Configuration for m908", text)
        self.assertIn("[profile5]", text)
        self.assertIn("lightmode=static\n", text)
        self.assertIn("dpi1=400\n", text)
        self.assertIn("side_1=kp_1\n", text)
        self.assertIn("# side_2: unknown mapping ee000000\n", text)
        self.assertIn(";## down key a\n", text)
        self.assertNotIn("macro2", text)

    def test_print_m913_macro(self):
        mouse = MouseM913()
        mouse.set_macro(2, "down key a\ndelay 20\nup key a")
        out = io.StringIO()
        print_settings(mouse, out)
        self.assertIn("# macro3, repeat 1\n;## down key a\n;## delay 20\n;## up key a\n;## delay 3\n",
                      out.getvalue())

    def test_hexdump(self):
        out = io.StringIO()
        count = hexdump_packets([bytes(range(16)), bytes(20)], out)
        self.assertEqual(count, 2)
        lines = out.getvalue().splitlines()
        self.assertEqual(lines[0], "0000  " + " ".join(f"{b:02x}" for b in range(16)))
        self.assertEqual(lines[1], "")
        self.assertEqual(lines[3], "0010  00 00 00 00")


if __name__ == '__main__':
    unittest.main()
