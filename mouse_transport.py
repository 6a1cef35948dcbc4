"""Raw packet transports.

The configuration core only needs ``send`` and ``receive``.

``UsbTransport`` talks HID SET_REPORT/GET_REPORT control transfers via pyusb
(libusb backend). It opens a device by vid/pid or by bus/address and
detaches the kernel driver from interfaces 0-2 while open.

``HidTransport`` goes through hidapi feature reports.

Both raise ``TransferError`` for every failure; nothing is retried here.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from mouse_types import TransferError

log = logging.getLogger(__name__)


DEFAULT_TIMEOUT_MS = 1000
DEFAULT_PACKET_DELAY = 0.008  # 8ms inter-packet delay

# HID class requests
REQUEST_TYPE_OUT = 0x21
REQUEST_TYPE_IN = 0xA1
HID_SET_REPORT = 0x09
HID_GET_REPORT = 0x01
REPORT_TYPE_FEATURE = 0x03

DETACH_INTERFACES = (0, 1, 2)


@dataclass(frozen=True)
class UsbDeviceInfo:
    vendor_id: int
    product_id: int
    bus: int | None = None
    address: int | None = None
    product: str = ""


def enumerate_usb_devices() -> list[UsbDeviceInfo]:
    """List attached USB devices in bus order."""
    import usb.core

    try:
        found = list(usb.core.find(find_all=True))
    except (usb.core.USBError, usb.core.NoBackendError) as exc:
        raise TransferError(f"USB enumeration failed: {exc}") from exc

    devices = []
    for dev in found:
        devices.append(UsbDeviceInfo(
            vendor_id=dev.idVendor,
            product_id=dev.idProduct,
            bus=dev.bus,
            address=dev.address,
        ))
    return devices


class Transport(ABC):
    """Blocking packet channel to one device."""

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def send(self, packet: bytes) -> None: ...

    @abstractmethod
    def receive(self, size: int, report_id: Optional[int] = None) -> bytes: ...

    def __enter__(self) -> Transport:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class UsbTransport(Transport):
    """HID reports over raw USB control transfers (pyusb)."""

    def __init__(self, vendor_id: int | None = None, product_id: int | None = None, *,
                 bus: int | None = None, address: int | None = None,
                 interface: int = 2, in_endpoint: int = 0x82,
                 detach_kernel_driver: bool = True,
                 timeout_ms: int = DEFAULT_TIMEOUT_MS,
                 packet_delay: float = DEFAULT_PACKET_DELAY):
        if (vendor_id is None or product_id is None) and (bus is None or address is None):
            raise ValueError("need vendor/product id or bus/address")
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.bus = bus
        self.address = address
        self.interface = interface
        self.in_endpoint = in_endpoint
        self.detach_kernel_driver = detach_kernel_driver
        self.timeout_ms = timeout_ms
        self.packet_delay = packet_delay
        self._dev = None
        self._detached: list[int] = []

    def open(self) -> None:
        if self._dev is not None:
            return
        import usb.core

        try:
            if self.bus is not None and self.address is not None:
                dev = usb.core.find(bus=self.bus, address=self.address)
            else:
                dev = usb.core.find(idVendor=self.vendor_id, idProduct=self.product_id)
        except (usb.core.USBError, usb.core.NoBackendError) as exc:
            raise TransferError(f"cannot search USB bus: {exc}") from exc
        if dev is None:
            raise TransferError(f"device not found ({self._describe()})")

        self._detached = []
        if self.detach_kernel_driver:
            for iface in DETACH_INTERFACES:
                try:
                    if dev.is_kernel_driver_active(iface):
                        dev.detach_kernel_driver(iface)
                        self._detached.append(iface)
                        log.debug("Interface %d: kernel driver detached", iface)
                except NotImplementedError:
                    break
                except usb.core.USBError as exc:
                    # Interface may simply not exist on this model
                    log.debug("Interface %d: detach skipped: %s", iface, exc)
        self._dev = dev

    def close(self) -> None:
        if self._dev is None:
            return
        import usb.core
        import usb.util

        dev, self._dev = self._dev, None
        usb.util.dispose_resources(dev)
        for iface in self._detached:
            try:
                dev.attach_kernel_driver(iface)
                log.debug("Interface %d: kernel driver reattached", iface)
            except usb.core.USBError as exc:
                log.warning("Interface %d: reattach failed: %s", iface, exc)
        self._detached = []

    def send(self, packet: bytes) -> None:
        dev = self._require_open()
        import usb.core

        value = (REPORT_TYPE_FEATURE << 8) | packet[0]
        try:
            written = dev.ctrl_transfer(REQUEST_TYPE_OUT, HID_SET_REPORT, value,
                                        self.interface, packet, self.timeout_ms)
        except usb.core.USBError as exc:
            raise TransferError(f"send failed: {exc}") from exc
        if written != len(packet):
            raise TransferError(f"short write: {written} of {len(packet)} bytes")
        log.debug("sent %s", packet.hex())
        if self.packet_delay:
            time.sleep(self.packet_delay)

    def receive(self, size: int, report_id: Optional[int] = None) -> bytes:
        dev = self._require_open()
        import usb.core

        try:
            if report_id is None:
                data = dev.read(self.in_endpoint, size, self.timeout_ms)
            else:
                value = (REPORT_TYPE_FEATURE << 8) | report_id
                data = dev.ctrl_transfer(REQUEST_TYPE_IN, HID_GET_REPORT, value,
                                         self.interface, size, self.timeout_ms)
        except usb.core.USBError as exc:
            raise TransferError(f"receive failed: {exc}") from exc
        data = bytes(data)
        log.debug("received %s", data.hex())
        return data

    def _require_open(self):
        if self._dev is None:
            raise TransferError("device not open")
        return self._dev

    def _describe(self) -> str:
        if self.bus is not None:
            return f"bus {self.bus} address {self.address}"
        return f"{self.vendor_id:04X}:{self.product_id:04X}"


class HidTransport(Transport):
    """HID feature reports through hidapi."""

    def __init__(self, path: bytes | str | None = None, *,
                 vendor_id: int | None = None, product_id: int | None = None,
                 interface: int | None = None,
                 timeout_ms: int = DEFAULT_TIMEOUT_MS,
                 packet_delay: float = DEFAULT_PACKET_DELAY):
        if path is None and (vendor_id is None or product_id is None):
            raise ValueError("need a hidraw path or vendor/product id")
        self._path = path
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.interface = interface
        self.timeout_ms = timeout_ms
        self.packet_delay = packet_delay
        self._dev = None

    def open(self) -> None:
        if self._dev is not None:
            return
        import hid

        path = self._path if self._path is not None else self._find_path()
        dev = hid.device()
        try:
            dev.open_path(path.encode() if isinstance(path, str) else path)
        except (OSError, IOError) as exc:
            raise TransferError(f"cannot open HID device {path!r}: {exc}") from exc
        self._dev = dev

    def _find_path(self) -> bytes:
        import hid

        for item in hid.enumerate(self.vendor_id, self.product_id):
            if self.interface is not None and item["interface_number"] != self.interface:
                continue
            return item["path"]
        raise TransferError(f"device not found ({self.vendor_id:04X}:{self.product_id:04X})")

    def close(self) -> None:
        if self._dev is None:
            return
        self._dev.close()
        self._dev = None

    def send(self, packet: bytes) -> None:
        dev = self._require_open()
        try:
            written = dev.send_feature_report(packet)
        except (OSError, IOError, ValueError) as exc:
            raise TransferError(f"send failed: {exc}") from exc
        if written is not None and written < 0:
            raise TransferError(f"send failed for report 0x{packet[0]:02x}")
        log.debug("sent %s", packet.hex())
        if self.packet_delay:
            time.sleep(self.packet_delay)

    def receive(self, size: int, report_id: Optional[int] = None) -> bytes:
        dev = self._require_open()
        try:
            if report_id is None:
                data = dev.read(size, timeout_ms=self.timeout_ms)
            else:
                data = dev.get_feature_report(report_id, size)
        except (OSError, IOError, ValueError) as exc:
            raise TransferError(f"receive failed: {exc}") from exc
        if not data:
            raise TransferError("no response")
        data = bytes(data)
        log.debug("received %s", data.hex())
        return data

    def _require_open(self):
        if self._dev is None:
            raise TransferError("device not open")
        return self._dev
