"""USB connection carrying the bootloader byte stream.

Supports both ``hidapi`` (preferred) and ``pyusb`` backends.

HID moves fixed 64-byte reports, so over ``hidapi`` the stream is wrapped
in length-prefixed reports::

    +------------+--------------+--------------+
    | Length     |  Stream data |  Padding     |
    | 1 byte     |  0-63 bytes  |  to 64 B     |
    +------------+--------------+--------------+

Output reports are sent with report ID 0x00 in front. Over ``pyusb`` the
bulk endpoints carry the raw stream with no wrapping. Either way
:meth:`USBConnection.read` returns only stream bytes, which can be handed
to a :class:`~tockloader_protocol.protocol.parser.StreamParser` unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Defaults; override per board.
VENDOR_ID = 0x6667
PRODUCT_ID = 0xABCD
INTERFACE = 0
EP_IN = 0x81
EP_OUT = 0x02
PACKET_SIZE = 64
HID_REPORT_ID = 0x00
HID_DATA_SIZE = PACKET_SIZE - 1  # 1-byte length prefix
READ_TIMEOUT_MS = 1000
WRITE_TIMEOUT_MS = 1000


def build_report(chunk: bytes) -> bytes:
    """Wrap up to 63 stream bytes in a padded, length-prefixed HID report."""
    if len(chunk) > HID_DATA_SIZE:
        raise ValueError(f"HID report holds at most {HID_DATA_SIZE} bytes, got {len(chunk)}")
    return bytes([len(chunk)]) + chunk + b"\x00" * (HID_DATA_SIZE - len(chunk))


def parse_report(report: bytes) -> bytes:
    """Extract the stream bytes from an input report, dropping padding."""
    if not report:
        return b""
    length = min(report[0], len(report) - 1, HID_DATA_SIZE)
    return bytes(report[1 : 1 + length])


@dataclass
class DeviceInfo:
    """Basic device identification from USB descriptors."""

    vendor_id: int = VENDOR_ID
    product_id: int = PRODUCT_ID
    manufacturer: str = ""
    product: str = ""
    backend: str = ""

    def to_dict(self) -> dict:
        return {
            "vendor_id": f"{self.vendor_id:#06x}",
            "product_id": f"{self.product_id:#06x}",
            "manufacturer": self.manufacturer,
            "product": self.product,
            "backend": self.backend,
        }


class USBConnection:
    """Manages the USB connection to a bootloader.

    Usage::

        conn = USBConnection()
        conn.open()
        conn.write(build_ping())
        chunk = conn.read()
        conn.close()
    """

    def __init__(
        self,
        vendor_id: int = VENDOR_ID,
        product_id: int = PRODUCT_ID,
        interface: int = INTERFACE,
        ep_in: int = EP_IN,
        ep_out: int = EP_OUT,
        write_timeout_ms: int = WRITE_TIMEOUT_MS,
    ) -> None:
        self._write_timeout_ms = write_timeout_ms
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._interface = interface
        self._ep_in = ep_in
        self._ep_out = ep_out
        self._device = None
        self._backend: str = ""
        self._connected = False
        self._device_info = DeviceInfo(vendor_id=vendor_id, product_id=product_id)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    def open(self) -> DeviceInfo:
        """Open a connection to the device, trying hidapi first, then pyusb.

        Returns:
            DeviceInfo with USB descriptor information.

        Raises:
            ConnectionError: If the device cannot be found or opened.
        """
        try:
            return self._open_hidapi()
        except Exception as e:
            logger.debug("hidapi backend failed: %s, trying pyusb", e)

        try:
            return self._open_pyusb()
        except Exception as e:
            raise ConnectionError(
                f"Could not connect to bootloader "
                f"({self._vendor_id:#06x}:{self._product_id:#06x}). "
                f"Ensure the device is in bootloader mode and you have permissions. "
                f"Last error: {e}"
            ) from e

    def _open_hidapi(self) -> DeviceInfo:
        import hid

        device = hid.device()
        device.open(self._vendor_id, self._product_id)
        device.set_nonblocking(False)

        self._device = device
        self._backend = "hidapi"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id,
            manufacturer=device.get_manufacturer_string() or "",
            product=device.get_product_string() or "",
            backend=self._backend,
        )

        logger.info(
            "Connected via hidapi: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )
        return self._device_info

    def _open_pyusb(self) -> DeviceInfo:
        import usb.core
        import usb.util

        dev = usb.core.find(idVendor=self._vendor_id, idProduct=self._product_id)
        if dev is None:
            raise ConnectionError("Device not found via pyusb")

        if dev.is_kernel_driver_active(self._interface):
            dev.detach_kernel_driver(self._interface)

        usb.util.claim_interface(dev, self._interface)

        self._device = dev
        self._backend = "pyusb"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id,
            manufacturer=usb.util.get_string(dev, dev.iManufacturer) or "",
            product=usb.util.get_string(dev, dev.iProduct) or "",
            backend=self._backend,
        )

        logger.info(
            "Connected via pyusb: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )
        return self._device_info

    def close(self) -> None:
        """Close the USB connection."""
        if not self._connected:
            return

        try:
            if self._backend == "hidapi":
                self._device.close()
            elif self._backend == "pyusb":
                import usb.util
                usb.util.release_interface(self._device, self._interface)
        except Exception as e:
            logger.warning("Error closing device: %s", e)
        finally:
            self._device = None
            self._connected = False
            logger.info("Disconnected")

    def write(self, data: bytes) -> int:
        """Write raw frame bytes to the device.

        Over hidapi the data is split into length-prefixed reports; over
        pyusb it is sent in ``PACKET_SIZE`` bulk transfers.

        Returns:
            Number of stream bytes written.

        Raises:
            ConnectionError: If not connected or a transfer fails.
        """
        if not self._connected:
            raise ConnectionError("Not connected to device")

        if self._backend == "hidapi":
            step = HID_DATA_SIZE
        elif self._backend == "pyusb":
            step = PACKET_SIZE
        else:
            raise RuntimeError(f"Unknown backend: {self._backend}")

        written = 0
        for offset in range(0, len(data), step):
            chunk = data[offset : offset + step]
            if self._backend == "hidapi":
                result = self._device.write(bytes([HID_REPORT_ID]) + build_report(chunk))
            else:
                result = self._device.write(self._ep_out, chunk, timeout=self._write_timeout_ms)
            if result < 0:
                raise ConnectionError(f"USB write failed after {written} bytes")
            written += len(chunk)
        return written

    def read(self, size: int = PACKET_SIZE, timeout_ms: int = READ_TIMEOUT_MS) -> bytes | None:
        """Read stream bytes from the device.

        Over hidapi one report is read and its padding stripped; over pyusb
        up to ``size`` bytes are read from the bulk endpoint.

        Returns:
            The stream bytes read, or None if the read timed out or failed.

        Raises:
            ConnectionError: If not connected.
        """
        if not self._connected:
            raise ConnectionError("Not connected to device")

        if self._backend not in ("hidapi", "pyusb"):
            raise RuntimeError(f"Unknown backend: {self._backend}")

        try:
            if self._backend == "hidapi":
                report = self._device.read(PACKET_SIZE, timeout_ms)
                data = parse_report(bytes(report)) if report else b""
            else:
                data = self._device.read(self._ep_in, size, timeout=timeout_ms)
        except Exception as e:
            logger.debug("Read error: %s", e)
            return None

        if not data:
            return None
        return bytes(data)
