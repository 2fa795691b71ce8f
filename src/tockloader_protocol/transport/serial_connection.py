"""Serial (UART) connection carrying the bootloader byte stream.

This is the bootloader's native transport: every byte read is protocol
data, so reads can be handed straight to a
:class:`~tockloader_protocol.protocol.parser.StreamParser`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial

logger = logging.getLogger(__name__)

BAUDRATE = 115200
READ_SIZE = 64
READ_TIMEOUT_MS = 1000
WRITE_TIMEOUT_MS = 1000


@dataclass
class PortInfo:
    """Settings of an open serial port."""

    port: str = ""
    baudrate: int = BAUDRATE

    def to_dict(self) -> dict:
        return {"port": self.port, "baudrate": self.baudrate, "backend": "serial"}


class SerialConnection:
    """Manages the serial connection to a bootloader.

    Usage::

        conn = SerialConnection("/dev/ttyUSB0")
        conn.open()
        conn.write(build_ping())
        chunk = conn.read()
        conn.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = BAUDRATE,
        write_timeout_ms: int = WRITE_TIMEOUT_MS,
    ) -> None:
        self._port = port
        self._baudrate = baudrate
        self._write_timeout_ms = write_timeout_ms
        self._serial: serial.Serial | None = None

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def device_info(self) -> PortInfo:
        return PortInfo(port=self._port, baudrate=self._baudrate)

    def open(self) -> PortInfo:
        """Open and configure the serial port (8N1, no flow control).

        Raises:
            ConnectionError: If the port cannot be opened.
        """
        try:
            self._serial = serial.Serial(
                port=self._port,
                baudrate=self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=READ_TIMEOUT_MS / 1000,
                write_timeout=self._write_timeout_ms / 1000,
            )
            self._serial.reset_input_buffer()
        except serial.SerialException as e:
            self._serial = None
            raise ConnectionError(f"Cannot open port {self._port}: {e}") from e

        logger.info("Opened %s at %d bps", self._port, self._baudrate)
        return self.device_info

    def close(self) -> None:
        """Close the serial port."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing %s: %s", self._port, e)
        finally:
            self._serial = None
            logger.info("Closed %s", self._port)

    def write(self, data: bytes) -> int:
        """Write raw frame bytes.

        Raises:
            ConnectionError: If not connected, or the write fails or is short.
        """
        if not self.connected:
            raise ConnectionError("Serial port not open")

        try:
            written = self._serial.write(data)
        except serial.SerialException as e:
            raise ConnectionError(f"Write error: {e}") from e
        if written != len(data):
            raise ConnectionError(f"Incomplete write: sent {written}/{len(data)} bytes")
        logger.debug(">>> %s", data.hex(" "))
        return written

    def read(self, size: int = READ_SIZE, timeout_ms: int = READ_TIMEOUT_MS) -> bytes | None:
        """Read up to ``size`` bytes.

        Waits up to ``timeout_ms`` for the first byte, then takes whatever
        else is already waiting.

        Returns:
            The bytes read, or None on timeout.

        Raises:
            ConnectionError: If not connected or the port fails.
        """
        if not self.connected:
            raise ConnectionError("Serial port not open")

        try:
            self._serial.timeout = timeout_ms / 1000
            data = self._serial.read(1)
            if not data:
                return None
            waiting = min(self._serial.in_waiting, size - 1)
            if waiting > 0:
                data += self._serial.read(waiting)
        except serial.SerialException as e:
            raise ConnectionError(f"Read error: {e}") from e

        logger.debug("<<< %s", data.hex(" "))
        return bytes(data)
