"""Pump transport bytes through a stream parser."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from .protocol.commands import BadCommand, Command
from .protocol.parser import StreamParser
from .transport.serial_connection import READ_SIZE, READ_TIMEOUT_MS, SerialConnection
from .transport.usb_connection import USBConnection

logger = logging.getLogger(__name__)

# Both return only stream bytes from read(); HID padding is stripped by USBConnection.
Connection = SerialConnection | USBConnection


class BootloaderSession:
    """Decodes the command stream arriving on one connection.

    The session owns its parser, so frames split across reads are
    reassembled transparently.
    """

    def __init__(self, connection: Connection, read_size: int = READ_SIZE) -> None:
        self._connection = connection
        self._read_size = read_size
        self._parser = StreamParser()

    @property
    def parser(self) -> StreamParser:
        return self._parser

    def reset(self) -> None:
        """Discard any partially received frame."""
        self._parser.reset()

    def feed(self, data: bytes) -> list[Command]:
        commands = self._parser.feed(data)
        for command in commands:
            if isinstance(command, BadCommand):
                logger.warning(
                    "Bad command 0x%02X: only %d payload bytes buffered",
                    command.code,
                    command.available,
                )
            else:
                logger.debug("Decoded %r", command)
        return commands

    def poll(self, timeout_ms: int = READ_TIMEOUT_MS) -> list[Command]:
        """Read once from the connection and return any completed commands."""
        data = self._connection.read(self._read_size, timeout_ms)
        if data is None:
            return []
        return self.feed(data)

    def commands(
        self,
        max_reads: int | None = None,
        timeout_ms: int = READ_TIMEOUT_MS,
    ) -> Iterator[Command]:
        """Yield commands as they are decoded.

        Args:
            max_reads: Stop after this many transport reads. ``None`` reads
                until the connection closes.
            timeout_ms: Timeout for each read.
        """
        reads = 0
        while self._connection.connected and (max_reads is None or reads < max_reads):
            reads += 1
            yield from self.poll(timeout_ms)
