"""Incremental decoder for the bootloader byte stream.

The parser consumes one byte per call and accumulates payload bytes in a
fixed 520-byte buffer. When the escape byte ``0xFC`` is followed by a
command code, the command is decoded from the tail of the buffer and
returned.

Example::

    parser = StreamParser()
    for b in data:
        command = parser.receive(b)
        if command is not None:
            handle(command)
"""

from __future__ import annotations

import logging
from enum import Enum

from .commands import (
    BadCommand,
    Command,
    CommandCode,
    ErasePage,
    Info,
    Ping,
    Reset,
    WritePage,
)
from .framing import ADDRESS_SIZE, BUFFER_SIZE, ESCAPE, PAGE_SIZE, unpack_address

logger = logging.getLogger(__name__)

WRITE_PAGE_SIZE = ADDRESS_SIZE + PAGE_SIZE


class _State(Enum):
    LOADING = "loading"
    ESCAPE = "escape"


class StreamParser:
    """Turns bootloader bytes into :class:`Command` objects.

    One instance per connection. Not safe to share between threads
    without external locking.
    """

    def __init__(self) -> None:
        self._state = _State.LOADING
        self._buffer = bytearray(BUFFER_SIZE)
        self._count = 0
        self._dropped = 0

    @property
    def count(self) -> int:
        """Number of payload bytes buffered for the current frame."""
        return self._count

    @property
    def buffered(self) -> bytes:
        return bytes(self._buffer[: self._count])

    @property
    def dropped(self) -> int:
        """Bytes discarded because the buffer was full."""
        return self._dropped

    @property
    def in_escape(self) -> bool:
        return self._state is _State.ESCAPE

    def reset(self) -> None:
        self._state = _State.LOADING
        self._count = 0
        self._dropped = 0

    def receive(self, byte: int) -> Command | None:
        """Consume a single byte.

        Returns:
            The decoded command if this byte completed a frame, else ``None``.
        """
        if not 0 <= byte <= 0xFF:
            raise ValueError(f"Byte must be 0-255, got {byte}")

        if self._state is _State.ESCAPE:
            return self._handle_escape(byte)

        if byte == ESCAPE:
            self._state = _State.ESCAPE
        else:
            self._load(byte)
        return None

    def feed(self, data: bytes) -> list[Command]:
        """Receive every byte of ``data`` and collect the emitted commands."""
        commands: list[Command] = []
        for b in data:
            command = self.receive(b)
            if command is not None:
                commands.append(command)
        return commands

    def _load(self, byte: int) -> None:
        if self._count < BUFFER_SIZE:
            self._buffer[self._count] = byte
            self._count += 1
            return
        if self._dropped == 0:
            logger.warning("Frame buffer full (%d bytes), dropping input", BUFFER_SIZE)
        self._dropped += 1

    def _handle_escape(self, byte: int) -> Command | None:
        self._state = _State.LOADING

        if byte == ESCAPE:
            # Doubled escape is a literal 0xFC
            self._load(byte)
            return None

        try:
            code = CommandCode(byte)
        except ValueError:
            logger.debug("Ignoring unknown command code 0x%02X", byte)
            return None

        command = self._decode(code)
        self._count = 0
        self._dropped = 0
        return command

    def _decode(self, code: CommandCode) -> Command:
        if code is CommandCode.PING:
            return Ping()
        if code is CommandCode.INFO:
            return Info()
        if code is CommandCode.RESET:
            return Reset()

        end = self._count
        if code is CommandCode.ERASE_PAGE:
            if end < ADDRESS_SIZE:
                return BadCommand(code=code.value, available=end)
            return ErasePage(address=unpack_address(self._buffer[end - ADDRESS_SIZE : end]))

        # WRITE_PAGE
        if end < WRITE_PAGE_SIZE:
            return BadCommand(code=code.value, available=end)
        start = end - WRITE_PAGE_SIZE
        address = unpack_address(self._buffer[start : start + ADDRESS_SIZE])
        data = bytes(self._buffer[start + ADDRESS_SIZE : end])
        return WritePage(address=address, data=data)


def parse_stream(data: bytes) -> list[Command]:
    """Decode every complete command in ``data`` with a fresh parser."""
    return StreamParser().feed(data)
