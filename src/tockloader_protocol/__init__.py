"""Tock bootloader protocol: stream decoder, frame builders, and USB tooling."""

__version__ = "0.1.0"

from .protocol import StreamParser, parse_stream, encode
from .protocol.commands import (
    Command,
    CommandCode,
    Ping,
    Info,
    Reset,
    ErasePage,
    WritePage,
    ReadRange,
    SetAttribute,
    GetAttribute,
    CrcInternalFlash,
    ChangeBaudRate,
    BadCommand,
)
