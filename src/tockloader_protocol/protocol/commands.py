"""Command codes, decoded command types, and host-side command builders.

Each bootloader operation is identified by the single byte that follows
the escape marker at the end of a frame.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .framing import PAGE_SIZE, build_frame, pack_address


class CommandCode(IntEnum):
    """Wire codes understood by the decoder."""

    PING = 0x01
    INFO = 0x03
    RESET = 0x05
    ERASE_PAGE = 0x06
    WRITE_PAGE = 0x07


@dataclass(frozen=True)
class Command:
    """Base class for every decoded command."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"command": self.name}


@dataclass(frozen=True)
class Ping(Command):
    pass


@dataclass(frozen=True)
class Info(Command):
    pass


@dataclass(frozen=True)
class Reset(Command):
    pass


@dataclass(frozen=True)
class ErasePage(Command):
    """Erase the flash page at ``address``."""

    address: int

    def to_dict(self) -> dict:
        return {"command": self.name, "address": f"0x{self.address:08X}"}

    def __repr__(self) -> str:
        return f"ErasePage(address=0x{self.address:08X})"


@dataclass(frozen=True)
class WritePage(Command):
    """Write one page of ``data`` at ``address``."""

    address: int
    data: bytes

    def to_dict(self) -> dict:
        return {
            "command": self.name,
            "address": f"0x{self.address:08X}",
            "data": self.data.hex(),
            "data_len": len(self.data),
        }

    def __repr__(self) -> str:
        return f"WritePage(address=0x{self.address:08X}, data_len={len(self.data)})"


# Operations the bootloader knows about but the decoder has no wire code for.


@dataclass(frozen=True)
class ReadRange(Command):
    pass


@dataclass(frozen=True)
class SetAttribute(Command):
    pass


@dataclass(frozen=True)
class GetAttribute(Command):
    pass


@dataclass(frozen=True)
class CrcInternalFlash(Command):
    pass


@dataclass(frozen=True)
class ChangeBaudRate(Command):
    pass


@dataclass(frozen=True)
class BadCommand(Command):
    """A known command code arrived without enough buffered payload.

    ``code`` is the command byte that failed and ``available`` the number
    of payload bytes that had been buffered when it arrived.
    """

    code: int = 0
    available: int = 0

    def to_dict(self) -> dict:
        return {
            "command": self.name,
            "code": f"0x{self.code:02X}",
            "available": self.available,
        }


RESERVED_COMMANDS: tuple[type[Command], ...] = (
    ReadRange,
    SetAttribute,
    GetAttribute,
    CrcInternalFlash,
    ChangeBaudRate,
)


def build_command(code: CommandCode, payload: bytes = b"") -> bytes:
    """Build the wire bytes for a command frame."""
    return build_frame(CommandCode(code).value, payload)


def build_ping() -> bytes:
    return build_command(CommandCode.PING)


def build_info() -> bytes:
    return build_command(CommandCode.INFO)


def build_reset() -> bytes:
    return build_command(CommandCode.RESET)


def build_erase_page(address: int) -> bytes:
    """Build an ErasePage frame.

    Args:
        address: 32-bit flash address of the page.
    """
    return build_command(CommandCode.ERASE_PAGE, pack_address(address))


def build_write_page(address: int, data: bytes) -> bytes:
    """Build a WritePage frame.

    Args:
        address: 32-bit flash address of the page.
        data: Exactly 512 bytes of page contents.
    """
    if len(data) != PAGE_SIZE:
        raise ValueError(f"Page data must be {PAGE_SIZE} bytes, got {len(data)}")
    return build_command(CommandCode.WRITE_PAGE, pack_address(address) + bytes(data))


def encode(command: Command) -> bytes:
    """Encode a decoded command back into its wire frame.

    Raises:
        ValueError: For reserved commands and ``BadCommand``, which have
            no wire representation.
    """
    if isinstance(command, Ping):
        return build_ping()
    if isinstance(command, Info):
        return build_info()
    if isinstance(command, Reset):
        return build_reset()
    if isinstance(command, ErasePage):
        return build_erase_page(command.address)
    if isinstance(command, WritePage):
        return build_write_page(command.address, command.data)
    raise ValueError(f"{command.name} has no wire encoding")
