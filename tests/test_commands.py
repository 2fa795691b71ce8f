"""Tests for command types and builders."""

import pytest

from tockloader_protocol.protocol.commands import (
    RESERVED_COMMANDS,
    BadCommand,
    CommandCode,
    ErasePage,
    Info,
    Ping,
    ReadRange,
    Reset,
    WritePage,
    build_command,
    build_erase_page,
    build_info,
    build_ping,
    build_reset,
    build_write_page,
    encode,
)
from tockloader_protocol.protocol.parser import parse_stream


def _page() -> bytes:
    return bytes(i % 256 for i in range(512))


def test_command_code_values():
    """Wire codes match the bootloader decode table."""
    assert CommandCode.PING == 0x01
    assert CommandCode.INFO == 0x03
    assert CommandCode.RESET == 0x05
    assert CommandCode.ERASE_PAGE == 0x06
    assert CommandCode.WRITE_PAGE == 0x07


def test_reserved_commands_have_no_code():
    names = {c.name for c in CommandCode}
    for cls in RESERVED_COMMANDS:
        assert cls.__name__ not in names


def test_build_simple_commands():
    assert build_ping() == b"\xfc\x01"
    assert build_info() == b"\xfc\x03"
    assert build_reset() == b"\xfc\x05"


def test_build_command_rejects_unknown_code():
    with pytest.raises(ValueError):
        build_command(0x02)


def test_build_erase_page():
    assert build_erase_page(0xDEADBEEF) == b"\xef\xbe\xad\xde\xfc\x06"


def test_build_erase_page_decodes():
    assert parse_stream(build_erase_page(0x000400FC)) == [ErasePage(address=0x000400FC)]


def test_build_erase_page_bad_address():
    with pytest.raises(ValueError):
        build_erase_page(-4)


def test_build_write_page_decodes():
    """Page data containing 0xFC survives escaping and decoding."""
    frame = build_write_page(0xDEADBEEF, _page())
    # Two 0xFC bytes in the page are doubled
    assert len(frame) == 4 + 512 + 2 + 2
    (command,) = parse_stream(frame)
    assert command == WritePage(address=0xDEADBEEF, data=_page())


def test_build_write_page_wrong_size():
    with pytest.raises(ValueError):
        build_write_page(0, b"\x00" * 511)


def test_encode_round_trips_through_parser():
    commands = [
        Ping(),
        Info(),
        Reset(),
        ErasePage(address=0x10000),
        WritePage(address=0x10000, data=_page()),
    ]
    stream = b"".join(encode(c) for c in commands)
    assert parse_stream(stream) == commands


def test_encode_rejects_unencodable():
    with pytest.raises(ValueError):
        encode(ReadRange())
    with pytest.raises(ValueError):
        encode(BadCommand(code=0x06, available=1))


def test_to_dict():
    assert Ping().to_dict() == {"command": "Ping"}
    assert ErasePage(address=0x200).to_dict() == {"command": "ErasePage", "address": "0x00000200"}
    d = WritePage(address=1, data=b"\x00" * 512).to_dict()
    assert d["data_len"] == 512
    assert BadCommand(code=0x07, available=3).to_dict()["code"] == "0x07"


def test_repr_is_readable():
    assert "0xDEADBEEF" in repr(ErasePage(address=0xDEADBEEF))
    assert "data_len=512" in repr(WritePage(address=0, data=_page()))


def test_variants_are_distinct():
    assert Ping() != Info()
    assert Info() != Reset()
