"""Escape framing for the Tock bootloader serial protocol.

Frame layout::

    +-----------------------------+--------+---------+
    |      Payload (escaped)      | Escape | Command |
    |      variable length        | 0xFC   | 1 byte  |
    +-----------------------------+--------+---------+

- There is no length prefix: a frame ends when ``0xFC`` is followed by a
  command code.
- A literal ``0xFC`` inside the payload is sent doubled (``0xFC 0xFC``).
- Multi-byte integers in the payload are little-endian.
"""

from __future__ import annotations

ESCAPE = 0xFC
ADDRESS_SIZE = 4
PAGE_SIZE = 512
BUFFER_SIZE = 520  # fits a write-page payload (address + page)
MAX_ADDRESS = 0xFFFFFFFF


def escape_bytes(data: bytes) -> bytes:
    """Double every escape byte so the payload reads as literal data."""
    out = bytearray()
    for b in data:
        out.append(b)
        if b == ESCAPE:
            out.append(ESCAPE)
    return bytes(out)


def build_frame(code: int, payload: bytes = b"") -> bytes:
    """Build a complete frame: escaped payload followed by ``0xFC <code>``.

    Args:
        code: Single-byte command code. Must not be the escape byte itself.
        payload: Raw (unescaped) payload bytes.

    Returns:
        The bytes to write to the transport.
    """
    if not 0 <= code <= 0xFF:
        raise ValueError(f"Command code must be 0-255, got {code}")
    if code == ESCAPE:
        raise ValueError("Command code cannot be the escape byte 0xFC")
    return escape_bytes(payload) + bytes([ESCAPE, code])


def pack_address(address: int) -> bytes:
    """Encode a flash address as 4 little-endian bytes."""
    if not 0 <= address <= MAX_ADDRESS:
        raise ValueError(f"Address must be 0-0xFFFFFFFF, got {address:#x}")
    return address.to_bytes(ADDRESS_SIZE, "little")


def unpack_address(data: bytes | bytearray | memoryview) -> int:
    """Decode a 4-byte little-endian address (byte 0 is least significant)."""
    if len(data) != ADDRESS_SIZE:
        raise ValueError(f"Address field must be {ADDRESS_SIZE} bytes, got {len(data)}")
    return int.from_bytes(data, "little")
