"""MCP server entry point for the Tock bootloader protocol.

Exposes decode/encode tools and a device listener via the Model Context
Protocol using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .protocol.commands import (
    CommandCode,
    build_erase_page,
    build_info,
    build_ping,
    build_reset,
    build_write_page,
)
from .protocol.parser import StreamParser
from .session import BootloaderSession, Connection
from .transport.serial_connection import BAUDRATE, READ_TIMEOUT_MS, SerialConnection
from .transport.usb_connection import PRODUCT_ID, VENDOR_ID, USBConnection

logger = logging.getLogger(__name__)

mcp = FastMCP("tockloader-protocol")

# Global connection state
_connection: Connection | None = None
_session: BootloaderSession | None = None


def _get_session() -> BootloaderSession:
    """Get the active session, raising if not connected."""
    if _connection is None or not _connection.connected or _session is None:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _session


def _parse_hex(text: str) -> bytes:
    return bytes.fromhex(text.replace(":", " "))


def _parser_state(parser: StreamParser) -> dict[str, Any]:
    return {
        "buffered": parser.count,
        "dropped": parser.dropped,
        "in_escape": parser.in_escape,
    }


# ─── PROTOCOL TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def decode_frames(hex_data: str) -> dict[str, Any]:
    """Decode a captured byte stream into bootloader commands.

    Args:
        hex_data: Stream bytes as hex, spaces or colons allowed
            (e.g. "ef be ad de fc 06").
    """
    try:
        data = _parse_hex(hex_data)
    except ValueError as e:
        return {"error": f"Invalid hex data: {e}"}

    parser = StreamParser()
    commands = parser.feed(data)
    return {
        "commands": [c.to_dict() for c in commands],
        "byte_count": len(data),
        "tail": _parser_state(parser),
    }


@mcp.tool()
def encode_command(
    name: str,
    address: int | None = None,
    data_hex: str | None = None,
) -> dict[str, Any]:
    """Build the wire bytes for a bootloader command.

    Args:
        name: One of ping, info, reset, erase_page, write_page.
        address: Flash address, required for erase_page and write_page.
        data_hex: 512 bytes of page data as hex, required for write_page.
    """
    key = name.strip().upper()
    if key not in CommandCode.__members__:
        return {"error": f"Unknown command '{name}'. Valid: {[c.name.lower() for c in CommandCode]}"}
    code = CommandCode[key]

    try:
        if code is CommandCode.PING:
            frame = build_ping()
        elif code is CommandCode.INFO:
            frame = build_info()
        elif code is CommandCode.RESET:
            frame = build_reset()
        else:
            if address is None:
                return {"error": f"{name} requires an address"}
            if code is CommandCode.ERASE_PAGE:
                frame = build_erase_page(address)
            else:
                if data_hex is None:
                    return {"error": "write_page requires data_hex"}
                frame = build_write_page(address, _parse_hex(data_hex))
    except ValueError as e:
        return {"error": str(e)}

    return {"command": code.name.lower(), "frame": frame.hex(" "), "length": len(frame)}


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    port: str | None = None,
    baudrate: int = BAUDRATE,
    vendor_id: int = VENDOR_ID,
    product_id: int = PRODUCT_ID,
) -> dict[str, Any]:
    """Open a connection to a device running the bootloader.

    With ``port`` the serial transport is used; without it the device is
    opened over USB by vendor/product ID.

    Args:
        port: Serial port (e.g. "/dev/ttyUSB0", "COM3").
        baudrate: Serial baud rate.
        vendor_id: USB vendor ID, used when no port is given.
        product_id: USB product ID, used when no port is given.
    """
    global _connection, _session
    if _connection is not None and _connection.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "device": _connection.device_info.to_dict(),
        }

    if port:
        conn: Connection = SerialConnection(port, baudrate=baudrate)
    else:
        conn = USBConnection(vendor_id=vendor_id, product_id=product_id)
    try:
        info = conn.open()
    except ConnectionError as e:
        return {"connected": False, "error": str(e)}

    _connection = conn
    _session = BootloaderSession(conn)
    return {"connected": True, "device": info.to_dict()}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the device connection."""
    global _connection, _session
    if _connection is not None:
        _connection.close()
    _connection = None
    _session = None
    return {"disconnected": True}


@mcp.tool()
def listen(max_reads: int = 10, timeout_ms: int = READ_TIMEOUT_MS) -> dict[str, Any]:
    """Read from the device and decode incoming commands.

    A frame split across calls is kept in the session and completes on a
    later call.

    Args:
        max_reads: Number of transport reads to perform.
        timeout_ms: Timeout for each read.
    """
    session = _get_session()
    commands = list(session.commands(max_reads=max_reads, timeout_ms=timeout_ms))
    return {
        "commands": [c.to_dict() for c in commands],
        "tail": _parser_state(session.parser),
    }


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
