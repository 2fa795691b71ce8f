"""Tests for the serial connection with a mocked pyserial port."""

from unittest.mock import MagicMock, patch

import pytest
import serial

from tockloader_protocol.transport.serial_connection import BAUDRATE, SerialConnection


def _open_with_port(port: MagicMock, **kwargs) -> SerialConnection:
    conn = SerialConnection("/dev/ttyUSB0", **kwargs)
    with patch.object(serial, "Serial", return_value=port):
        conn.open()
    return conn


def _mock_port() -> MagicMock:
    port = MagicMock()
    port.is_open = True
    port.in_waiting = 0
    return port


def test_open_configures_port():
    port = _mock_port()
    conn = SerialConnection("/dev/ttyUSB0", baudrate=57600, write_timeout_ms=500)
    with patch.object(serial, "Serial", return_value=port) as serial_cls:
        conn.open()

    assert conn.connected
    kwargs = serial_cls.call_args.kwargs
    assert kwargs["port"] == "/dev/ttyUSB0"
    assert kwargs["baudrate"] == 57600
    assert kwargs["write_timeout"] == 0.5
    port.reset_input_buffer.assert_called_once()
    assert conn.device_info.to_dict() == {
        "port": "/dev/ttyUSB0",
        "baudrate": 57600,
        "backend": "serial",
    }


def test_open_failure_raises_connection_error():
    conn = SerialConnection("/dev/missing")
    with patch.object(serial, "Serial", side_effect=serial.SerialException("no port")):
        with pytest.raises(ConnectionError):
            conn.open()
    assert not conn.connected


def test_default_baudrate():
    assert SerialConnection("COM3").device_info.baudrate == BAUDRATE


def test_write_and_read_require_connection():
    conn = SerialConnection("/dev/ttyUSB0")
    with pytest.raises(ConnectionError):
        conn.write(b"\xfc\x01")
    with pytest.raises(ConnectionError):
        conn.read()


def test_write():
    port = _mock_port()
    port.write.return_value = 2
    conn = _open_with_port(port)
    assert conn.write(b"\xfc\x01") == 2
    port.write.assert_called_once_with(b"\xfc\x01")


def test_short_write_raises():
    port = _mock_port()
    port.write.return_value = 1
    conn = _open_with_port(port)
    with pytest.raises(ConnectionError):
        conn.write(b"\xfc\x01")


def test_write_error_raises():
    port = _mock_port()
    port.write.side_effect = serial.SerialException("gone")
    conn = _open_with_port(port)
    with pytest.raises(ConnectionError):
        conn.write(b"\xfc\x01")


def test_read_takes_waiting_bytes():
    """The first byte waits for the timeout, the rest is what is queued."""
    port = _mock_port()
    port.read.side_effect = [b"\xef", b"\xbe\xad\xde"]
    port.in_waiting = 3
    conn = _open_with_port(port)

    assert conn.read(timeout_ms=200) == b"\xef\xbe\xad\xde"
    assert port.timeout == 0.2
    assert port.read.call_args_list[1].args == (3,)


def test_read_respects_size():
    port = _mock_port()
    port.read.side_effect = [b"\x01", b"\x02\x03"]
    port.in_waiting = 100
    conn = _open_with_port(port)

    assert conn.read(size=3) == b"\x01\x02\x03"
    assert port.read.call_args_list[1].args == (2,)


def test_read_timeout_returns_none():
    port = _mock_port()
    port.read.return_value = b""
    conn = _open_with_port(port)
    assert conn.read() is None


def test_read_error_raises():
    port = _mock_port()
    port.read.side_effect = serial.SerialException("unplugged")
    conn = _open_with_port(port)
    with pytest.raises(ConnectionError):
        conn.read()


def test_close():
    port = _mock_port()
    conn = _open_with_port(port)
    conn.close()
    port.close.assert_called_once()
    assert not conn.connected
