"""
transport.py — Byte channel to the DE2-115 bus bridge
======================================================
The bridge accepts one command byte at a time and answers the two request
bytes (GET_DATA / GET_READY) with exactly one reply byte each.

Contract used by the bus layer:
    send_byte(b)  -> bool            True once the byte was accepted
    recv_byte()   -> Optional[int]   None when nothing is available yet
    drain()                          block until the output buffer is flushed
    close()

Neither primitive blocks on its own. ``send_blocking`` and ``recv_blocking``
turn them into the blocking calls the protocol needs: they retry forever,
with no backoff and no cancellation. A failed send is treated as a momentary
buffer-full condition, never as a protocol error, so a dead link shows up as
a hang rather than as lost data. Passing a timeout changes that into a
TransportTimeoutError.

A device that fails outright (unplugged adapter, EIO) is a different case:
SerialTransport raises TransportIOError for it instead of reporting a busy
buffer.
"""

import logging
import time
from typing import Optional

import serial

from .config import (
    BAUD_RATE, SERIAL_DATABITS, SERIAL_FORMAT, SERIAL_PARITY, SERIAL_STOPBITS,
)
from .errors import TransportIOError, TransportOpenError, TransportTimeoutError

log = logging.getLogger('de2flash.transport')


class ByteTransport:
    """Non-blocking single-byte channel."""

    def send_byte(self, value: int) -> bool:
        raise NotImplementedError

    def recv_byte(self) -> Optional[int]:
        raise NotImplementedError

    def drain(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


def send_blocking(transport: ByteTransport, value: int,
                  timeout: Optional[float] = None) -> None:
    """Send one byte, retrying until the transport accepts it."""
    if timeout is None:
        while not transport.send_byte(value):
            pass
        return
    deadline = time.monotonic() + timeout
    while not transport.send_byte(value):
        if time.monotonic() > deadline:
            raise TransportTimeoutError(
                f"byte 0x{value:02X} not accepted within {timeout}s")


def recv_blocking(transport: ByteTransport,
                  timeout: Optional[float] = None) -> int:
    """Receive one byte, retrying until one arrives."""
    if timeout is None:
        while True:
            b = transport.recv_byte()
            if b is not None:
                return b
    deadline = time.monotonic() + timeout
    while True:
        b = transport.recv_byte()
        if b is not None:
            return b
        if time.monotonic() > deadline:
            raise TransportTimeoutError(f"no reply byte within {timeout}s")


class SerialTransport(ByteTransport):
    """
    pyserial-backed transport.

    Usage:
        link = SerialTransport.open('/dev/ttyUSB0')
        link.send_byte(0x8F)
        link.drain()
        link.close()
    """

    def __init__(self, ser: serial.Serial):
        self.ser = ser

    @classmethod
    def open(cls, port: str, baud: int = BAUD_RATE) -> "SerialTransport":
        """Open the port raw, 8N1, no flow control, non-blocking reads."""
        try:
            ser = serial.Serial(
                port=port,
                baudrate=baud,
                bytesize=SERIAL_DATABITS,
                parity=SERIAL_PARITY,
                stopbits=SERIAL_STOPBITS,
                rtscts=False,
                xonxoff=False,
                dsrdtr=False,
                timeout=0,
                write_timeout=0,
            )
            ser.reset_input_buffer()
            ser.reset_output_buffer()
        except (serial.SerialException, OSError) as e:
            log.debug(f"Failed to open {port}: {e}")
            raise TransportOpenError(port, str(e)) from e
        log.info(f"Opened {port} @ {baud} baud ({SERIAL_FORMAT})")
        return cls(ser)

    def send_byte(self, value: int) -> bool:
        try:
            n = self.ser.write(bytes([value & 0xFF]))
        except serial.SerialTimeoutException:
            return False
        except (serial.SerialException, OSError) as e:
            raise self._io_error(e) from e
        return n == 1

    def recv_byte(self) -> Optional[int]:
        try:
            data = self.ser.read(1)
        except (serial.SerialException, OSError) as e:
            raise self._io_error(e) from e
        if len(data) != 1:
            return None
        return data[0]

    def drain(self) -> None:
        try:
            self.ser.flush()
        except (serial.SerialException, OSError) as e:
            raise self._io_error(e) from e

    def close(self) -> None:
        if self.ser.is_open:
            port = self.ser.port
            self.ser.close()
            log.info(f"Closed {port}")

    def _io_error(self, e: Exception) -> TransportIOError:
        log.debug(f"I/O error on {self.ser.port}: {e}")
        return TransportIOError(self.ser.port, str(e))
