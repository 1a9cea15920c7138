"""Shared fakes for the flash programmer tests."""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import serial

from de2_flash.bus import BusCycles, BusMirror
from de2_flash.simulator import NorFlashChip, SimulatedBoard
from de2_flash.transport import ByteTransport


class ListTransport(ByteTransport):
    """Accepts every byte and answers every request with ``reply``."""

    def __init__(self, reply=0x01):
        self.sent = []
        self.reply = reply

    def send_byte(self, value):
        self.sent.append(value)
        return True

    def recv_byte(self):
        return self.reply

    def drain(self):
        pass

    def close(self):
        pass


class DeadPort:
    """pyserial stand-in for an adapter that was unplugged mid-run."""

    def __init__(self, port="/dev/ttyUSB9"):
        self.port = port
        self.is_open = True

    def write(self, data):
        raise serial.SerialException("write failed: [Errno 5] Input/output error")

    def read(self, n):
        raise serial.SerialException(
            "device reports readiness to read but returned no data")

    def flush(self):
        raise OSError(5, "Input/output error")

    def close(self):
        self.is_open = False


class RecordingBus:
    """Stands in for BusCycles and records every cycle in order.

    Reads return ``memory.get(addr, 0xFF)``.
    """

    def __init__(self, memory=None):
        self.memory = memory or {}
        self.events = []

    def write_cycle(self, addr, data):
        self.events.append(("write", addr, data))

    def read_cycle(self, addr):
        self.events.append(("read", addr))
        return self.memory.get(addr, 0xFF)

    def poll_until_ready(self):
        self.events.append(("poll",))

    @property
    def writes(self):
        return [(e[1], e[2]) for e in self.events if e[0] == "write"]

    @property
    def reads(self):
        return [e[1] for e in self.events if e[0] == "read"]


@pytest.fixture
def board():
    return SimulatedBoard(NorFlashChip())


@pytest.fixture
def bus(board):
    """Bus on a simulated board, initialized and reset like a session."""
    cycles = BusCycles(BusMirror(board))
    cycles.init_board()
    cycles.reset_cycle()
    return cycles
