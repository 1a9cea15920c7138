"""
bus.py — Nibble-serial emulation of the flash address/data/control bus
========================================================================

The FPGA bridge keeps nine 4-bit latches that drive the flash pins:

    ADDR_0..ADDR_5   A0..A23   (least significant nibble first)
    DATA_0, DATA_1   DQ0..DQ7  (low nibble first)
    CTRL             control lines (opaque codes, see Control)

Every outbound byte is ``(selector << 4) | nibble``. Selectors 0x9 and 0xA
are requests; each one makes the board send back exactly one byte:

    0x90  GET_DATA   -> byte currently on DQ0..DQ7
    0xA0  GET_READY  -> status byte, bit 0 set when the chip is ready

Because the link is slow compared to the host, BusMirror remembers the
last value accepted by each latch and drops writes that would not change it.
"""

import logging
from enum import IntEnum
from typing import Dict, List, Optional

from .transport import ByteTransport, recv_blocking, send_blocking

log = logging.getLogger('de2flash.bus')


class Field(IntEnum):
    """Selector tag placed in the high nibble of every command byte."""
    ADDR_0 = 0x0
    ADDR_1 = 0x1
    ADDR_2 = 0x2
    ADDR_3 = 0x3
    ADDR_4 = 0x4
    ADDR_5 = 0x5
    DATA_0 = 0x6
    DATA_1 = 0x7
    CTRL = 0x8
    GET_DATA = 0x9
    GET_READY = 0xA
    # 0xB..0xF are ignored by the bridge


ADDR_FIELDS = (Field.ADDR_0, Field.ADDR_1, Field.ADDR_2,
               Field.ADDR_3, Field.ADDR_4, Field.ADDR_5)
DATA_FIELDS = (Field.DATA_0, Field.DATA_1)
LATCH_FIELDS = ADDR_FIELDS + DATA_FIELDS + (Field.CTRL,)


class Control(IntEnum):
    """Control latch codes. Treated as whole values, not as bit flags."""
    RESET_HI = 0x0E
    IDLE = 0x03
    WRITE_STROBE = 0x05
    STANDBY = 0x0F


READY_BIT = 0x01


def encode(field: int, nibble: int) -> int:
    """Build the wire byte for a selector and a 4-bit payload."""
    return ((field & 0x0F) << 4) | (nibble & 0x0F)


def split_nibbles(value: int, count: int) -> List[int]:
    """Split value into count nibbles, least significant first."""
    return [(value >> (4 * i)) & 0x0F for i in range(count)]


def join_nibbles(nibbles) -> int:
    value = 0
    for i, n in enumerate(nibbles):
        value |= (n & 0x0F) << (4 * i)
    return value


class BusMirror:
    """Shadow copy of the nine bridge latches.

    The mirror is the only record of what the latches hold. Callers mask
    values to 4 bits; nothing is range checked here.
    """

    def __init__(self, transport: ByteTransport, io_timeout: Optional[float] = None):
        self.transport = transport
        self.io_timeout = io_timeout
        self._latches: Dict[Field, int] = {f: 0x0 for f in LATCH_FIELDS}

    def value(self, field: Field) -> int:
        return self._latches[field]

    def write_field(self, field: Field, value: int) -> None:
        """Send value to a latch unless the latch already holds it."""
        if self._latches[field] == value:
            return
        send_blocking(self.transport, encode(field, value), self.io_timeout)
        self._latches[field] = value

    def prime(self, field: Field, value: int) -> None:
        """Send value unconditionally. Used once per latch at power-up."""
        send_blocking(self.transport, encode(field, value), self.io_timeout)
        self._latches[field] = value

    def request(self, field: Field) -> int:
        """Send a request selector and wait for its single reply byte."""
        send_blocking(self.transport, encode(field, 0), self.io_timeout)
        return recv_blocking(self.transport, self.io_timeout)


class BusCycles:
    """Whole-register and whole-bus operations on top of a BusMirror."""

    def __init__(self, mirror: BusMirror):
        self.mirror = mirror

    # -------------------------------------------------------------------------
    # Register access
    # -------------------------------------------------------------------------

    def set_address(self, addr: int) -> None:
        for field, nibble in zip(ADDR_FIELDS, split_nibbles(addr, 6)):
            self.mirror.write_field(field, nibble)

    def set_data(self, data: int) -> None:
        for field, nibble in zip(DATA_FIELDS, split_nibbles(data, 2)):
            self.mirror.write_field(field, nibble)

    def set_control(self, ctrl: int) -> None:
        self.mirror.write_field(Field.CTRL, ctrl & 0x0F)

    def fetch_data(self) -> int:
        return self.mirror.request(Field.GET_DATA)

    def fetch_ready(self) -> int:
        return self.mirror.request(Field.GET_READY)

    # -------------------------------------------------------------------------
    # Bus cycles
    # -------------------------------------------------------------------------

    def init_board(self) -> None:
        """Force every latch to a known value (they power up undefined)."""
        for field in ADDR_FIELDS + DATA_FIELDS:
            self.mirror.prime(field, 0x0)
        self.mirror.prime(Field.CTRL, Control.STANDBY)
        log.debug("Board latches initialized")

    def read_cycle(self, addr: int) -> int:
        self.set_address(addr)
        self.set_control(Control.IDLE)
        return self.fetch_data()

    def write_cycle(self, addr: int, data: int) -> None:
        # Strobe then idle is the latch pulse; both halves are required.
        self.set_address(addr)
        self.set_data(data)
        self.set_control(Control.WRITE_STROBE)
        self.set_control(Control.IDLE)

    def reset_cycle(self) -> None:
        self.set_control(Control.RESET_HI)
        self.set_control(Control.IDLE)

    def standby_cycle(self) -> None:
        self.set_control(Control.STANDBY)

    def poll_until_ready(self) -> None:
        """Busy-wait on the ready bit. No timeout: the chip bounds the wait."""
        while not (self.fetch_ready() & READY_BIT):
            pass
