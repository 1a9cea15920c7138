"""
simulator.py — DE2-115 bus bridge + 8 MiB NOR flash simulator
==============================================================

Hardware-free stand-in for the board, used by the test suite and for dry
runs. SimulatedBoard speaks the same byte protocol as the FPGA bridge and
drives a NorFlashChip with the latched address/data/control nibbles.

Chip Specs (byte mode, bottom boot block):
  - 8 MiB (0x800000 bytes)
  - 0x000000-0x00FFFF: eight 8 KiB boot sectors
  - 0x010000-0x7FFFFF: 127 sectors of 64 KiB
  - Autoselect: 0x01 @0x00, 0x7E @0x02, 0x10 @0x1C, 0x00 @0x1E
  - Erased state = 0xFF, programming can only clear bits

Command Sequences (byte mode):
  - Autoselect:      AA→AAA, 55→555, 90→AAA       (F0→any to leave)
  - Byte Program:    AA→AAA, 55→555, A0→AAA, DATA→addr
  - Sector Erase:    AA→AAA, 55→555, 80→AAA, AA→AAA, 55→555, 30→sector
  - Chip Erase:      AA→AAA, 55→555, 80→AAA, AA→AAA, 55→555, 10→AAA
  - Unlock Bypass:   AA→AAA, 55→555, 20→AAA, (A0→any, DATA→addr)*, 90→any, 00→any
  - Reset:           F0→any
"""

import logging
from collections import deque
from enum import Enum, auto
from typing import List, Optional

from .bus import READY_BIT, Control, Field, join_nibbles
from .commands import (
    BOOT_SECTOR_SIZE, ERASED, EXPECTED_ID, FLASH_SIZE, ID_OFFSETS,
    SECTOR_SIZE, UNLOCK_ADDR_1, UNLOCK_ADDR_2, Cmd,
)
from .transport import ByteTransport

log = logging.getLogger('de2flash.sim')


# ═══════════════════════════════════════════════════════════════════════
# FLASH STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════

class FlashState(Enum):
    READ = auto()            # Normal read array mode
    UNLOCK_1 = auto()        # Got AA→AAA, waiting for 55→555
    UNLOCK_2 = auto()        # Got 55→555, waiting for command byte
    AUTOSELECT = auto()      # Reads return identifier bytes
    PROGRAM = auto()         # Waiting for program data byte
    ERASE_SETUP = auto()     # Got 80, waiting for second unlock
    ERASE_UNLOCK_1 = auto()
    ERASE_UNLOCK_2 = auto()  # Waiting for 30/10
    BYPASS = auto()          # Unlock bypass, waiting for A0 or 90
    BYPASS_PROGRAM = auto()  # Got A0 in bypass, waiting for data byte
    BYPASS_EXIT = auto()     # Got 90 in bypass, waiting for 00


class NorFlashChip:
    """
    Command-level model of the board's NOR flash.

    Usage:
        chip = NorFlashChip()
        chip.write(0xAAA, 0xAA)
        chip.write(0x555, 0x55)
        chip.write(0xAAA, 0xA0)
        chip.write(0x1234, 0x56)
        while chip.is_busy:
            chip.poll()
    """

    def __init__(self, busy_polls: int = 2):
        self._data = bytearray(b'\xFF' * FLASH_SIZE)
        self._state = FlashState.READ
        self.busy_polls = busy_polls
        self._busy = 0

        self.stats = {
            'reads': 0,
            'programs': 0,
            'program_failures': 0,   # tried to set a bit 0→1
            'sector_erases': 0,
            'chip_erases': 0,
            'resets': 0,
        }

    @property
    def data(self) -> bytearray:
        """Direct access to the array contents."""
        return self._data

    @property
    def state(self) -> FlashState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._busy > 0

    @staticmethod
    def erase_block(address: int):
        """(base, size) of the erase block containing address."""
        if address < SECTOR_SIZE:
            base = address & ~(BOOT_SECTOR_SIZE - 1)
            return base, BOOT_SECTOR_SIZE
        return address & ~(SECTOR_SIZE - 1), SECTOR_SIZE

    # ── Core Operations ──

    def read(self, address: int) -> int:
        address %= FLASH_SIZE
        if self._state is FlashState.AUTOSELECT:
            low = address & 0xFF
            if low in ID_OFFSETS:
                return EXPECTED_ID[ID_OFFSETS.index(low)]
            return 0x00
        self.stats['reads'] += 1
        return self._data[address]

    def poll(self) -> bool:
        """One status read. Returns True when the chip is ready."""
        if self._busy:
            self._busy -= 1
            return False
        return True

    def reset(self) -> None:
        """Hardware reset pin: back to read mode."""
        self._state = FlashState.READ
        self._busy = 0
        self.stats['resets'] += 1

    def write(self, address: int, value: int) -> None:
        """Bus write cycle: command or data, depending on state."""
        address %= FLASH_SIZE
        value &= 0xFF
        state = self._state

        if state is FlashState.PROGRAM:
            self._program(address, value)
            self._state = FlashState.READ
        elif state is FlashState.BYPASS_PROGRAM:
            self._program(address, value)
            self._state = FlashState.BYPASS
        elif state is FlashState.BYPASS:
            if value == Cmd.PROGRAM:
                self._state = FlashState.BYPASS_PROGRAM
            elif value == Cmd.BYPASS_RESET_1:
                self._state = FlashState.BYPASS_EXIT
        elif state is FlashState.BYPASS_EXIT:
            self._state = (FlashState.READ if value == Cmd.BYPASS_RESET_2
                           else FlashState.BYPASS)
        elif value == Cmd.RESET:
            self._state = FlashState.READ
            log.debug("Flash reset to read mode")
        elif state in (FlashState.READ, FlashState.AUTOSELECT):
            if address == UNLOCK_ADDR_1 and value == Cmd.UNLOCK_1:
                self._state = FlashState.UNLOCK_1
        elif state is FlashState.UNLOCK_1:
            self._state = (FlashState.UNLOCK_2
                           if address == UNLOCK_ADDR_2 and value == Cmd.UNLOCK_2
                           else FlashState.READ)
        elif state is FlashState.UNLOCK_2:
            self._state = FlashState.READ
            if address == UNLOCK_ADDR_1:
                self._state = {
                    Cmd.AUTOSELECT: FlashState.AUTOSELECT,
                    Cmd.PROGRAM: FlashState.PROGRAM,
                    Cmd.ERASE_SETUP: FlashState.ERASE_SETUP,
                    Cmd.UNLOCK_BYPASS: FlashState.BYPASS,
                }.get(value, FlashState.READ)
        elif state is FlashState.ERASE_SETUP:
            self._state = (FlashState.ERASE_UNLOCK_1
                           if address == UNLOCK_ADDR_1 and value == Cmd.UNLOCK_1
                           else FlashState.READ)
        elif state is FlashState.ERASE_UNLOCK_1:
            self._state = (FlashState.ERASE_UNLOCK_2
                           if address == UNLOCK_ADDR_2 and value == Cmd.UNLOCK_2
                           else FlashState.READ)
        elif state is FlashState.ERASE_UNLOCK_2:
            self._state = FlashState.READ
            if value == Cmd.SECTOR_ERASE:
                self._erase_sector(address)
            elif value == Cmd.CHIP_ERASE and address == UNLOCK_ADDR_1:
                self._erase_chip()

    # ── Internal Operations ──

    def _program(self, address: int, value: int) -> None:
        old = self._data[address]
        new = old & value
        if new != value:
            self.stats['program_failures'] += 1
        self._data[address] = new
        self.stats['programs'] += 1
        self._busy = self.busy_polls

    def _erase_sector(self, address: int) -> None:
        base, size = self.erase_block(address)
        self._data[base:base + size] = bytes([ERASED]) * size
        self.stats['sector_erases'] += 1
        self._busy = self.busy_polls
        log.info("Erased block 0x%06X-0x%06X", base, base + size - 1)

    def _erase_chip(self) -> None:
        self._data[:] = bytes([ERASED]) * FLASH_SIZE
        self.stats['chip_erases'] += 1
        self._busy = self.busy_polls
        log.info("Full chip erase completed")


# ═══════════════════════════════════════════════════════════════════════
# BUS BRIDGE
# ═══════════════════════════════════════════════════════════════════════

class SimulatedBoard(ByteTransport):
    """
    Byte transport that behaves like the FPGA bridge.

    Every received byte is kept in ``received`` for inspection. Set
    ``reject_sends`` / ``reject_recvs`` to make the next N calls fail the way
    a full buffer or an empty line would.
    """

    def __init__(self, chip: Optional[NorFlashChip] = None):
        self.chip = chip if chip is not None else NorFlashChip()
        self.latches = {f: 0 for f in Field if f <= Field.CTRL}
        self.received: List[int] = []
        self._replies: deque = deque()
        self.reject_sends = 0
        self.reject_recvs = 0
        self.drained = 0
        self.closed = False

    @property
    def address(self) -> int:
        return join_nibbles(self.latches[Field(i)] for i in range(6))

    @property
    def data(self) -> int:
        return join_nibbles((self.latches[Field.DATA_0], self.latches[Field.DATA_1]))

    def count(self, field: Field) -> int:
        """Number of received bytes carrying the given selector."""
        return sum(1 for b in self.received if b >> 4 == field)

    # ── ByteTransport ──

    def send_byte(self, value: int) -> bool:
        if self.reject_sends:
            self.reject_sends -= 1
            return False
        self.received.append(value)
        self._handle(value >> 4, value & 0x0F)
        return True

    def recv_byte(self) -> Optional[int]:
        if self.reject_recvs:
            self.reject_recvs -= 1
            return None
        if not self._replies:
            return None
        return self._replies.popleft()

    def drain(self) -> None:
        self.drained += 1

    def close(self) -> None:
        self.closed = True

    # ── Bridge behavior ──

    def _handle(self, selector: int, nibble: int) -> None:
        if selector <= Field.DATA_1:
            self.latches[Field(selector)] = nibble
        elif selector == Field.CTRL:
            previous = self.latches[Field.CTRL]
            self.latches[Field.CTRL] = nibble
            if nibble == Control.WRITE_STROBE and previous != Control.WRITE_STROBE:
                self.chip.write(self.address, self.data)
            elif nibble == Control.RESET_HI:
                self.chip.reset()
        elif selector == Field.GET_DATA:
            if self.latches[Field.CTRL] == Control.IDLE:
                self._replies.append(self.chip.read(self.address))
            else:
                self._replies.append(0xFF)
        elif selector == Field.GET_READY:
            self._replies.append(READY_BIT if self.chip.poll() else 0x00)
        # 0xB..0xF: ignored
