"""
commands.py — JEDEC command sequences for the DE2-115 NOR flash
================================================================
The chip runs in byte mode, so the unlock addresses are 0xAAA / 0x555.

Command Sequences (from the chip datasheet, byte mode):
  - Autoselect (ID):   AA→AAA, 55→555, 90→AAA   ... F0→AAA to leave
  - Chip Erase:        AA→AAA, 55→555, 80→AAA, AA→AAA, 55→555, 10→AAA
  - Sector Erase:      AA→AAA, 55→555, 80→AAA, AA→AAA, 55→555, 30→sector
  - Byte Program:      AA→AAA, 55→555, A0→AAA, DATA→addr
  - Unlock Bypass:     AA→AAA, 55→555, 20→AAA, then A0/DATA pairs,
                       90/00 to leave (see bulk.program_file)

Erase and program completion is detected by polling the board's ready bit.
Only the high address bits select an erase sector, so ``n << 16`` (64 KiB)
or ``n << 13`` (8 KiB boot sector) is enough as the sector address.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple

from .bus import BusCycles
from .errors import NonEmptyError, UnsupportedOperationError

log = logging.getLogger('de2flash.commands')

# =============================================================================
# Flash geometry
# =============================================================================

SECTOR_SIZE = 0x10000          # 64 KiB
SECTOR_SHIFT = 16
BOOT_SECTOR_SIZE = 0x2000      # 8 KiB
BOOT_SECTOR_SHIFT = 13
NUM_SECTORS = 128
NUM_BOOT_SECTORS = 8           # sector 0 = boot sectors 0..7
FLASH_SIZE = 0x800000          # 8 MiB
ADDRESS_MASK = 0x7FFFFF
ERASED = 0xFF

# =============================================================================
# Command addresses and bytes
# =============================================================================

UNLOCK_ADDR_1 = 0xAAA
UNLOCK_ADDR_2 = 0x555


class Cmd(IntEnum):
    UNLOCK_1 = 0xAA
    UNLOCK_2 = 0x55
    AUTOSELECT = 0x90
    ERASE_SETUP = 0x80
    CHIP_ERASE = 0x10
    SECTOR_ERASE = 0x30
    PROGRAM = 0xA0
    UNLOCK_BYPASS = 0x20
    BYPASS_RESET_1 = 0x90
    BYPASS_RESET_2 = 0x00
    RESET = 0xF0


# Byte offsets of the four identifier bytes in autoselect mode
ID_OFFSETS = (0x00, 0x02, 0x1C, 0x1E)
EXPECTED_ID = (0x01, 0x7E, 0x10, 0x00)


@dataclass(frozen=True)
class ChipId:
    """The four autoselect bytes: manufacturer and three device codes."""
    manufacturer: int
    device_1: int
    device_2: int
    device_3: int

    @property
    def raw(self) -> Tuple[int, int, int, int]:
        return (self.manufacturer, self.device_1, self.device_2, self.device_3)

    def matches(self, expected=EXPECTED_ID) -> bool:
        return self.raw == tuple(expected)

    def __str__(self) -> str:
        return ' '.join(f"0x{b:02X}" for b in self.raw)


def sector_address(sector: int) -> int:
    return sector << SECTOR_SHIFT


def boot_sector_address(sector: int) -> int:
    return sector << BOOT_SECTOR_SHIFT


class FlashCommands:
    """
    Sequences bus write cycles into flash operations.

    Usage:
        cmds = FlashCommands(bus)
        chip = cmds.identify()
        cmds.erase_boot_sector(3)
        cmds.program_byte(0x6000, 0x11)
    """

    def __init__(self, bus: BusCycles):
        self.bus = bus

    # -------------------------------------------------------------------------
    # Unlock prefixes
    # -------------------------------------------------------------------------

    def _unlock(self, command: int) -> None:
        self.bus.write_cycle(UNLOCK_ADDR_1, Cmd.UNLOCK_1)
        self.bus.write_cycle(UNLOCK_ADDR_2, Cmd.UNLOCK_2)
        self.bus.write_cycle(UNLOCK_ADDR_1, command)

    def _erase_unlock(self) -> None:
        self._unlock(Cmd.ERASE_SETUP)
        self.bus.write_cycle(UNLOCK_ADDR_1, Cmd.UNLOCK_1)
        self.bus.write_cycle(UNLOCK_ADDR_2, Cmd.UNLOCK_2)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def identify(self) -> ChipId:
        """Read the identifier bytes. Autoselect reads need no polling."""
        self._unlock(Cmd.AUTOSELECT)
        raw = [self.bus.read_cycle(offset) for offset in ID_OFFSETS]
        self.bus.write_cycle(UNLOCK_ADDR_1, Cmd.RESET)
        chip = ChipId(*raw)
        log.info("Chip identifier: %s", chip)
        return chip

    def erase_chip(self) -> None:
        log.info("Erasing whole chip")
        self._erase_unlock()
        self.bus.write_cycle(UNLOCK_ADDR_1, Cmd.CHIP_ERASE)
        self.bus.poll_until_ready()

    def erase_sector(self, sector: int) -> None:
        log.info("Erasing sector %d (0x%06X)", sector, sector_address(sector))
        self._erase_unlock()
        self.bus.write_cycle(sector_address(sector), Cmd.SECTOR_ERASE)
        self.bus.poll_until_ready()

    def erase_boot_sector(self, sector: int) -> None:
        log.info("Erasing boot sector %d (0x%06X)", sector,
                 boot_sector_address(sector))
        self._erase_unlock()
        self.bus.write_cycle(boot_sector_address(sector), Cmd.SECTOR_ERASE)
        self.bus.poll_until_ready()

    def program_byte(self, addr: int, data: int) -> None:
        log.info("Programming 0x%02X at 0x%06X", data, addr)
        self._unlock(Cmd.PROGRAM)
        self.bus.write_cycle(addr, data)
        self.bus.poll_until_ready()

    def check_range(self, base: int, size: int) -> None:
        """Fail on the first byte in [base, base+size) that is not erased."""
        for i in range(size):
            addr = base + i
            b = self.bus.read_cycle(addr)
            if b != ERASED:
                raise NonEmptyError(addr, b)

    def check_sector(self, sector: int) -> None:
        log.info("Checking sector %d is empty", sector)
        self.check_range(sector_address(sector), SECTOR_SIZE)

    def check_boot_sector(self, sector: int) -> None:
        log.info("Checking boot sector %d is empty", sector)
        self.check_range(boot_sector_address(sector), BOOT_SECTOR_SIZE)

    def check_chip(self) -> None:
        raise UnsupportedOperationError()
