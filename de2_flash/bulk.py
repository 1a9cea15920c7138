"""
bulk.py — File-driven read / program / verify over the flash bus
=================================================================
Files are raw dumps: byte i of the file is flash address start + i.

program_file uses unlock bypass (the chip's write-buffer style mode): one
unlock prefix, an A0/DATA pair per byte, a single ready poll at the end and
90/00 to leave bypass mode. Throughput matters more than locating the exact
byte that failed; verify_file is how failures are found.
"""

import logging
import os
from pathlib import Path
from typing import Union

from .bus import BusCycles
from .commands import (
    BOOT_SECTOR_SIZE, FLASH_SIZE, SECTOR_SIZE, UNLOCK_ADDR_1, UNLOCK_ADDR_2,
    Cmd, boot_sector_address, sector_address,
)
from .errors import (
    FileIOError, FileOpenError, OversizeInputError, UnsupportedOperationError,
    VerifyMismatchError,
)

log = logging.getLogger('de2flash.bulk')

PathLike = Union[str, Path]


# =============================================================================
# File helpers
# =============================================================================

def load_input(path: PathLike, start: int = 0) -> bytes:
    """Read a whole input file, rejecting anything that will not fit.

    The size is checked before the contents are read, so an oversize file
    never produces bus traffic.
    """
    try:
        f = open(path, 'rb')
    except OSError as e:
        raise FileOpenError(path, 'input') from e
    with f:
        try:
            size = f.seek(0, os.SEEK_END)
            f.seek(0, os.SEEK_SET)
        except OSError as e:
            raise FileIOError(path, 'input') from e
        if size > FLASH_SIZE:
            raise OversizeInputError(size, start)
        if start + size > FLASH_SIZE:
            raise OversizeInputError(
                size, start,
                f"file of {size} bytes at 0x{start:06X} extends past the "
                f"end of the Flash ROM")
        try:
            data = f.read()
        except OSError as e:
            raise FileIOError(path, 'input') from e
    if len(data) != size:
        raise FileIOError(path, 'input')
    return data


def _dump_range(bus: BusCycles, base: int, size: int,
                path: PathLike, append: bool) -> None:
    try:
        f = open(path, 'ab' if append else 'wb')
    except OSError as e:
        raise FileOpenError(path, 'output') from e
    try:
        with f:
            for i in range(size):
                f.write(bytes([bus.read_cycle(base + i)]))
    except OSError as e:
        raise FileIOError(path, 'output') from e


# =============================================================================
# Bulk operations
# =============================================================================

def read_sector(bus: BusCycles, sector: int, path: PathLike) -> None:
    log.info("Reading sector %d to %s", sector, path)
    _dump_range(bus, sector_address(sector), SECTOR_SIZE, path, append=False)


def read_boot_sector(bus: BusCycles, sector: int, path: PathLike,
                     append: bool = False) -> None:
    log.info("Reading boot sector %d to %s%s", sector, path,
             " (append)" if append else "")
    _dump_range(bus, boot_sector_address(sector), BOOT_SECTOR_SIZE, path, append)


def read_chip(bus: BusCycles, path: PathLike) -> None:
    raise UnsupportedOperationError()


def program_file(bus: BusCycles, start: int, path: PathLike) -> int:
    """Program a file at start using unlock bypass. Returns bytes written."""
    data = load_input(path, start)
    log.info("Programming %d bytes from %s at 0x%06X", len(data), path, start)

    bus.write_cycle(UNLOCK_ADDR_1, Cmd.UNLOCK_1)
    bus.write_cycle(UNLOCK_ADDR_2, Cmd.UNLOCK_2)
    bus.write_cycle(UNLOCK_ADDR_1, Cmd.UNLOCK_BYPASS)
    addr = UNLOCK_ADDR_1
    for i, b in enumerate(data):
        # Address of the A0 cycle is don't care; the previous one is reused.
        bus.write_cycle(addr, Cmd.PROGRAM)
        addr = start + i
        bus.write_cycle(addr, b)
    bus.poll_until_ready()
    bus.write_cycle(addr, Cmd.BYPASS_RESET_1)
    bus.write_cycle(addr, Cmd.BYPASS_RESET_2)

    log.info("Programmed %d bytes", len(data))
    return len(data)


def verify_file(bus: BusCycles, start: int, path: PathLike) -> int:
    """Compare flash against a file, failing on the first mismatch."""
    data = load_input(path, start)
    log.info("Verifying %d bytes from %s at 0x%06X", len(data), path, start)
    for i, expected in enumerate(data):
        addr = start + i
        actual = bus.read_cycle(addr)
        if actual != expected:
            raise VerifyMismatchError(addr, expected, actual)
    log.info("Verified %d bytes", len(data))
    return len(data)
