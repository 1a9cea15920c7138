"""
operations.py — One requested flash operation and its dispatch.

Sector 0 of the chip is made of the eight 8 KiB boot sectors, so erase,
check and read of sector 0 run the boot sector operation for 0..7 in order.
Reads after the first one append, leaving one 64 KiB file.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional, Union

from . import bulk
from .bus import BusCycles
from .commands import (
    ADDRESS_MASK, NUM_BOOT_SECTORS, NUM_SECTORS, ChipId, FlashCommands,
)
from .errors import InvalidArgumentError

log = logging.getLogger('de2flash.operations')


class OpKind(Enum):
    IDENTIFY = auto()
    ERASE_CHIP = auto()
    ERASE_SECTOR = auto()
    ERASE_BOOT_SECTOR = auto()
    CHECK_CHIP = auto()
    CHECK_SECTOR = auto()
    CHECK_BOOT_SECTOR = auto()
    READ_CHIP = auto()
    READ_SECTOR = auto()
    READ_BOOT_SECTOR = auto()
    PROGRAM_BYTE = auto()
    PROGRAM_FILE = auto()
    VERIFY_FILE = auto()


SECTOR_OPS = {OpKind.ERASE_SECTOR, OpKind.CHECK_SECTOR, OpKind.READ_SECTOR}
BOOT_SECTOR_OPS = {OpKind.ERASE_BOOT_SECTOR, OpKind.CHECK_BOOT_SECTOR,
                   OpKind.READ_BOOT_SECTOR}

# Parameters each kind cannot run without
REQUIRED = {
    OpKind.ERASE_SECTOR: ("sector",),
    OpKind.ERASE_BOOT_SECTOR: ("sector",),
    OpKind.CHECK_SECTOR: ("sector",),
    OpKind.CHECK_BOOT_SECTOR: ("sector",),
    OpKind.READ_CHIP: ("path",),
    OpKind.READ_SECTOR: ("sector", "path"),
    OpKind.READ_BOOT_SECTOR: ("sector", "path"),
    OpKind.PROGRAM_BYTE: ("address", "data"),
    OpKind.PROGRAM_FILE: ("address", "path"),
    OpKind.VERIFY_FILE: ("address", "path"),
}


@dataclass
class FlashOp:
    kind: OpKind
    sector: Optional[int] = None
    address: Optional[int] = None
    data: Optional[int] = None
    path: Optional[Union[str, Path]] = None
    append: bool = False

    def validate(self) -> None:
        """Reject missing parameters and values outside the chip's range."""
        for name in REQUIRED.get(self.kind, ()):
            if getattr(self, name) is None:
                raise InvalidArgumentError(
                    f"missing {name} for {self.kind.name.lower()}")
        if self.kind in SECTOR_OPS and not 0 <= self.sector < NUM_SECTORS:
            raise InvalidArgumentError(f"illegal sector number {self.sector}")
        if self.kind in BOOT_SECTOR_OPS and not 0 <= self.sector < NUM_BOOT_SECTORS:
            raise InvalidArgumentError(f"illegal boot sector number {self.sector}")
        if self.address is not None and not 0 <= self.address <= ADDRESS_MASK:
            raise InvalidArgumentError(f"illegal address 0x{self.address:X}")
        if self.data is not None and not 0 <= self.data <= 0xFF:
            raise InvalidArgumentError(f"illegal data value 0x{self.data:X}")


def execute(bus: BusCycles, op: FlashOp) -> Union[ChipId, int, None]:
    """Run op on the bus.

    Returns the ChipId for IDENTIFY, the byte count for PROGRAM_FILE and
    VERIFY_FILE, and None otherwise.
    """
    op.validate()
    cmds = FlashCommands(bus)
    kind = op.kind
    log.debug("Executing %s", op)

    if kind is OpKind.IDENTIFY:
        return cmds.identify()
    if kind is OpKind.ERASE_CHIP:
        cmds.erase_chip()
    elif kind is OpKind.ERASE_SECTOR:
        if op.sector == 0:
            for i in range(NUM_BOOT_SECTORS):
                cmds.erase_boot_sector(i)
        else:
            cmds.erase_sector(op.sector)
    elif kind is OpKind.ERASE_BOOT_SECTOR:
        cmds.erase_boot_sector(op.sector)
    elif kind is OpKind.CHECK_CHIP:
        cmds.check_chip()
    elif kind is OpKind.CHECK_SECTOR:
        if op.sector == 0:
            for i in range(NUM_BOOT_SECTORS):
                cmds.check_boot_sector(i)
        else:
            cmds.check_sector(op.sector)
    elif kind is OpKind.CHECK_BOOT_SECTOR:
        cmds.check_boot_sector(op.sector)
    elif kind is OpKind.READ_CHIP:
        bulk.read_chip(bus, op.path)
    elif kind is OpKind.READ_SECTOR:
        if op.sector == 0:
            for i in range(NUM_BOOT_SECTORS):
                bulk.read_boot_sector(bus, i, op.path, append=i != 0)
        else:
            bulk.read_sector(bus, op.sector, op.path)
    elif kind is OpKind.READ_BOOT_SECTOR:
        bulk.read_boot_sector(bus, op.sector, op.path, append=op.append)
    elif kind is OpKind.PROGRAM_BYTE:
        cmds.program_byte(op.address, op.data)
    elif kind is OpKind.PROGRAM_FILE:
        return bulk.program_file(bus, op.address, op.path)
    elif kind is OpKind.VERIFY_FILE:
        return bulk.verify_file(bus, op.address, op.path)
    else:
        raise InvalidArgumentError(f"unknown operation {kind}")
    return None
