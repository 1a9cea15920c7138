"""
Operation dispatch tests: sector 0 fan-out, argument validation and the
results handed back to the caller.
"""

import pytest

from de2_flash import bulk
from de2_flash.bus import BusCycles, BusMirror
from de2_flash.commands import SECTOR_SIZE, ChipId, FlashCommands
from de2_flash.errors import InvalidArgumentError, UnsupportedOperationError
from de2_flash.operations import FlashOp, OpKind, execute
from de2_flash.simulator import NorFlashChip, SimulatedBoard


def _session_bus(board):
    cycles = BusCycles(BusMirror(board))
    cycles.init_board()
    cycles.reset_cycle()
    return cycles


def _pair():
    """Two identical boards with a few programmed bytes in sector 0."""
    boards = []
    for _ in range(2):
        chip = NorFlashChip()
        chip.data[0x0000] = 0x10
        chip.data[0x2001] = 0x21
        chip.data[0xE0FF] = 0x7F
        boards.append(SimulatedBoard(chip))
    return boards


# ─── Sector 0 fan-out ─────────────────────

class TestSectorZeroFanOut:
    def test_erase(self):
        a, b = _pair()
        execute(_session_bus(a), FlashOp(OpKind.ERASE_SECTOR, sector=0))
        cmds = FlashCommands(_session_bus(b))
        for i in range(8):
            cmds.erase_boot_sector(i)
        assert a.received == b.received
        assert a.chip.data[:SECTOR_SIZE] == b"\xFF" * SECTOR_SIZE
        assert a.chip.stats['sector_erases'] == 8

    def test_check(self):
        a, b = _pair()
        a.chip.data[:SECTOR_SIZE] = b"\xFF" * SECTOR_SIZE
        b.chip.data[:SECTOR_SIZE] = b"\xFF" * SECTOR_SIZE
        execute(_session_bus(a), FlashOp(OpKind.CHECK_SECTOR, sector=0))
        cmds = FlashCommands(_session_bus(b))
        for i in range(8):
            cmds.check_boot_sector(i)
        assert a.received == b.received

    def test_read_appends_into_one_file(self, tmp_path):
        a, b = _pair()
        out_a = tmp_path / "a.bin"
        out_b = tmp_path / "b.bin"
        out_a.write_bytes(b"stale" * 100)
        execute(_session_bus(a), FlashOp(OpKind.READ_SECTOR, sector=0, path=out_a))
        bus_b = _session_bus(b)
        for i in range(8):
            bulk.read_boot_sector(bus_b, i, out_b, append=i != 0)
        assert a.received == b.received
        data = out_a.read_bytes()
        assert data == out_b.read_bytes()
        assert len(data) == SECTOR_SIZE
        assert data[0x0000] == 0x10 and data[0x2001] == 0x21 and data[0xE0FF] == 0x7F

    def test_other_sectors_do_not_fan_out(self):
        a, _ = _pair()
        a.chip.data[0x10000] = 0x00
        execute(_session_bus(a), FlashOp(OpKind.ERASE_SECTOR, sector=1))
        assert a.chip.stats['sector_erases'] == 1
        assert a.chip.data[0x10000] == 0xFF
        assert a.chip.data[0x0000] == 0x10


# ─── Validation ─────────────────────

class TestValidation:
    @pytest.mark.parametrize("kind", [OpKind.ERASE_SECTOR, OpKind.CHECK_SECTOR,
                                      OpKind.READ_SECTOR])
    def test_sector_range(self, kind):
        FlashOp(kind, sector=127, path="x").validate()
        with pytest.raises(InvalidArgumentError, match="illegal sector number 128"):
            FlashOp(kind, sector=128, path="x").validate()

    @pytest.mark.parametrize("kind", [OpKind.ERASE_BOOT_SECTOR,
                                      OpKind.CHECK_BOOT_SECTOR,
                                      OpKind.READ_BOOT_SECTOR])
    def test_boot_sector_range(self, kind):
        FlashOp(kind, sector=7, path="x").validate()
        with pytest.raises(InvalidArgumentError, match="illegal boot sector number 8"):
            FlashOp(kind, sector=8, path="x").validate()

    @pytest.mark.parametrize("op,missing", [
        (FlashOp(OpKind.ERASE_SECTOR), "sector"),
        (FlashOp(OpKind.CHECK_BOOT_SECTOR), "sector"),
        (FlashOp(OpKind.READ_SECTOR, sector=1), "path"),
        (FlashOp(OpKind.READ_CHIP), "path"),
        (FlashOp(OpKind.PROGRAM_BYTE, data=0x12), "address"),
        (FlashOp(OpKind.PROGRAM_BYTE, address=0x10), "data"),
        (FlashOp(OpKind.PROGRAM_FILE, path="img.bin"), "address"),
        (FlashOp(OpKind.VERIFY_FILE, address=0), "path"),
    ])
    def test_missing_parameter(self, op, missing):
        with pytest.raises(InvalidArgumentError, match=f"missing {missing} for "):
            op.validate()

    def test_parameterless_kinds(self):
        for kind in (OpKind.IDENTIFY, OpKind.ERASE_CHIP, OpKind.CHECK_CHIP):
            FlashOp(kind).validate()

    def test_rejected_before_bus_traffic(self):
        board = SimulatedBoard()
        with pytest.raises(InvalidArgumentError):
            execute(BusCycles(BusMirror(board)), FlashOp(OpKind.ERASE_SECTOR, sector=200))
        assert board.received == []


# ─── Results ─────────────────────

class TestResults:
    def test_identify_returns_chip_id(self, bus):
        result = execute(bus, FlashOp(OpKind.IDENTIFY))
        assert isinstance(result, ChipId)
        assert result.matches()

    def test_program_byte(self, bus, board):
        assert execute(bus, FlashOp(OpKind.PROGRAM_BYTE, address=0x400000, data=0x81)) is None
        assert board.chip.data[0x400000] == 0x81

    def test_program_and_verify_file_counts(self, bus, tmp_path):
        src = tmp_path / "img.bin"
        src.write_bytes(bytes([0xA5, 0x5A, 0x00]))
        assert execute(bus, FlashOp(OpKind.PROGRAM_FILE, address=0x8000, path=src)) == 3
        assert execute(bus, FlashOp(OpKind.VERIFY_FILE, address=0x8000, path=src)) == 3

    @pytest.mark.parametrize("op", [FlashOp(OpKind.CHECK_CHIP),
                                    FlashOp(OpKind.READ_CHIP, path="all.bin")])
    def test_whole_chip_operations_unsupported(self, bus, op):
        with pytest.raises(UnsupportedOperationError):
            execute(bus, op)
