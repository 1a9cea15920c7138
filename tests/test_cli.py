"""
Command-line tests. The serial port is replaced by a simulated board so the
whole path from argv to exit status runs without hardware.
"""

import logging

import pytest

import flashprog
from de2_flash.errors import InvalidArgumentError
from de2_flash.operations import OpKind
from de2_flash.session import FlashSession
from de2_flash.simulator import SimulatedBoard
from de2_flash.transport import SerialTransport

from conftest import DeadPort


@pytest.fixture
def sim(monkeypatch):
    """Route FlashSession.open to a simulated board; record open calls."""
    board = SimulatedBoard()
    board.opened = []

    def fake_open(cls, config):
        board.opened.append(config)
        return cls(board, grace_delay=0, sleep=lambda s: None)

    monkeypatch.setattr(FlashSession, "open", classmethod(fake_open))
    return board


def _op(*argv):
    return flashprog.op_from_args(flashprog.build_parser().parse_args(["port", *argv]))


# ─── Number parsing ─────────────────────

class TestParseNumber:
    @pytest.mark.parametrize("text,value", [
        ("0", 0), ("00", 0), ("10", 10), (" 10", 10), ("0x1F", 31), ("0X1f", 31),
        ("017", 15), ("0x7FFFFF", 0x7FFFFF),
    ])
    def test_accepted(self, text, value):
        assert flashprog.parse_number(text) == value

    @pytest.mark.parametrize("text", [
        "", "abc", "-1", "+3", "09", "0x", "12k", "1_0", "0x 1F", "10 ", "0x1F\n",
        "\u0661\u0660", "0o17", "0b101",
    ])
    def test_rejected(self, text):
        with pytest.raises(ValueError):
            flashprog.parse_number(text)


class TestVerbosity:
    def test_levels(self):
        assert flashprog.console_level(0) == logging.WARNING
        assert flashprog.console_level(1) == logging.INFO
        assert flashprog.console_level(2) == logging.DEBUG
        assert flashprog.console_level(5) == logging.DEBUG


# ─── Argument to operation mapping ─────────────────────

class TestOpFromArgs:
    def test_identify(self):
        assert _op("--id").kind is OpKind.IDENTIFY

    def test_sector_commands(self):
        op = _op("--rs", "0x10", "out.bin")
        assert (op.kind, op.sector, op.path) == (OpKind.READ_SECTOR, 16, "out.bin")
        assert _op("--eb", "7").sector == 7

    def test_address_and_data_are_masked(self):
        op = _op("--pb", "0xFFFFFFFF", "0x1FF")
        assert (op.address, op.data) == (0x7FFFFF, 0xFF)

    def test_bad_numbers(self):
        with pytest.raises(InvalidArgumentError, match="cannot read sector number"):
            _op("--es", "x")
        with pytest.raises(InvalidArgumentError, match="cannot read boot sector number"):
            _op("--cb", "x")
        with pytest.raises(InvalidArgumentError, match="cannot read address value"):
            _op("--pf", "zz", "f.bin")
        with pytest.raises(InvalidArgumentError, match="cannot read data value"):
            _op("--pb", "0", "zz")

    def test_sector_range(self):
        with pytest.raises(InvalidArgumentError, match="illegal sector number 128"):
            _op("--cs", "128")
        with pytest.raises(InvalidArgumentError, match="illegal boot sector number 8"):
            _op("--rb", "8", "f.bin")


# ─── main() ─────────────────────

class TestMain:
    def test_identify_output(self, sim, capsys):
        assert flashprog.main(["/dev/ttyUSB0", "--id"]) == 0
        out = capsys.readouterr().out
        assert "result should be    : 0x01 0x7E 0x10 0x00" in out
        assert "result actually is  : 0x01 0x7E 0x10 0x00" in out
        assert sim.opened[0].port == "/dev/ttyUSB0"
        assert sim.closed

    def test_program_and_verify(self, sim, tmp_path):
        src = tmp_path / "img.bin"
        src.write_bytes(bytes(range(32)))
        assert flashprog.main(["p", "--pf", "0x100", str(src)]) == 0
        assert bytes(sim.chip.data[0x100:0x120]) == bytes(range(32))
        assert flashprog.main(["p", "--vf", "0x100", str(src)]) == 0

    def test_verify_failure_exit_code(self, sim, tmp_path, capsys):
        src = tmp_path / "img.bin"
        src.write_bytes(b"\x00")
        assert flashprog.main(["p", "--vf", "0x20", str(src)]) == 1
        assert "Error: addr 0x000020, file = 0x00, ROM = 0xFF" in capsys.readouterr().err
        assert sim.closed

    def test_range_error_before_open(self, sim, capsys):
        assert flashprog.main(["p", "--es", "128"]) == 1
        assert "illegal sector number 128" in capsys.readouterr().err
        assert sim.opened == []

    def test_unsupported_whole_chip(self, sim, capsys):
        assert flashprog.main(["p", "--ct"]) == 1
        assert "2:30h" in capsys.readouterr().err

    def test_usage_errors_exit_1(self, sim):
        for argv in (["p"], ["p", "--id", "--et"], ["p", "--es"], []):
            with pytest.raises(SystemExit) as exc:
                flashprog.main(argv)
            assert exc.value.code == 1
        assert sim.opened == []

    def test_link_options_reach_session_config(self, sim):
        argv = ["/dev/ttyS1", "--id", "--timeout", "2", "--baud", "9600", "--grace", "0"]
        assert flashprog.main(argv) == 0
        config = sim.opened[0]
        assert (config.port, config.baud) == ("/dev/ttyS1", 9600)
        assert config.io_timeout == 2.0
        assert config.grace_delay == 0.0

    def test_link_option_defaults(self, sim):
        assert flashprog.main(["p", "--id"]) == 0
        config = sim.opened[0]
        assert (config.baud, config.grace_delay, config.io_timeout) == (38400, 1.0, None)

    def test_interrupt_still_shuts_down(self, sim, monkeypatch, capsys):
        def interrupted():
            raise KeyboardInterrupt

        monkeypatch.setattr(sim, "recv_byte", interrupted)
        assert flashprog.main(["p", "--id"]) == 1
        assert "Aborted by user." in capsys.readouterr().err
        assert sim.received[-1] == 0x8F
        assert sim.drained == 1
        assert sim.closed

    def test_error_reported_once(self, sim, capsys):
        sim.chip.data[0x10000] = 0x00
        assert flashprog.main(["p", "--cs", "1"]) == 1
        err = capsys.readouterr().err
        assert err.count("addr 0x010000 not empty, data is 0x00") == 1

    def test_unplugged_adapter(self, monkeypatch, capsys):
        port = DeadPort("/dev/ttyUSB3")

        def dead_open(cls, config):
            return cls(SerialTransport(port), grace_delay=0, sleep=lambda s: None)

        monkeypatch.setattr(FlashSession, "open", classmethod(dead_open))
        assert flashprog.main(["/dev/ttyUSB3", "--id"]) == 1
        err = capsys.readouterr().err
        assert "Error: I/O error on serial port '/dev/ttyUSB3'" in err
        assert err.count("Error:") == 1
        assert not port.is_open
