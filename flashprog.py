#!/usr/bin/env python3
"""
flashprog — DE2-115 Flash ROM programmer CLI

Usage:
    python flashprog.py <serial port> <command> ... [--baud 38400] [-v]

Commands:
    --id           identify chip
    --et           erase total chip
    --es <n>       erase 64 KB sector <n> (0..127)
    --eb <n>       erase 8 KB boot sector <n> (0..7)
    --ct           check empty total chip
    --cs <n>       check empty 64 KB sector <n> (0..127)
    --cb <n>       check empty 8 KB boot sector <n> (0..7)
    --rt <f>       read total chip to file <f>
    --rs <n> <f>   read 64 KB sector <n> (0..127) to file <f>
    --rb <n> <f>   read 8 KB boot sector <n> (0..7) to file <f>
    --pb <a> <d>   program addr <a> with data byte <d>
    --pf <a> <f>   program start addr <a>, data from file <f>
    --vf <a> <f>   verify start addr <a>, data from file <f>

Numbers are decimal, 0x-prefixed hex or 0-prefixed octal.

Examples:
    python flashprog.py /dev/ttyUSB0 --id
    python flashprog.py /dev/ttyUSB0 --es 0
    python flashprog.py /dev/ttyUSB0 --pf 0x0 image.bin
    python flashprog.py /dev/ttyUSB0 --vf 0x0 image.bin
"""

import argparse
import logging
import re
import sys
import os

# Allow running from project root or as module
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from de2_flash import __version__
from de2_flash.commands import ADDRESS_MASK, EXPECTED_ID, ChipId
from de2_flash.config import (
    BAUD_RATE, DEFAULT_LOG_DIR, SHUTDOWN_GRACE_S, SessionConfig,
)
from de2_flash.errors import FlashProgError, InvalidArgumentError
from de2_flash.logsetup import setup_logging
from de2_flash.operations import FlashOp, OpKind
from de2_flash.session import FlashSession

log = logging.getLogger('de2flash.cli')

# (option, kind, parameters, help)
COMMANDS = [
    ("--id", OpKind.IDENTIFY, (), "identify chip"),
    ("--et", OpKind.ERASE_CHIP, (), "erase total chip"),
    ("--es", OpKind.ERASE_SECTOR, ("n",), "erase 64 KB sector <n> (0..127)"),
    ("--eb", OpKind.ERASE_BOOT_SECTOR, ("n",), "erase 8 KB boot sector <n> (0..7)"),
    ("--ct", OpKind.CHECK_CHIP, (), "check empty total chip"),
    ("--cs", OpKind.CHECK_SECTOR, ("n",), "check empty 64 KB sector <n> (0..127)"),
    ("--cb", OpKind.CHECK_BOOT_SECTOR, ("n",), "check empty 8 KB boot sector <n> (0..7)"),
    ("--rt", OpKind.READ_CHIP, ("f",), "read total chip to file <f>"),
    ("--rs", OpKind.READ_SECTOR, ("n", "f"), "read 64 KB sector <n> (0..127) to file <f>"),
    ("--rb", OpKind.READ_BOOT_SECTOR, ("n", "f"), "read 8 KB boot sector <n> (0..7) to file <f>"),
    ("--pb", OpKind.PROGRAM_BYTE, ("a", "d"), "program addr <a> with data byte <d>"),
    ("--pf", OpKind.PROGRAM_FILE, ("a", "f"), "program start addr <a>, data from file <f>"),
    ("--vf", OpKind.VERIFY_FILE, ("a", "f"), "verify start addr <a>, data from file <f>"),
]

BOOT_KINDS = (OpKind.ERASE_BOOT_SECTOR, OpKind.CHECK_BOOT_SECTOR,
              OpKind.READ_BOOT_SECTOR)

# -v count -> console log level
VERBOSITY = {0: logging.WARNING, 1: logging.INFO}

# strtoul(.., 0) prefixes, digits checked the way *endptr would be
HEX_RE = re.compile(r"0[xX]([0-9a-fA-F]+)\Z")
OCT_RE = re.compile(r"0([0-7]*)\Z")
DEC_RE = re.compile(r"[1-9][0-9]*\Z")


class UsageParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def parse_number(text: str) -> int:
    """Parse like C strtoul(text, &end, 0) with *end required to be NUL.

    Leading whitespace is skipped; anything else that is not a digit of the
    selected base (0x hex, 0 octal, otherwise decimal) is rejected.
    """
    t = text.lstrip(" \t\n\v\f\r")
    m = HEX_RE.match(t)
    if m:
        return int(m.group(1), 16)
    m = OCT_RE.match(t)
    if m:
        return int(m.group(1) or "0", 8)
    if DEC_RE.match(t):
        return int(t, 10)
    raise ValueError(f"not an unsigned number: {text!r}")


def console_level(verbose: int) -> int:
    """Console log level for a -v count: WARNING, INFO, then DEBUG."""
    return VERBOSITY.get(verbose, logging.DEBUG)


def build_parser() -> argparse.ArgumentParser:
    parser = UsageParser(
        prog="flashprog",
        usage="%(prog)s <serial port> <command> ...",
        description="DE2-115 Flash ROM programmer",
        epilog="Note: sector 0 comprises the eight boot sectors 0..7",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("port", help="Serial port (e.g. /dev/ttyUSB0)")
    group = parser.add_mutually_exclusive_group(required=True)
    for option, kind, params, help_text in COMMANDS:
        kwargs = {"dest": "command", "help": help_text}
        if params:
            kwargs.update(action="store", nargs=len(params),
                          metavar=tuple(f"<{p}>" for p in params))
            kwargs["dest"] = option[2:]
        else:
            kwargs.update(action="store_const", const=option)
        group.add_argument(option, **kwargs)
    parser.add_argument("--baud", type=int, default=BAUD_RATE,
                        help=f"Baud rate (default: {BAUD_RATE})")
    parser.add_argument("--grace", type=float, default=SHUTDOWN_GRACE_S,
                        help="Delay before closing the port, seconds")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Give up on a dead link after this many seconds "
                             "(default: wait forever)")
    parser.add_argument("--log-dir", default=DEFAULT_LOG_DIR,
                        help="Write a debug log file into this directory")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase verbosity (-v, -vv)")
    parser.add_argument("--version", action="version",
                        version=f"flashprog {__version__}")
    return parser


def op_from_args(args: argparse.Namespace) -> FlashOp:
    """Turn parsed arguments into a validated FlashOp."""
    for option, kind, params, _ in COMMANDS:
        if not params:
            if args.command == option:
                op = FlashOp(kind)
                break
            continue
        values = getattr(args, option[2:], None)
        if values is None:
            continue
        op = FlashOp(kind)
        for name, text in zip(params, values):
            if name == "n":
                what = "boot sector" if kind in BOOT_KINDS else "sector"
                try:
                    op.sector = parse_number(text)
                except ValueError:
                    raise InvalidArgumentError(f"cannot read {what} number") from None
            elif name == "a":
                try:
                    op.address = parse_number(text) & ADDRESS_MASK
                except ValueError:
                    raise InvalidArgumentError("cannot read address value") from None
            elif name == "d":
                try:
                    op.data = parse_number(text) & 0xFF
                except ValueError:
                    raise InvalidArgumentError("cannot read data value") from None
            else:
                op.path = text
        break
    else:
        raise InvalidArgumentError("no command given")
    op.validate()
    return op


def print_identifiers(chip: ChipId) -> None:
    expected = ' '.join(f"0x{b:02X}" for b in EXPECTED_ID)
    print(f"result should be    : {expected}")
    print(f"result actually is  : {chip}")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(console_level=console_level(args.verbose), log_dir=args.log_dir)

    try:
        op = op_from_args(args)
        config = SessionConfig(port=args.port, baud=args.baud,
                               grace_delay=args.grace, io_timeout=args.timeout)
        with FlashSession.open(config) as session:
            result = session.run(op)
        if op.kind is OpKind.IDENTIFY:
            print_identifiers(result)
        elif op.kind in (OpKind.PROGRAM_FILE, OpKind.VERIFY_FILE):
            log.info("%d bytes done", result)
    except FlashProgError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nAborted by user.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
