"""
DE2-115 Flash Programmer
========================
Programs the parallel NOR flash on a Terasic DE2-115 board through a UART
bridge that only understands single bytes. The host emulates the flash
address/data/control bus one nibble at a time and runs the JEDEC command
sequences on top of it.

Architecture:
    ┌───────────┐    ┌───────────┐    ┌───────────┐    ┌───────────┐
    │ Transport │<───│ BusMirror │<───│ BusCycles │<───│ Commands  │
    │ (serial)  │    │ (latches) │    │ (r/w/poll)│    │ Bulk ops  │
    └───────────┘    └───────────┘    └───────────┘    └───────────┘

    - transport.py:  pyserial byte channel + retry-forever primitives
    - bus.py:        latch mirror, wire encoding, read/write/reset cycles
    - commands.py:   identify, erase, program byte, empty check
    - bulk.py:       read sectors to file, program / verify files
    - operations.py: FlashOp dispatch, sector 0 fan-out
    - session.py:    open, init board, reset ... standby, drain, close
    - simulator.py:  software board + NOR chip for tests and dry runs
"""

__version__ = "1.0.0"

from .errors import (
    FlashProgError, TransportOpenError, TransportTimeoutError, TransportIOError,
    FileOpenError, FileIOError, OversizeInputError, VerifyMismatchError,
    NonEmptyError, UnsupportedOperationError, InvalidArgumentError,
)
from .config import SessionConfig
from .transport import ByteTransport, SerialTransport
from .bus import BusMirror, BusCycles, Field, Control
from .commands import ChipId, FlashCommands, EXPECTED_ID, FLASH_SIZE
from .operations import OpKind, FlashOp, execute
from .session import FlashSession
