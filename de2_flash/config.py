"""
DE2-115 Flash Programmer — Link / Session Configuration
=======================================================

The board side is a UART bridge that latches one nibble per received byte.
Serial settings below match the bridge firmware and must not be changed
unless the FPGA design is rebuilt with a different divider.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# =============================================================================
#  SERIAL LINK
# =============================================================================
BAUD_RATE = 38400
SERIAL_DATABITS = 8
SERIAL_PARITY = "N"
SERIAL_STOPBITS = 1
SERIAL_FORMAT = "8N1"       # no RTS/CTS, no XON/XOFF

# =============================================================================
#  SHUTDOWN / BLOCKING I/O
# =============================================================================
SHUTDOWN_GRACE_S = 1.0      # wait after draining, before close
DEFAULT_IO_TIMEOUT = None   # None = retry byte I/O forever

# =============================================================================
#  LOGGING
# =============================================================================
LOG_NAME = "de2flash"
DEFAULT_LOG_DIR: Optional[Path] = None   # no log file unless requested


@dataclass
class SessionConfig:
    """Settings for one programmer session.

    ``io_timeout`` departs from the board's documented behavior when set:
    a dead link raises TransportTimeoutError instead of hanging forever.
    """
    port: str
    baud: int = BAUD_RATE
    grace_delay: float = SHUTDOWN_GRACE_S
    io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT
