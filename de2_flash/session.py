"""
session.py — Ownership of the link for one programmer run.

FlashSession is the shutdown guard: whatever happens inside the ``with``
block, the board is put into standby, the output is drained, the grace
delay passes and the transport is closed.

    with FlashSession.open(SessionConfig('/dev/ttyUSB0')) as session:
        session.run(FlashOp(OpKind.IDENTIFY))
"""

import logging
import time
from typing import Callable, Optional

from .bus import BusCycles, BusMirror
from .config import SHUTDOWN_GRACE_S, SessionConfig
from .operations import FlashOp, execute
from .transport import ByteTransport, SerialTransport

log = logging.getLogger('de2flash.session')


class FlashSession:

    def __init__(self, transport: ByteTransport,
                 grace_delay: float = SHUTDOWN_GRACE_S,
                 io_timeout: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.transport = transport
        self.grace_delay = grace_delay
        self.mirror = BusMirror(transport, io_timeout)
        self.bus = BusCycles(self.mirror)
        self._sleep = sleep
        self._closed = False

    @classmethod
    def open(cls, config: SessionConfig) -> "FlashSession":
        """Open the serial port described by config."""
        transport = SerialTransport.open(config.port, config.baud)
        return cls(transport, config.grace_delay, config.io_timeout)

    def __enter__(self) -> "FlashSession":
        try:
            self.bus.init_board()
            self.bus.reset_cycle()
        except BaseException:
            try:
                self.close()
            except Exception:
                log.debug("Shutdown after failed bring-up failed", exc_info=True)
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.close()
            return False
        log.info("Aborting: %s", exc)
        try:
            self.close()
        except Exception:
            # The original error is the one reported
            log.debug("Shutdown after error failed", exc_info=True)
        return False

    def run(self, op: FlashOp):
        return execute(self.bus, op)

    def close(self) -> None:
        """Standby, drain, grace delay, close. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            self.bus.standby_cycle()
            self.transport.drain()
            self._sleep(self.grace_delay)
        finally:
            self.transport.close()
        log.info("Session closed")
