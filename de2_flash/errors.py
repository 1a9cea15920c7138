"""
Fatal error taxonomy for the flash programmer.

Every error here aborts the requested operation. The session guard puts the
board into standby and closes the link before the error reaches the caller.
Transient byte send/receive failures are not errors: they are retried.
A hard I/O error reported by the device raises TransportIOError instead.
"""

from typing import Optional


class FlashProgError(Exception):
    """Base class for all fatal programmer errors."""


class TransportOpenError(FlashProgError):
    def __init__(self, port: str, reason: Optional[str] = None):
        self.port = port
        self.reason = reason
        super().__init__(f"cannot open serial port '{port}'")


class TransportTimeoutError(FlashProgError):
    """Raised only when an I/O timeout was configured explicitly."""


class TransportIOError(FlashProgError):
    """The serial device failed outright (unplugged, I/O error)."""

    def __init__(self, port: str, reason: Optional[str] = None):
        self.port = port
        self.reason = reason
        msg = f"I/O error on serial port '{port}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class FileOpenError(FlashProgError):
    def __init__(self, path, direction: str):
        self.path = str(path)
        super().__init__(f"cannot open {direction} file '{self.path}'")


class FileIOError(FlashProgError):
    def __init__(self, path, direction: str):
        self.path = str(path)
        verb = "write to" if direction == "output" else "read from"
        super().__init__(f"cannot {verb} {direction} file '{self.path}'")


class OversizeInputError(FlashProgError):
    def __init__(self, size: int, start: int = 0, message: Optional[str] = None):
        self.size = size
        self.start = start
        super().__init__(
            message or "size of file is bigger than the capacity of the Flash ROM")


class VerifyMismatchError(FlashProgError):
    def __init__(self, address: int, expected: int, actual: int):
        self.address = address
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"addr 0x{address:06X}, file = 0x{expected:02X}, ROM = 0x{actual:02X}")


class NonEmptyError(FlashProgError):
    def __init__(self, address: int, value: int):
        self.address = address
        self.value = value
        super().__init__(f"addr 0x{address:06X} not empty, data is 0x{value:02X}")


class UnsupportedOperationError(FlashProgError):
    def __init__(self):
        super().__init__("this command would take 2:30h to complete, "
                         "and thus is not implemented")


class InvalidArgumentError(FlashProgError):
    pass
