from __future__ import annotations

from typing import Optional


class WristbandError(RuntimeError):
    """Base class for wristband subsystem failures.

    ``code`` is a short snake_case reason, the same string used in
    wristband_logs and as the CLI exit reason.
    """

    code = "wristband_error"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message or (code or self.code))
        if code:
            self.code = code
        self.message = message or self.code


class ValidationError(WristbandError):
    code = "invalid_lock_code"


class PersistenceError(WristbandError):
    code = "persist_failed"


class SizeExceeded(WristbandError):
    code = "payload_too_large"

    def __init__(self, size: int, budget: int):
        super().__init__(f"payload_too_large:{size}>{budget}")
        self.size = size
        self.budget = budget


class DriverError(WristbandError):
    code = "driver_error"


class SessionBusy(DriverError):
    code = "session_busy"


class IntegrityError(WristbandError):
    code = "integrity_mismatch"


class FormatError(WristbandError):
    code = "bad_payload_format"


class RecordUpdateError(WristbandError):
    """The tag was written (or erased) but the camper row was not updated."""

    code = "record_update_failed"

    def __init__(self, message: str, wristband_id: Optional[str] = None):
        super().__init__(message)
        self.wristband_id = wristband_id


class UnknownCamper(WristbandError):
    code = "unknown_camper"
