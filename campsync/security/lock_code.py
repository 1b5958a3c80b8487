# campsync/security/lock_code.py
from __future__ import annotations

import logging
import sqlite3
import string
import threading
from typing import Optional

from ..db import get_setting, upsert_setting
from ..errors import PersistenceError, ValidationError


logger = logging.getLogger(__name__)

DEFAULT_LOCK_CODE = "CAMPSYNC2024LOCK"

LOCK_CODE_MIN_LEN = 8
LOCK_CODE_MAX_LEN = 32
LOCK_CODE_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

_ALLOWED = set(string.ascii_letters + string.digits + LOCK_CODE_SYMBOLS)


def validate_lock_code(candidate: str) -> None:
    c = candidate if isinstance(candidate, str) else ""
    if len(c) < LOCK_CODE_MIN_LEN:
        raise ValidationError(
            f"lock code must be at least {LOCK_CODE_MIN_LEN} characters (got {len(c)})",
            code="lock_code_too_short",
        )
    if len(c) > LOCK_CODE_MAX_LEN:
        raise ValidationError(
            f"lock code must be at most {LOCK_CODE_MAX_LEN} characters (got {len(c)})",
            code="lock_code_too_long",
        )
    bad = sorted({ch for ch in c if ch not in _ALLOWED})
    if bad:
        raise ValidationError(
            f"lock code contains disallowed characters: {''.join(repr(ch) for ch in bad)}",
            code="lock_code_bad_charset",
        )


def password_bytes(code: str) -> bytes:
    """
    4-byte tag password: character codes of the lock code, wrapping when the
    code is shorter than four characters.
    """
    if not code:
        raise ValueError("empty_lock_code")
    return bytes(ord(code[i % len(code)]) & 0xFF for i in range(4))


class LockCodeStore:
    """
    Single shared wristband lock code, persisted in app_settings and cached
    for the lifetime of the process.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        default_code: str = DEFAULT_LOCK_CODE,
        settings_key: str = "global",
    ):
        self.conn = conn
        self.default_code = default_code
        self.settings_key = settings_key
        self._cached: Optional[str] = None
        self._generation = 0
        self._lock = threading.Lock()

    def get_current_code(self) -> str:
        with self._lock:
            if self._cached is not None:
                return self._cached
            generation = self._generation

        code = None
        try:
            code = get_setting(self.conn, self.settings_key)
        except sqlite3.Error as e:
            logger.warning("lock code fetch failed, using default: %s", e)

        if not code:
            code = self.default_code

        with self._lock:
            # An invalidation during the fetch means the value may be stale.
            if self._generation == generation:
                self._cached = code
        return code

    def _persist(self, code: str) -> None:
        try:
            upsert_setting(self.conn, self.settings_key, code)
        except sqlite3.Error as e:
            raise PersistenceError(f"lock_code_persist_failed:{e}")
        self.invalidate_cache()

    def set_code(self, candidate: str) -> None:
        validate_lock_code(candidate)
        self._persist(candidate)
        logger.info("wristband lock code updated")

    def reset_to_default(self) -> None:
        self._persist(self.default_code)
        logger.info("wristband lock code reset to default")

    def invalidate_cache(self) -> None:
        with self._lock:
            self._cached = None
            self._generation += 1
