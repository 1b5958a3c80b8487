# campsync/security/__init__.py
"""
Wristband security package.

- Lock code store: the single shared secret, persisted and cached
- Integrity layer: truncated keyed SHA-256 prefix around the tag payload
- Reason strings for wristband_logs
"""

from .integrity import wrap, unwrap, keyed_digest_hex, DEFAULT_PREFIX_LEN
from .lock_code import (
    LockCodeStore,
    validate_lock_code,
    password_bytes,
    LOCK_CODE_MIN_LEN,
    LOCK_CODE_MAX_LEN,
    LOCK_CODE_SYMBOLS,
)
from .audit_logging import WristbandEvent, lock_code_fingerprint, station_id
