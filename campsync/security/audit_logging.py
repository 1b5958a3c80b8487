# campsync/security/audit_logging.py
from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass
from typing import List, Optional


REASON_MAX_LEN = 512


def station_id() -> str:
    """Name of the check-in station, CAMPSYNC_STATION or the host name."""
    return os.environ.get("CAMPSYNC_STATION") or platform.node() or "station"


def lock_code_fingerprint(code: str) -> str:
    """
    8 hex chars identifying a lock code generation. Never derives the tag
    password or the integrity prefix, so it is safe to print and log.
    """
    return hashlib.sha256(b"campsync-lock-fp\x00" + (code or "").encode("utf-8")).hexdigest()[:8]


@dataclass
class WristbandEvent:
    """One row of wristband_logs.reason."""

    outcome: str
    wristband_id: Optional[str] = None
    lock_code: Optional[str] = None
    data_hash: Optional[str] = None
    detail: Optional[str] = None

    def reason(self, max_len: int = REASON_MAX_LEN) -> str:
        """
        "<outcome> wb=.. fp=.. hash8=.. at=<station> detail=..".
        Only ``detail`` is cut to honour ``max_len``.
        """
        parts: List[str] = [(self.outcome or "").strip() or "unknown"]
        if self.wristband_id:
            parts.append(f"wb={self.wristband_id}")
        if self.lock_code:
            parts.append(f"fp={lock_code_fingerprint(self.lock_code)}")
        if self.data_hash:
            parts.append(f"hash8={self.data_hash[:8]}")
        parts.append(f"at={station_id()}")
        head = " ".join(parts)
        if not self.detail:
            return head[:max_len]

        detail = " ".join(str(self.detail).split())
        room = max_len - len(head) - len(" detail=")
        if room <= 3:
            return head[:max_len]
        if len(detail) > room:
            detail = detail[: room - 3] + "..."
        return f"{head} detail={detail}"
