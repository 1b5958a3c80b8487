from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import FormatError


LIST_DELIMITER = "|"

_REQUIRED_STR_KEYS = ("id", "fn", "ln", "dob", "st")


@dataclass
class WristbandRecord:
    id: str
    first_name: str
    last_name: str
    date_of_birth: str
    allergies: List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)
    swim_level: Optional[str] = None
    cabin: Optional[str] = None
    check_in_status: str = "checked-in"
    # Kept in memory only; never written to the tag.
    session_id: Optional[str] = None


@dataclass
class DecodedPayload:
    record: WristbandRecord
    generated_at: int


def _join(items: List[str]) -> str:
    return LIST_DELIMITER.join(items or [])


def _split(joined: Optional[str]) -> List[str]:
    if joined is None or not joined.strip():
        return []
    return joined.split(LIST_DELIMITER)


def now_ms() -> int:
    return int(time.time() * 1000)


def encode(record: WristbandRecord, timestamp_ms: Optional[int] = None) -> str:
    """
    Compact JSON for the tag. Items of ``allergies``/``medications`` must not
    contain ``|``; they are joined as-is.
    """
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    doc = {
        "id": record.id,
        "fn": record.first_name,
        "ln": record.last_name,
        "dob": record.date_of_birth,
        "al": _join(record.allergies),
        "md": _join(record.medications),
        "sw": record.swim_level,
        "cb": record.cabin,
        "st": record.check_in_status,
        "ts": int(timestamp_ms),
    }
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=True)


def _opt_str(doc: Dict[str, Any], key: str) -> Optional[str]:
    v = doc.get(key)
    if v is None or isinstance(v, str):
        return v
    raise FormatError(f"bad_field_type:{key}")


def decode(text: str) -> DecodedPayload:
    try:
        doc = json.loads(text)
    except (TypeError, ValueError) as e:
        raise FormatError(f"not_json:{e}")
    if not isinstance(doc, dict):
        raise FormatError("not_an_object")

    for k in _REQUIRED_STR_KEYS:
        if not isinstance(doc.get(k), str):
            raise FormatError(f"missing_field:{k}")

    ts = doc.get("ts")
    if isinstance(ts, bool) or not isinstance(ts, int):
        raise FormatError("missing_field:ts")

    record = WristbandRecord(
        id=doc["id"],
        first_name=doc["fn"],
        last_name=doc["ln"],
        date_of_birth=doc["dob"],
        allergies=_split(_opt_str(doc, "al")),
        medications=_split(_opt_str(doc, "md")),
        swim_level=_opt_str(doc, "sw"),
        cabin=_opt_str(doc, "cb"),
        check_in_status=doc["st"],
    )
    return DecodedPayload(record=record, generated_at=ts)
