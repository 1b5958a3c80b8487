from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from .codec import LIST_DELIMITER, WristbandRecord, encode
from .db import get_camper, list_wristbanded_campers, log_wristband, mark_checked_in, mark_checked_out
from .errors import FormatError, RecordUpdateError, UnknownCamper, WristbandError
from .security import WristbandEvent
from .session import TagSessionOrchestrator


logger = logging.getLogger(__name__)


@dataclass
class OutdatedWristband:
    camper_id: str
    first_name: str
    last_name: str
    wristband_id: str
    stored_hash: Optional[str]
    current_hash: str
    hash_mismatch: bool
    updated_after_check_in: bool


def sanitize_items(values: Iterable[Any]) -> List[str]:
    out: List[str] = []
    for v in values or []:
        s = str(v).replace(LIST_DELIMITER, "/").strip()
        if s:
            out.append(s)
    return out


def _req_str(row: Dict[str, Any], key: str) -> str:
    v = row.get(key)
    if not isinstance(v, str) or not v.strip():
        raise FormatError(f"camper_field_missing:{key}")
    return v


def _opt_str(row: Dict[str, Any], key: str) -> Optional[str]:
    v = row.get(key)
    if v is None or v == "":
        return None
    if not isinstance(v, str):
        raise FormatError(f"camper_field_type:{key}")
    return v


def _medical_lists(raw: Any) -> Dict[str, List[str]]:
    if raw is None or raw == "":
        return {"allergies": [], "medications": []}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise FormatError(f"medical_info_not_json:{e}")
    if not isinstance(raw, dict):
        raise FormatError("medical_info_not_object")

    out: Dict[str, List[str]] = {}
    for key in ("allergies", "medications"):
        items = raw.get(key)
        if items is None:
            items = []
        if not isinstance(items, list):
            raise FormatError(f"medical_info_{key}_not_list")
        out[key] = sanitize_items(items)
    return out


def parse_camper_row(row: Dict[str, Any]) -> WristbandRecord:
    """
    Camper row -> WristbandRecord. Rejects rows whose shape does not match
    instead of writing partial data to a wristband.
    """
    if not isinstance(row, dict):
        raise FormatError("camper_row_not_mapping")

    dob = _req_str(row, "date_of_birth")
    try:
        date.fromisoformat(dob)
    except ValueError:
        raise FormatError(f"camper_bad_date_of_birth:{dob}")

    medical = _medical_lists(row.get("medical_info"))
    return WristbandRecord(
        id=_req_str(row, "id"),
        first_name=_req_str(row, "first_name"),
        last_name=_req_str(row, "last_name"),
        date_of_birth=dob,
        allergies=medical["allergies"],
        medications=medical["medications"],
        swim_level=_opt_str(row, "swim_level"),
        cabin=_opt_str(row, "cabin_assignment"),
        check_in_status=_opt_str(row, "check_in_status") or "pending",
        session_id=_opt_str(row, "session_id"),
    )


def record_data_hash(record: WristbandRecord) -> str:
    """Hash of the on-tag content, independent of when it was written."""
    return hashlib.sha256(encode(record, timestamp_ms=0).encode("utf-8")).hexdigest()


def _log(conn, camper_id, wristband_id, operation, decision, reason) -> None:
    try:
        log_wristband(conn, camper_id, wristband_id, operation, decision, reason)
    except sqlite3.Error as e:
        logger.warning("wristband_logs insert failed: %s", e)


def _load(conn, camper_id: str, operation: str) -> WristbandRecord:
    row = get_camper(conn, camper_id)
    if not row:
        _log(conn, camper_id, None, operation, "DENY", "unknown_camper")
        raise UnknownCamper(f"unknown_camper:{camper_id}")
    try:
        return parse_camper_row(row)
    except FormatError as e:
        _log(conn, camper_id, None, operation, "DENY", WristbandEvent(e.code, detail=e.message).reason())
        raise


def check_in(conn, orchestrator: TagSessionOrchestrator, camper_id: str) -> str:
    """
    Programs a wristband for the camper, then records the check-in.
    The camper row is only touched after the physical write succeeded.
    """
    record = replace(_load(conn, camper_id, "check_in"), check_in_status="checked-in")

    try:
        wristband_id = orchestrator.program_tag(record)
    except WristbandError as e:
        _log(conn, camper_id, None, "check_in", "DENY", WristbandEvent(e.code, detail=e.message).reason())
        raise

    data_hash = record_data_hash(record)
    try:
        mark_checked_in(conn, camper_id, wristband_id, data_hash, now_epoch=int(time.time()))
    except sqlite3.Error as e:
        logger.error(
            "wristband %s programmed but check-in not recorded: %s", wristband_id, e,
            extra={"event": "check_in", "camper_id": camper_id},
        )
        _log(conn, camper_id, wristband_id, "check_in", "PARTIAL", WristbandEvent("record_update_failed", wristband_id, detail=str(e)).reason())
        raise RecordUpdateError(f"wristband_programmed_record_not_updated:{e}", wristband_id=wristband_id)

    event = WristbandEvent("checked_in", wristband_id, lock_code=orchestrator.lock_codes.get_current_code(), data_hash=data_hash)
    _log(conn, camper_id, wristband_id, "check_in", "ALLOW", event.reason())
    logger.info("checked in with wristband %s", wristband_id, extra={"event": "check_in", "camper_id": camper_id})
    return wristband_id


def check_out(conn, orchestrator: TagSessionOrchestrator, camper_id: str) -> None:
    """Erases the wristband, then records the check-out."""
    row = get_camper(conn, camper_id)
    if not row:
        _log(conn, camper_id, None, "check_out", "DENY", "unknown_camper")
        raise UnknownCamper(f"unknown_camper:{camper_id}")
    wristband_id = row.get("wristband_id")

    try:
        orchestrator.erase_tag()
    except WristbandError as e:
        _log(conn, camper_id, wristband_id, "check_out", "DENY", WristbandEvent(e.code, wristband_id, detail=e.message).reason())
        raise

    try:
        mark_checked_out(conn, camper_id)
    except sqlite3.Error as e:
        logger.error(
            "wristband erased but check-out not recorded: %s", e,
            extra={"event": "check_out", "camper_id": camper_id},
        )
        _log(conn, camper_id, wristband_id, "check_out", "PARTIAL", WristbandEvent("record_update_failed", wristband_id, detail=str(e)).reason())
        raise RecordUpdateError(f"wristband_erased_record_not_updated:{e}", wristband_id=wristband_id)

    _log(conn, camper_id, wristband_id, "check_out", "ALLOW", WristbandEvent("checked_out", wristband_id).reason())
    logger.info("checked out", extra={"event": "check_out", "camper_id": camper_id})


def find_outdated_wristbands(conn) -> List[OutdatedWristband]:
    """
    Checked-in campers whose wristband no longer matches their record.
    """
    out: List[OutdatedWristband] = []
    for row in list_wristbanded_campers(conn):
        try:
            record = replace(parse_camper_row(row), check_in_status="checked-in")
        except FormatError as e:
            logger.warning("skipping camper %s: %s", row.get("id"), e.message)
            continue

        current = record_data_hash(record)
        stored = row.get("wristband_data_hash")
        hash_mismatch = bool(stored) and stored != current

        last_check_in = row.get("last_check_in")
        updated_at = row.get("updated_at")
        updated_after = (
            last_check_in is not None and updated_at is not None and int(updated_at) > int(last_check_in)
        )

        if hash_mismatch or updated_after:
            out.append(
                OutdatedWristband(
                    camper_id=record.id,
                    first_name=record.first_name,
                    last_name=record.last_name,
                    wristband_id=row["wristband_id"],
                    stored_hash=stored,
                    current_hash=current,
                    hash_mismatch=hash_mismatch,
                    updated_after_check_in=updated_after,
                )
            )
    return out
