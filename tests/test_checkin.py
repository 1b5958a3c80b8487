import json
import sqlite3

import pytest

from campsync.checkin import (
    check_in,
    check_out,
    find_outdated_wristbands,
    parse_camper_row,
    record_data_hash,
    sanitize_items,
)
from campsync.db import get_camper, upsert_camper
from campsync.errors import DriverError, FormatError, RecordUpdateError, UnknownCamper
from campsync.security import lock_code_fingerprint
from campsync.security.lock_code import DEFAULT_LOCK_CODE


def _add_ana(conn, **overrides):
    fields = dict(
        camper_id="c1",
        first_name="Ana",
        last_name="Lee",
        date_of_birth="2015-05-01",
        medical_info=json.dumps({"allergies": ["peanuts"], "medications": []}),
        swim_level="beginner",
        cabin_assignment="B3",
        session_id="summer-1",
        updated_at=1000,
    )
    fields.update(overrides)
    upsert_camper(conn, **fields)


def _logs(conn):
    return [dict(r) for r in conn.execute("SELECT operation, decision, reason FROM wristband_logs ORDER BY id")]


def test_parse_camper_row(conn):
    _add_ana(conn)
    rec = parse_camper_row(get_camper(conn, "c1"))
    assert rec.allergies == ["peanuts"]
    assert rec.medications == []
    assert rec.cabin == "B3"
    assert rec.session_id == "summer-1"


@pytest.mark.parametrize(
    "row",
    [
        {"id": "c1", "first_name": "A", "last_name": "B"},
        {"id": "c1", "first_name": "A", "last_name": "B", "date_of_birth": "05/01/2015"},
        {"id": "c1", "first_name": "A", "last_name": "B", "date_of_birth": "2015-05-01", "medical_info": "{oops"},
        {"id": "c1", "first_name": "A", "last_name": "B", "date_of_birth": "2015-05-01", "medical_info": '{"allergies": "peanuts"}'},
        {"id": 7, "first_name": "A", "last_name": "B", "date_of_birth": "2015-05-01"},
    ],
)
def test_parse_camper_row_rejects_bad_shapes(row):
    with pytest.raises(FormatError):
        parse_camper_row(row)


def test_sanitize_items_strips_delimiter():
    assert sanitize_items(["tree nuts|peanuts", "  ", " latex "]) == ["tree nuts/peanuts", "latex"]


def test_check_in_programs_then_updates(conn, orchestrator, driver):
    _add_ana(conn)
    wid = check_in(conn, orchestrator, "c1")
    row = get_camper(conn, "c1")
    assert row["check_in_status"] == "checked-in"
    assert row["wristband_id"] == wid
    assert row["wristband_data_hash"] == record_data_hash(orchestrator.read_tag().record)
    assert _logs(conn)[-1]["decision"] == "ALLOW"
    reason = _logs(conn)[-1]["reason"]
    assert reason.startswith(f"checked_in wb={wid} fp={lock_code_fingerprint(DEFAULT_LOCK_CODE)} hash8=")
    assert DEFAULT_LOCK_CODE not in reason


def test_failed_write_leaves_record_untouched(conn, orchestrator, driver):
    _add_ana(conn)
    driver.fail["write"] = DriverError("tag lost")
    with pytest.raises(DriverError):
        check_in(conn, orchestrator, "c1")
    row = get_camper(conn, "c1")
    assert row["check_in_status"] == "pending"
    assert row["wristband_id"] is None
    assert _logs(conn)[-1]["decision"] == "DENY"
    assert _logs(conn)[-1]["reason"].endswith("detail=tag lost")


def test_record_update_failure_after_write_is_reported(conn, orchestrator, driver, monkeypatch):
    _add_ana(conn)

    def boom(*a, **kw):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr("campsync.checkin.mark_checked_in", boom)
    with pytest.raises(RecordUpdateError) as ei:
        check_in(conn, orchestrator, "c1")
    assert ei.value.wristband_id == "04A1B2C3D4E5F6"
    assert driver.payload is not None
    assert _logs(conn)[-1]["decision"] == "PARTIAL"


def test_unknown_camper(conn, orchestrator, driver):
    with pytest.raises(UnknownCamper):
        check_in(conn, orchestrator, "nobody")
    assert driver.calls == []


def test_check_out_erases_and_clears(conn, orchestrator, driver):
    _add_ana(conn)
    check_in(conn, orchestrator, "c1")
    check_out(conn, orchestrator, "c1")
    row = get_camper(conn, "c1")
    assert row["check_in_status"] == "checked-out"
    assert row["wristband_id"] is None
    assert driver.payload is None


def test_check_out_record_failure(conn, orchestrator, driver, monkeypatch):
    _add_ana(conn)
    check_in(conn, orchestrator, "c1")

    def boom(*a, **kw):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr("campsync.checkin.mark_checked_out", boom)
    with pytest.raises(RecordUpdateError):
        check_out(conn, orchestrator, "c1")
    assert driver.payload is None


def test_outdated_wristbands(conn, orchestrator):
    _add_ana(conn)
    _add_ana(conn, camper_id="c2", first_name="Bo")
    check_in(conn, orchestrator, "c1")
    check_in(conn, orchestrator, "c2")
    assert find_outdated_wristbands(conn) == []

    row = get_camper(conn, "c1")
    _add_ana(
        conn,
        medical_info=json.dumps({"allergies": ["peanuts", "bees"], "medications": []}),
        updated_at=row["last_check_in"],
    )
    outdated = find_outdated_wristbands(conn)
    assert [o.camper_id for o in outdated] == ["c1"]
    assert outdated[0].hash_mismatch is True
    assert outdated[0].updated_after_check_in is False

    row2 = get_camper(conn, "c2")
    _add_ana(conn, camper_id="c2", first_name="Bo", updated_at=row2["last_check_in"] + 60)
    ids = sorted(o.camper_id for o in find_outdated_wristbands(conn))
    assert ids == ["c1", "c2"]
