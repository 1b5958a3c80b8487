from __future__ import annotations

import os
import sqlite3
import time
from typing import Optional, Any, Dict, List


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS app_settings (
  id                  TEXT PRIMARY KEY,
  wristband_lock_code TEXT,
  updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS campers (
  id                  TEXT PRIMARY KEY,
  first_name          TEXT NOT NULL,
  last_name           TEXT NOT NULL,
  date_of_birth       TEXT NOT NULL,
  medical_info        TEXT,
  swim_level          TEXT,
  cabin_assignment    TEXT,
  session_id          TEXT,
  check_in_status     TEXT NOT NULL DEFAULT 'pending',
  wristband_id        TEXT,
  wristband_data_hash TEXT,
  last_check_in       INTEGER,
  updated_at          INTEGER NOT NULL DEFAULT (CAST(strftime('%s','now') AS INTEGER))
);

CREATE TABLE IF NOT EXISTS wristband_logs (
  id           INTEGER PRIMARY KEY AUTOINCREMENT,
  ts           TEXT NOT NULL DEFAULT (datetime('now')),
  camper_id    TEXT,
  wristband_id TEXT,
  operation    TEXT NOT NULL,
  decision     TEXT NOT NULL,
  reason       TEXT
);
"""

CAMPER_COLUMNS = (
    "id, first_name, last_name, date_of_birth, medical_info, swim_level, "
    "cabin_assignment, session_id, check_in_status, wristband_id, "
    "wristband_data_hash, last_check_in, updated_at"
)


def ensure_parent_dir(db_path: str) -> None:
    parent = os.path.dirname(db_path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def connect(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        ensure_parent_dir(db_path)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()


def get_setting(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute(
        "SELECT wristband_lock_code FROM app_settings WHERE id = ?",
        (key,),
    ).fetchone()
    return row["wristband_lock_code"] if row else None


def upsert_setting(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        """
        INSERT INTO app_settings(id, wristband_lock_code, updated_at)
        VALUES(?, ?, datetime('now'))
        ON CONFLICT(id) DO UPDATE SET
          wristband_lock_code=excluded.wristband_lock_code,
          updated_at=excluded.updated_at
        """,
        (key, value),
    )
    conn.commit()


def upsert_camper(
    conn: sqlite3.Connection,
    camper_id: str,
    first_name: str,
    last_name: str,
    date_of_birth: str,
    medical_info: Optional[str] = None,
    swim_level: Optional[str] = None,
    cabin_assignment: Optional[str] = None,
    session_id: Optional[str] = None,
    updated_at: Optional[int] = None,
) -> None:
    if updated_at is None:
        updated_at = int(time.time())
    conn.execute(
        """
        INSERT INTO campers(id, first_name, last_name, date_of_birth, medical_info,
                            swim_level, cabin_assignment, session_id, updated_at)
        VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
          first_name=excluded.first_name,
          last_name=excluded.last_name,
          date_of_birth=excluded.date_of_birth,
          medical_info=excluded.medical_info,
          swim_level=excluded.swim_level,
          cabin_assignment=excluded.cabin_assignment,
          session_id=excluded.session_id,
          updated_at=excluded.updated_at
        """,
        (camper_id, first_name, last_name, date_of_birth, medical_info,
         swim_level, cabin_assignment, session_id, int(updated_at)),
    )
    conn.commit()


def get_camper(conn: sqlite3.Connection, camper_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        f"SELECT {CAMPER_COLUMNS} FROM campers WHERE id = ?",
        (camper_id,),
    ).fetchone()
    return dict(row) if row else None


def list_wristbanded_campers(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = conn.execute(
        f"""
        SELECT {CAMPER_COLUMNS} FROM campers
        WHERE check_in_status = 'checked-in' AND wristband_id IS NOT NULL
        ORDER BY last_name, first_name
        """
    ).fetchall()
    return [dict(r) for r in rows]


def mark_checked_in(
    conn: sqlite3.Connection,
    camper_id: str,
    wristband_id: str,
    data_hash: str,
    now_epoch: Optional[int] = None,
) -> None:
    if now_epoch is None:
        now_epoch = int(time.time())
    cur = conn.execute(
        """
        UPDATE campers
        SET check_in_status='checked-in', wristband_id=?, wristband_data_hash=?, last_check_in=?
        WHERE id=?
        """,
        (wristband_id, data_hash, int(now_epoch), camper_id),
    )
    if cur.rowcount == 0:
        raise sqlite3.IntegrityError(f"unknown_camper:{camper_id}")
    conn.commit()


def mark_checked_out(conn: sqlite3.Connection, camper_id: str) -> None:
    cur = conn.execute(
        """
        UPDATE campers
        SET check_in_status='checked-out', wristband_id=NULL, wristband_data_hash=NULL
        WHERE id=?
        """,
        (camper_id,),
    )
    if cur.rowcount == 0:
        raise sqlite3.IntegrityError(f"unknown_camper:{camper_id}")
    conn.commit()


def log_wristband(
    conn: sqlite3.Connection,
    camper_id: Optional[str],
    wristband_id: Optional[str],
    operation: str,
    decision: str,
    reason: str,
) -> None:
    conn.execute(
        """
        INSERT INTO wristband_logs(camper_id, wristband_id, operation, decision, reason)
        VALUES(?, ?, ?, ?, ?)
        """,
        (camper_id, wristband_id, operation, decision, reason),
    )
    conn.commit()
