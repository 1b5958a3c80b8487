import argparse
from datetime import datetime, timezone

from campsync.config import load_config
from campsync.db import connect, init_db
from campsync.errors import FormatError, IntegrityError, WristbandError
from campsync.log import configure_logging
from campsync.nfc import open_driver
from campsync.security import LockCodeStore
from campsync.session import build_orchestrator


def _print_result(r) -> None:
    rec = r.record
    written = datetime.fromtimestamp(r.generated_at / 1000.0, tz=timezone.utc).isoformat()
    print(f"wristband: {r.hardware_id}  ({'locked' if r.is_locked else 'unlocked'}, {r.payload_size} bytes)")
    print(f"  camper      = {rec.id}")
    print(f"  name        = {rec.first_name} {rec.last_name}")
    print(f"  dob         = {rec.date_of_birth}")
    print(f"  allergies   = {', '.join(rec.allergies) or 'none'}")
    print(f"  medications = {', '.join(rec.medications) or 'none'}")
    print(f"  swim level  = {rec.swim_level or '-'}")
    print(f"  cabin       = {rec.cabin or '-'}")
    print(f"  status      = {rec.check_in_status}")
    print(f"  written at  = {written}")


def main():
    parser = argparse.ArgumentParser(description="Read and verify a wristband")
    parser.add_argument("--config", default="config.yaml")
    args = parser.parse_args()

    cfg = load_config(args.config)
    configure_logging(cfg.log_level)
    conn = connect(cfg.db_path)
    init_db(conn)

    store = LockCodeStore(conn, cfg.wristband.default_lock_code, cfg.wristband.settings_key)
    orch = build_orchestrator(cfg, open_driver(cfg), store)

    print("Hold the wristband on the reader...")
    try:
        result = orch.read_tag()
    except (IntegrityError, FormatError) as e:
        print(f"[UNREADABLE] wristband is corrupted or was not written by this system: {e.message}")
        raise SystemExit(e.code)
    except WristbandError as e:
        print(f"[FAILED] {e.message}")
        raise SystemExit(e.code)

    if result.empty:
        print(f"[EMPTY] wristband {result.hardware_id} carries no camper data")
        return
    _print_result(result)


if __name__ == "__main__":
    main()
