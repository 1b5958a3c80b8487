import argparse

from campsync.checkin import check_out
from campsync.config import load_config
from campsync.db import connect, init_db
from campsync.errors import RecordUpdateError, WristbandError
from campsync.log import configure_logging
from campsync.nfc import open_driver
from campsync.security import LockCodeStore
from campsync.session import build_orchestrator


def main():
    parser = argparse.ArgumentParser(description="Check a camper out and erase their wristband")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--camper-id", required=True)
    args = parser.parse_args()

    cfg = load_config(args.config)
    configure_logging(cfg.log_level)
    conn = connect(cfg.db_path)
    init_db(conn)

    store = LockCodeStore(conn, cfg.wristband.default_lock_code, cfg.wristband.settings_key)
    orch = build_orchestrator(cfg, open_driver(cfg), store)

    print("Hold the wristband on the reader...")
    try:
        check_out(conn, orch, args.camper_id)
    except RecordUpdateError as e:
        print(f"[PARTIAL] wristband erased but camper record NOT updated: {e.message}")
        raise SystemExit(e.code)
    except WristbandError as e:
        print(f"[FAILED] {e.message}")
        raise SystemExit(e.code)

    print(f"[CHECKED OUT] camper={args.camper_id}")


if __name__ == "__main__":
    main()
