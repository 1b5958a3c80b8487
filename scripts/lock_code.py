import argparse
import getpass

from campsync.config import load_config
from campsync.db import connect, init_db
from campsync.errors import PersistenceError, ValidationError
from campsync.log import configure_logging
from campsync.security import LockCodeStore, lock_code_fingerprint


def main():
    parser = argparse.ArgumentParser(description="Show, rotate or reset the wristband lock code")
    parser.add_argument("--config", default="config.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)
    show = sub.add_parser("show")
    show.add_argument("--reveal", action="store_true", help="Print the code itself, not only its fingerprint")
    sub.add_parser("set")
    sub.add_parser("reset")
    args = parser.parse_args()

    cfg = load_config(args.config)
    configure_logging(cfg.log_level)
    conn = connect(cfg.db_path)
    init_db(conn)
    store = LockCodeStore(conn, cfg.wristband.default_lock_code, cfg.wristband.settings_key)

    if args.cmd == "show":
        code = store.get_current_code()
        print(f"lock_code_fp={lock_code_fingerprint(code)} default={code == cfg.wristband.default_lock_code}")
        if args.reveal:
            print(f"lock_code={code}")
        return

    try:
        if args.cmd == "set":
            new1 = getpass.getpass("Enter new lock code: ").strip()
            new2 = getpass.getpass("Re-enter new lock code: ").strip()
            if new1 != new2:
                raise SystemExit("lock_code_mismatch")
            store.set_code(new1)
        else:
            store.reset_to_default()
    except ValidationError as e:
        raise SystemExit(f"{e.code}: {e.message}")
    except PersistenceError as e:
        raise SystemExit(f"{e.code}: previous lock code still active ({e.message})")

    code = store.get_current_code()
    print(f"Lock code updated: lock_code_fp={lock_code_fingerprint(code)}")
    print("Wristbands written before this change still unlock only with the previous code.")


if __name__ == "__main__":
    main()
