import argparse

from campsync.checkin import find_outdated_wristbands
from campsync.config import load_config
from campsync.db import connect, init_db


def main():
    parser = argparse.ArgumentParser(description="List checked-in campers whose wristband needs reprogramming")
    parser.add_argument("--config", default="config.yaml")
    args = parser.parse_args()

    cfg = load_config(args.config)
    conn = connect(cfg.db_path)
    init_db(conn)

    outdated = find_outdated_wristbands(conn)
    if not outdated:
        print("All wristbands are up to date.")
        return
    for o in outdated:
        why = []
        if o.hash_mismatch:
            why.append("data_changed")
        if o.updated_after_check_in:
            why.append("updated_after_check_in")
        print(f"{o.camper_id}  {o.first_name} {o.last_name}  wristband={o.wristband_id}  reason={','.join(why)}")
    print(f"{len(outdated)} wristband(s) outdated")


if __name__ == "__main__":
    main()
