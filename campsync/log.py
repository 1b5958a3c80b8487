from __future__ import annotations

import logging


class _SafeFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "event"):
            record.event = "system"
        if not hasattr(record, "camper_id"):
            record.camper_id = "-"
        return super().format(record)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(
        _SafeFormatter(
            "%(asctime)s %(levelname)s %(name)s "
            "event=%(event)s camper_id=%(camper_id)s %(message)s"
        )
    )
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)
