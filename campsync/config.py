from __future__ import annotations
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .security.lock_code import DEFAULT_LOCK_CODE, validate_lock_code


# NTAG21x memory maps: user memory, CFG0 (holds AUTH0), PWD, PACK, last page.
CHIP_PROFILES: Dict[str, Dict[str, int]] = {
    "ntag213": {"user_start_page": 0x04, "user_end_page": 0x27, "auth0_page": 0x29,
                "pwd_page": 0x2B, "pack_page": 0x2C, "last_page": 0x2C},
    "ntag215": {"user_start_page": 0x04, "user_end_page": 0x81, "auth0_page": 0x83,
                "pwd_page": 0x85, "pack_page": 0x86, "last_page": 0x86},
    "ntag216": {"user_start_page": 0x04, "user_end_page": 0xE1, "auth0_page": 0xE3,
                "pwd_page": 0xE5, "pack_page": 0xE6, "last_page": 0xE6},
}

DEFAULT_CHIP = "ntag215"

_PAGE_KEYS = ("user_start_page", "user_end_page", "auth0_page", "pwd_page", "pack_page")


@dataclass
class NfcConfig:
    timeout_seconds: int = 10
    reader_filter: Optional[str] = None
    chip: str = DEFAULT_CHIP
    user_start_page: int = CHIP_PROFILES[DEFAULT_CHIP]["user_start_page"]
    user_end_page: int = CHIP_PROFILES[DEFAULT_CHIP]["user_end_page"]
    auth0_page: int = CHIP_PROFILES[DEFAULT_CHIP]["auth0_page"]
    pwd_page: int = CHIP_PROFILES[DEFAULT_CHIP]["pwd_page"]
    pack_page: int = CHIP_PROFILES[DEFAULT_CHIP]["pack_page"]
    auth0_protect_from: int = 0x04


@dataclass
class WristbandConfig:
    payload_budget: int = 500
    digest_prefix_len: int = 8
    default_lock_code: str = DEFAULT_LOCK_CODE
    settings_key: str = "global"


@dataclass
class AppConfig:
    db_path: str = "data/campsync.db"
    log_level: str = "INFO"
    nfc: NfcConfig = field(default_factory=NfcConfig)
    wristband: WristbandConfig = field(default_factory=WristbandConfig)


def _page(v: Any, default: int) -> int:
    if v is None:
        return default
    if isinstance(v, str):
        return int(v, 0)
    return int(v)


def check_nfc_pages(nfc: NfcConfig) -> None:
    """Config pages must sit past user memory and inside the chip."""
    last = CHIP_PROFILES[nfc.chip]["last_page"]
    if not nfc.user_start_page <= nfc.user_end_page < last:
        raise ValueError(f"bad_user_memory_pages:{nfc.chip}")
    for k in ("auth0_page", "pwd_page", "pack_page"):
        p = getattr(nfc, k)
        if p <= nfc.user_end_page or p > last:
            raise ValueError(f"{k}_outside_{nfc.chip}:{p:#04x}")


def load_config(path: str = "config.yaml") -> AppConfig:
    with open(path, "r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    nfc = raw.get("nfc", {}) or {}
    wb = raw.get("wristband", {}) or {}

    chip = str(nfc.get("chip") or DEFAULT_CHIP).lower()
    if chip not in CHIP_PROFILES:
        raise ValueError(f"unknown_chip:{chip}")
    profile = CHIP_PROFILES[chip]
    pages = {k: _page(nfc.get(k), profile[k]) for k in _PAGE_KEYS}

    d_wb = WristbandConfig()
    cfg = AppConfig(
        db_path=str(raw.get("db_path", "data/campsync.db")),
        log_level=str(raw.get("log_level", "INFO")),
        nfc=NfcConfig(
            timeout_seconds=int(nfc.get("timeout_seconds", 10)),
            reader_filter=nfc.get("reader_filter") or None,
            chip=chip,
            auth0_protect_from=_page(nfc.get("auth0_protect_from"), 0x04),
            **pages,
        ),
        wristband=WristbandConfig(
            payload_budget=int(wb.get("payload_budget", d_wb.payload_budget)),
            digest_prefix_len=int(wb.get("digest_prefix_len", d_wb.digest_prefix_len)),
            default_lock_code=str(wb.get("default_lock_code", d_wb.default_lock_code)),
            settings_key=str(wb.get("settings_key", d_wb.settings_key)),
        ),
    )

    check_nfc_pages(cfg.nfc)
    # A bad default would be persisted by reset_to_default and break password derivation.
    validate_lock_code(cfg.wristband.default_lock_code)
    return cfg
