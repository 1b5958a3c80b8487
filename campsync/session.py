from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .codec import WristbandRecord, decode, encode, now_ms
from .errors import DriverError, SessionBusy, SizeExceeded, WristbandError
from .ndef import text_record, wrap_tlv
from .nfc import NfcDriver, NTAG_PWD_AUTH, NTAG_WRITE
from .security.integrity import DEFAULT_PREFIX_LEN, unwrap, wrap
from .security.lock_code import LockCodeStore, password_bytes


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAYLOAD_BUDGET = 500


class SessionState(enum.Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    FETCHING = "fetching"
    WRITING = "writing"
    READING = "reading"
    LOCKING = "locking"
    RELEASING = "releasing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TagProfile:
    """Config pages of the NTAG password extension. Defaults are NTAG215."""

    auth0_page: int = 0x83
    pwd_page: int = 0x85
    pack_page: int = 0x86
    auth0_protect_from: int = 0x04

    def cfg0(self, auth0: int) -> bytes:
        # CFG0 is MIRROR, RFUI, MIRROR_PAGE, AUTH0. 0x04 is the factory MIRROR byte.
        return bytes([0x04, 0x00, 0x00, auth0])


@dataclass
class TagReadResult:
    empty: bool
    record: Optional[WristbandRecord] = None
    generated_at: Optional[int] = None
    is_locked: bool = False
    hardware_id: Optional[str] = None
    payload_size: int = 0


class TagSessionOrchestrator:
    """
    Runs one physical wristband interaction at a time over an NfcDriver.

    Acquisition, primary read and primary write failures abort the operation
    as DriverError. Password set/unlock/clear steps are best-effort. The
    driver session is released on every path.
    """

    def __init__(
        self,
        driver: NfcDriver,
        lock_codes: LockCodeStore,
        payload_budget: int = DEFAULT_PAYLOAD_BUDGET,
        prefix_len: int = DEFAULT_PREFIX_LEN,
        profile: Optional[TagProfile] = None,
    ):
        self.driver = driver
        self.lock_codes = lock_codes
        self.payload_budget = payload_budget
        self.prefix_len = prefix_len
        self.profile = profile or TagProfile()
        self.state = SessionState.IDLE
        self._busy = threading.Lock()

    def _enter(self, state: SessionState) -> None:
        logger.debug("tag session %s -> %s", self.state.value, state.value)
        self.state = state

    def _driver_call(self, step: str, fn: Callable[..., T], *args) -> T:
        try:
            return fn(*args)
        except WristbandError:
            raise
        except Exception as e:
            raise DriverError(f"{step}_failed:{e}")

    def _best_effort(self, step: str, fn: Callable[..., T], *args) -> Optional[T]:
        try:
            return self._driver_call(step, fn, *args)
        except DriverError as e:
            logger.warning("best-effort step %s failed: %s", step, e.message)
            return None

    def _open(self) -> None:
        if not self._busy.acquire(blocking=False):
            raise SessionBusy("tag_session_in_progress")
        self._enter(SessionState.ACQUIRING)
        try:
            self._driver_call("acquire", self.driver.acquire_session)
        except BaseException:
            self._close(False)
            raise

    def _close(self, ok: bool) -> None:
        self._enter(SessionState.RELEASING)
        try:
            self.driver.release_session()
        except Exception as e:
            logger.warning("tag session release failed: %s", e)
        finally:
            self._enter(SessionState.DONE if ok else SessionState.FAILED)
            self._busy.release()

    def build_payload(self, record: WristbandRecord, code: str, timestamp_ms: Optional[int] = None) -> str:
        """
        Returns the wrapped payload text. Raises SizeExceeded when it is over
        the budget, or when its NDEF image does not fit the driver's user memory.
        """
        payload = wrap(encode(record, timestamp_ms), code, self.prefix_len)
        if len(payload) > self.payload_budget:
            raise SizeExceeded(len(payload), self.payload_budget)
        capacity = getattr(self.driver, "capacity", None)
        if capacity is not None:
            image = len(wrap_tlv(text_record(payload)))
            if image > capacity:
                raise SizeExceeded(image, capacity)
        return payload

    def _protect(self, pwd: bytes) -> None:
        p = self.profile
        steps = [
            ("set_password", bytes([NTAG_WRITE, p.pwd_page]) + pwd),
            ("set_pack", bytes([NTAG_WRITE, p.pack_page, pwd[0], pwd[1], 0x00, 0x00])),
            ("set_auth0", bytes([NTAG_WRITE, p.auth0_page]) + p.cfg0(p.auth0_protect_from)),
        ]
        for step, cmd in steps:
            if self._best_effort(step, self.driver.send_raw_command, cmd) is None:
                logger.warning("wristband left without password protection")
                return
        logger.info("wristband password-protected")

    def program_tag(self, record: WristbandRecord, timestamp_ms: Optional[int] = None) -> str:
        """
        Writes ``record`` and password-protects the tag. Returns the wristband
        id: the tag UID, or "WB-<ms>" when the reader cannot report one.
        """
        # Size is checked before the transceiver is claimed.
        code = self.lock_codes.get_current_code()
        payload = self.build_payload(record, code, timestamp_ms)
        logger.info("programming wristband for camper %s (%d bytes)", record.id, len(payload))

        self._open()
        ok = False
        try:
            self._enter(SessionState.FETCHING)
            pwd = password_bytes(code)

            self._enter(SessionState.WRITING)
            self._driver_call("write", self.driver.write_tag_bytes, payload.encode("ascii"))

            self._enter(SessionState.LOCKING)
            self._protect(pwd)

            hw_id = self._best_effort("hardware_id", self.driver.get_tag_hardware_id)
            wristband_id = hw_id or f"WB-{now_ms()}"
            ok = True
            return wristband_id
        finally:
            self._close(ok)

    def read_tag(self) -> TagReadResult:
        self._open()
        ok = False
        try:
            self._enter(SessionState.READING)
            raw = self._driver_call("read", self.driver.read_tag_bytes)
            hw_id = self._best_effort("hardware_id", self.driver.get_tag_hardware_id)
            if not raw:
                logger.info("wristband is empty")
                ok = True
                return TagReadResult(empty=True, hardware_id=hw_id)

            text = raw.decode("utf-8", errors="replace")
            code = self.lock_codes.get_current_code()
            plain = unwrap(text, code, self.prefix_len)
            decoded = decode(plain)
            ok = True
            return TagReadResult(
                empty=False,
                record=decoded.record,
                generated_at=decoded.generated_at,
                is_locked=True,
                hardware_id=hw_id,
                payload_size=len(raw),
            )
        finally:
            self._close(ok)

    def erase_tag(self) -> None:
        self._open()
        ok = False
        try:
            self._enter(SessionState.FETCHING)
            pwd = password_bytes(self.lock_codes.get_current_code())

            self._enter(SessionState.LOCKING)
            if self._best_effort("unlock", self.driver.send_raw_command, bytes([NTAG_PWD_AUTH]) + pwd) is not None:
                logger.info("wristband unlocked")

            self._enter(SessionState.WRITING)
            self._driver_call("erase", self.driver.write_tag_bytes, b"")

            self._enter(SessionState.LOCKING)
            clear = bytes([NTAG_WRITE, self.profile.auth0_page]) + self.profile.cfg0(0xFF)
            if self._best_effort("clear_password", self.driver.send_raw_command, clear) is not None:
                logger.info("wristband password protection removed")
            ok = True
        finally:
            self._close(ok)


def build_orchestrator(cfg, driver: NfcDriver, lock_codes: LockCodeStore) -> TagSessionOrchestrator:
    return TagSessionOrchestrator(
        driver,
        lock_codes,
        payload_budget=cfg.wristband.payload_budget,
        prefix_len=cfg.wristband.digest_prefix_len,
        profile=TagProfile(
            auth0_page=cfg.nfc.auth0_page,
            pwd_page=cfg.nfc.pwd_page,
            pack_page=cfg.nfc.pack_page,
            auth0_protect_from=cfg.nfc.auth0_protect_from,
        ),
    )
