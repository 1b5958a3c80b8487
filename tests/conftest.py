from typing import Dict, List, Optional

import pytest

from campsync.codec import WristbandRecord
from campsync.db import connect, init_db
from campsync.security import LockCodeStore
from campsync.session import TagSessionOrchestrator


class FakeDriver:
    """In-memory NfcDriver recording every call."""

    def __init__(self, payload: Optional[bytes] = None, hardware_id: Optional[str] = "04A1B2C3D4E5F6"):
        self.payload = payload
        self.hardware_id = hardware_id
        self.calls: List[str] = []
        self.raw_commands: List[bytes] = []
        self.fail: Dict[str, Exception] = {}
        self.open = False

    def _step(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    def acquire_session(self) -> None:
        self._step("acquire")
        self.open = True

    def release_session(self) -> None:
        self.calls.append("release")
        self.open = False

    def read_tag_bytes(self) -> Optional[bytes]:
        self._step("read")
        return self.payload

    def write_tag_bytes(self, data: bytes) -> None:
        self._step("write")
        self.payload = data or None

    def send_raw_command(self, command: bytes) -> bytes:
        self._step("raw")
        self.raw_commands.append(bytes(command))
        return b""

    def get_tag_hardware_id(self) -> Optional[str]:
        self._step("hardware_id")
        return self.hardware_id


class FakeReaderConnection:
    """
    ACR122U + NTAG215 tag: pseudo-APDU page access and
    InCommunicateThru raw commands.
    """

    def __init__(self, uid: bytes = bytes.fromhex("04A1B2C3D4E5F6"), raw_supported: bool = True,
                 pwd_page: int = 0x85, pack_page: int = 0x86):
        self.pages = bytearray((pack_page + 1) * 4)
        self.pwd_page = pwd_page
        self.pack_page = pack_page
        self.uid = uid
        self.raw_supported = raw_supported
        self.apdus: List[List[int]] = []
        self.disconnected = False

    def transmit(self, apdu):
        self.apdus.append(list(apdu))
        if apdu[:2] == [0xFF, 0xCA]:
            return list(self.uid), 0x90, 0x00
        if apdu[:2] == [0xFF, 0xB0]:
            page = apdu[3]
            return list(self.pages[page * 4: page * 4 + apdu[4]]), 0x90, 0x00
        if apdu[:2] == [0xFF, 0xD6]:
            page = apdu[3]
            self.pages[page * 4: page * 4 + 4] = bytes(apdu[5:9])
            return [], 0x90, 0x00
        if apdu[:4] == [0xFF, 0x00, 0x00, 0x00] and apdu[5:7] == [0xD4, 0x42]:
            if not self.raw_supported:
                return [], 0x63, 0x00
            cmd = apdu[7:]
            if cmd[0] == 0xA2:
                page = cmd[1]
                self.pages[page * 4: page * 4 + 4] = bytes(cmd[2:6])
                return [0xD5, 0x43, 0x00], 0x90, 0x00
            if cmd[0] == 0x1B:
                pwd = bytes(self.pages[self.pwd_page * 4: self.pwd_page * 4 + 4])
                if bytes(cmd[1:5]) == pwd:
                    return [0xD5, 0x43, 0x00] + list(self.pages[self.pack_page * 4: self.pack_page * 4 + 2]), 0x90, 0x00
                return [0xD5, 0x43, 0x01], 0x90, 0x00
        return [], 0x6A, 0x81

    def disconnect(self):
        self.disconnected = True


@pytest.fixture
def conn():
    c = connect(":memory:")
    init_db(c)
    yield c
    c.close()


@pytest.fixture
def store(conn):
    return LockCodeStore(conn)


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def orchestrator(driver, store):
    return TagSessionOrchestrator(driver, store)


@pytest.fixture
def ana():
    return WristbandRecord(
        id="c1",
        first_name="Ana",
        last_name="Lee",
        date_of_birth="2015-05-01",
        allergies=["peanuts"],
        medications=[],
        swim_level="beginner",
        cabin="B3",
        check_in_status="checked-in",
    )
