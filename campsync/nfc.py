from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

from smartcard.CardType import AnyCardType
from smartcard.CardRequest import CardRequest
from smartcard.Exceptions import CardConnectionException, CardRequestTimeoutException, NoCardException
from smartcard.System import readers as list_readers

from .errors import DriverError, FormatError
from .ndef import NdefError, parse_text_record, text_record, unwrap_tlv, wrap_tlv, PAGE_SIZE


logger = logging.getLogger(__name__)

# ACR122U / PN532 pseudo-APDUs
APDU_GET_UID = [0xFF, 0xCA, 0x00, 0x00, 0x00]
CLA_PSEUDO = 0xFF
INS_READ_BINARY = 0xB0
INS_UPDATE_BINARY = 0xD6
PN532_IN_COMMUNICATE_THRU = [0xD4, 0x42]
PN532_IN_COMMUNICATE_THRU_RESP = [0xD5, 0x43]

READ_CHUNK = 16

# NTAG21x native commands
NTAG_WRITE = 0xA2
NTAG_PWD_AUTH = 0x1B


class NfcDriver(ABC):
    """
    One tag interaction at a time: acquire, any number of reads/writes/raw
    commands, release.
    """

    @abstractmethod
    def acquire_session(self) -> None:
        pass

    @abstractmethod
    def release_session(self) -> None:
        """Idempotent."""

    @abstractmethod
    def read_tag_bytes(self) -> Optional[bytes]:
        """Payload bytes, or None when the tag carries no payload."""

    @abstractmethod
    def write_tag_bytes(self, data: bytes) -> None:
        pass

    @abstractmethod
    def send_raw_command(self, command: bytes) -> bytes:
        pass

    @abstractmethod
    def get_tag_hardware_id(self) -> Optional[str]:
        pass

    @property
    def capacity(self) -> Optional[int]:
        """User memory in bytes, or None when the driver cannot tell."""
        return None


def _default_connection_factory(timeout_seconds: int, reader_filter: Optional[str]):
    rdrs = None
    if reader_filter:
        rdrs = [r for r in list_readers() if reader_filter.lower() in str(r).lower()]
        if not rdrs:
            raise DriverError(f"no_reader_matching:{reader_filter}")
    req = CardRequest(timeout=timeout_seconds, cardType=AnyCardType(), readers=rdrs)
    svc = req.waitforcard()
    conn = svc.connection
    conn.connect()
    return conn


class PcscNfcDriver(NfcDriver):
    """
    NTAG21x wristbands through a PC/SC contactless reader (ACR122U class).

    Page reads/writes use the reader's READ/UPDATE BINARY pseudo-APDUs; raw tag
    commands (PWD_AUTH, config page WRITE) go through PN532 InCommunicateThru.
    """

    def __init__(
        self,
        timeout_seconds: int = 10,
        reader_filter: Optional[str] = None,
        user_start_page: int = 0x04,
        user_end_page: int = 0x81,
        connection_factory: Optional[Callable[[int, Optional[str]], object]] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.reader_filter = reader_filter
        self.user_start_page = user_start_page
        self.user_end_page = user_end_page
        self._factory = connection_factory or _default_connection_factory
        self._conn = None

    @property
    def conn(self):
        if self._conn is None:
            raise DriverError("no_session")
        return self._conn

    @property
    def capacity(self) -> int:
        return (self.user_end_page - self.user_start_page + 1) * PAGE_SIZE

    def acquire_session(self) -> None:
        if self._conn is not None:
            raise DriverError("session_already_open")
        try:
            self._conn = self._factory(self.timeout_seconds, self.reader_filter)
        except CardRequestTimeoutException:
            raise DriverError("no_tag_presented")
        except (CardConnectionException, NoCardException) as e:
            raise DriverError(f"connect_failed:{e}")
        logger.debug("tag session acquired")

    def release_session(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.disconnect()
        except CardConnectionException as e:
            logger.warning("disconnect failed: %s", e)
        logger.debug("tag session released")

    def _transmit(self, apdu: List[int]) -> Tuple[bytes, int, int]:
        try:
            data, sw1, sw2 = self.conn.transmit(apdu)
        except (CardConnectionException, NoCardException) as e:
            raise DriverError(f"transmit_failed:{e}")
        return bytes(data), sw1, sw2

    def read_pages(self, page: int) -> bytes:
        apdu = [CLA_PSEUDO, INS_READ_BINARY, 0x00, page & 0xFF, READ_CHUNK]
        data, sw1, sw2 = self._transmit(apdu)
        if (sw1, sw2) != (0x90, 0x00):
            raise DriverError(f"read_sw={sw1:02X}{sw2:02X}@{page:02X}")
        if len(data) != READ_CHUNK:
            raise DriverError(f"read_len@{page:02X}")
        return data

    def write_page(self, page: int, word4: bytes) -> None:
        if len(word4) != PAGE_SIZE:
            raise DriverError("write_page_len")
        apdu = [CLA_PSEUDO, INS_UPDATE_BINARY, 0x00, page & 0xFF, PAGE_SIZE] + list(word4)
        _, sw1, sw2 = self._transmit(apdu)
        if (sw1, sw2) != (0x90, 0x00):
            raise DriverError(f"write_sw={sw1:02X}{sw2:02X}@{page:02X}")

    def read_user_memory(self) -> bytes:
        out = b""
        for page in range(self.user_start_page, self.user_end_page + 1, READ_CHUNK // PAGE_SIZE):
            out += self.read_pages(page)
        return out[: self.capacity]

    def read_tag_bytes(self) -> Optional[bytes]:
        memory = self.read_user_memory()
        try:
            message = unwrap_tlv(memory)
            if message is None:
                return None
            text = parse_text_record(message)
        except NdefError as e:
            raise FormatError(f"bad_ndef:{e}")
        if not text:
            return None
        return text.encode("utf-8")

    def write_tag_bytes(self, data: bytes) -> None:
        try:
            image = wrap_tlv(text_record(data.decode("utf-8")))
        except (NdefError, UnicodeDecodeError) as e:
            raise DriverError(f"ndef_encode_failed:{e}")
        if len(image) > self.capacity:
            raise DriverError(f"tag_capacity_exceeded:{len(image)}>{self.capacity}")
        for i in range(0, len(image), PAGE_SIZE):
            self.write_page(self.user_start_page + i // PAGE_SIZE, image[i:i + PAGE_SIZE])

    def send_raw_command(self, command: bytes) -> bytes:
        body = PN532_IN_COMMUNICATE_THRU + list(command)
        apdu = [CLA_PSEUDO, 0x00, 0x00, 0x00, len(body)] + body
        data, sw1, sw2 = self._transmit(apdu)
        if (sw1, sw2) != (0x90, 0x00):
            raise DriverError(f"raw_sw={sw1:02X}{sw2:02X}")
        if len(data) < 3 or list(data[:2]) != PN532_IN_COMMUNICATE_THRU_RESP:
            raise DriverError("raw_bad_response")
        if data[2] != 0x00:
            raise DriverError(f"raw_tag_status={data[2]:02X}")
        return data[3:]

    def get_tag_hardware_id(self) -> Optional[str]:
        data, sw1, sw2 = self._transmit(APDU_GET_UID)
        if (sw1, sw2) != (0x90, 0x00) or not data:
            return None
        return data.hex().upper()


def open_driver(cfg) -> PcscNfcDriver:
    """PC/SC driver from an AppConfig."""
    return PcscNfcDriver(
        timeout_seconds=cfg.nfc.timeout_seconds,
        reader_filter=cfg.nfc.reader_filter,
        user_start_page=cfg.nfc.user_start_page,
        user_end_page=cfg.nfc.user_end_page,
    )
