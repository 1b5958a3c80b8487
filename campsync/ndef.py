"""
NDEF Text records in the Type 2 Tag memory layout used by NTAG21x wristbands.

User memory starting at page 4 holds a sequence of TLV blocks; the wristband
payload lives in a single NDEF Message TLV (0x03) holding one well-known Text
record, followed by a Terminator TLV (0xFE).
"""
from __future__ import annotations

from typing import Optional, Tuple


TLV_NULL = 0x00
TLV_LOCK_CONTROL = 0x01
TLV_MEMORY_CONTROL = 0x02
TLV_NDEF_MESSAGE = 0x03
TLV_PROPRIETARY = 0xFD
TLV_TERMINATOR = 0xFE

TNF_WELL_KNOWN = 0x01
RTD_TEXT = b"T"

FLAG_MB = 0x80
FLAG_ME = 0x40
FLAG_CF = 0x20
FLAG_SR = 0x10
FLAG_IL = 0x08

PAGE_SIZE = 4


class NdefError(ValueError):
    pass


def text_record(text: str, lang: str = "en") -> bytes:
    """
    Single-record NDEF message carrying ``text`` as a UTF-8 Text record.
    """
    lang_b = lang.encode("ascii")
    if len(lang_b) > 0x3F:
        raise NdefError("lang_too_long")
    payload = bytes([len(lang_b)]) + lang_b + text.encode("utf-8")

    if len(payload) < 256:
        header = bytes([FLAG_MB | FLAG_ME | FLAG_SR | TNF_WELL_KNOWN, len(RTD_TEXT), len(payload)])
    else:
        header = bytes([FLAG_MB | FLAG_ME | TNF_WELL_KNOWN, len(RTD_TEXT)]) + len(payload).to_bytes(4, "big")
    return header + RTD_TEXT + payload


def _read_record(message: bytes, off: int) -> Tuple[int, bytes, bytes, int]:
    if off + 3 > len(message):
        raise NdefError("truncated_record_header")
    flags = message[off]
    type_len = message[off + 1]
    off += 2
    if flags & FLAG_SR:
        payload_len = message[off]
        off += 1
    else:
        if off + 4 > len(message):
            raise NdefError("truncated_record_header")
        payload_len = int.from_bytes(message[off:off + 4], "big")
        off += 4
    id_len = 0
    if flags & FLAG_IL:
        if off >= len(message):
            raise NdefError("truncated_record_header")
        id_len = message[off]
        off += 1
    rtype = message[off:off + type_len]
    off += type_len + id_len
    payload = message[off:off + payload_len]
    if len(rtype) != type_len or len(payload) != payload_len:
        raise NdefError("truncated_record")
    return flags, rtype, payload, off + payload_len


def parse_text_record(message: bytes) -> str:
    """
    Text of the first record of an NDEF message, which must be a well-known
    Text record.
    """
    if not message:
        raise NdefError("empty_message")
    flags, rtype, payload, _ = _read_record(message, 0)
    if flags & FLAG_CF:
        raise NdefError("chunked_record_unsupported")
    if (flags & 0x07) != TNF_WELL_KNOWN or rtype != RTD_TEXT:
        raise NdefError(f"not_a_text_record:tnf={flags & 0x07} type={rtype!r}")
    if not payload:
        raise NdefError("empty_text_payload")

    status = payload[0]
    lang_len = status & 0x3F
    if 1 + lang_len > len(payload):
        raise NdefError("bad_lang_length")
    body = payload[1 + lang_len:]
    encoding = "utf-16" if status & 0x80 else "utf-8"
    try:
        return body.decode(encoding)
    except UnicodeDecodeError as e:
        raise NdefError(f"bad_text_encoding:{e}")


def wrap_tlv(message: bytes) -> bytes:
    """
    NDEF Message TLV + Terminator, padded to whole pages.
    """
    n = len(message)
    if n < 0xFF:
        head = bytes([TLV_NDEF_MESSAGE, n])
    elif n <= 0xFFFE:
        head = bytes([TLV_NDEF_MESSAGE, 0xFF]) + n.to_bytes(2, "big")
    else:
        raise NdefError("message_too_long")
    out = head + message + bytes([TLV_TERMINATOR])
    pad = (-len(out)) % PAGE_SIZE
    return out + b"\x00" * pad


def unwrap_tlv(memory: bytes) -> Optional[bytes]:
    """
    The NDEF message held in tag user memory, or None when the tag carries
    no NDEF message (blank memory, terminator first, zero-length message).
    """
    off = 0
    n = len(memory)
    while off < n:
        t = memory[off]
        off += 1
        if t == TLV_NULL:
            continue
        if t == TLV_TERMINATOR:
            return None
        if off >= n:
            raise NdefError("truncated_tlv")
        length = memory[off]
        off += 1
        if length == 0xFF:
            if off + 2 > n:
                raise NdefError("truncated_tlv")
            length = int.from_bytes(memory[off:off + 2], "big")
            off += 2
        value = memory[off:off + length]
        if len(value) != length:
            raise NdefError("truncated_tlv_value")
        off += length
        if t == TLV_NDEF_MESSAGE:
            return value or None
        if t not in (TLV_LOCK_CONTROL, TLV_MEMORY_CONTROL, TLV_PROPRIETARY):
            raise NdefError(f"unknown_tlv:{t:02X}")
    return None
