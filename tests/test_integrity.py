import hashlib

import pytest

from campsync.errors import IntegrityError
from campsync.security import unwrap, wrap

SECRET = "CAMPSYNC2024LOCK"
PAYLOADS = ['{"id":"c1","fn":"Ana"}', "", "plain:with:colons", "x" * 450]


@pytest.mark.parametrize("plain", PAYLOADS)
def test_unwrap_returns_wrapped_plaintext(plain):
    assert unwrap(wrap(plain, SECRET), SECRET) == plain


def test_prefix_is_truncated_sha256_of_secret_and_text():
    w = wrap("hello", SECRET)
    expected = hashlib.sha256(f"{SECRET}:hello".encode("utf-8")).hexdigest()[:8]
    assert w == f"{expected}:hello"


@pytest.mark.parametrize("plain", PAYLOADS[:1] + PAYLOADS[2:])
def test_mutated_character_is_rejected(plain):
    w = wrap(plain, SECRET)
    for i in (0, 7, len(w) - 1, len(w) // 2):
        c = w[i]
        repl = "0" if c != "0" else "1"
        if c == ":":
            repl = "a"
        tampered = w[:i] + repl + w[i + 1:]
        with pytest.raises(IntegrityError):
            unwrap(tampered, SECRET)


def test_wrong_secret_is_rejected():
    w = wrap('{"id":"c1"}', SECRET)
    with pytest.raises(IntegrityError):
        unwrap(w, "SomeOtherCode99")


def test_missing_separator():
    with pytest.raises(IntegrityError):
        unwrap("deadbeefnocolon", SECRET)


def test_short_or_non_hex_prefix_rejected():
    plain = '{"id":"c1"}'
    good = wrap(plain, SECRET)
    with pytest.raises(IntegrityError):
        unwrap(":" + plain, SECRET)
    with pytest.raises(IntegrityError):
        unwrap(good[:4] + good[8:], SECRET)
    with pytest.raises(IntegrityError):
        unwrap("zzzzzzzz:" + plain, SECRET)


def test_uppercase_prefix_accepted():
    w = wrap("abc", SECRET)
    assert unwrap(w[:8].upper() + w[8:], SECRET) == "abc"


def test_custom_prefix_length():
    w = wrap("abc", SECRET, prefix_len=16)
    assert len(w.split(":", 1)[0]) == 16
    assert unwrap(w, SECRET, prefix_len=16) == "abc"
    with pytest.raises(IntegrityError):
        unwrap(w, SECRET)
