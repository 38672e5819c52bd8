import pytest

from trust_ledger.codec import (bytes_to_handle, decode_clear_values,
                                encode_clear_values, handle_to_bytes,
                                is_handle)
from trust_ledger.errors import MalformedClearValue, UnknownHandle


def test_handle_forms():
    raw = bytes(range(32))
    handle = bytes_to_handle(raw)
    assert is_handle(handle)
    assert handle_to_bytes(handle) == raw
    assert not is_handle(handle.upper())


def test_bad_handles():
    with pytest.raises(UnknownHandle):
        handle_to_bytes("0x00")
    with pytest.raises(UnknownHandle):
        bytes_to_handle(b"\x00" * 31)


def test_clear_values_are_big_endian_words():
    blob = encode_clear_values([1, 256])
    assert len(blob) == 64
    assert blob[31] == 1 and blob[62:] == b"\x01\x00"


@pytest.mark.parametrize("blob,count", [(b"", 1), (b"\x00" * 33, 1), (b"\x00" * 32, 2)])
def test_decode_rejects_wrong_length(blob, count):
    with pytest.raises(MalformedClearValue):
        decode_clear_values(blob, count)


def test_encode_rejects_negative():
    with pytest.raises(ValueError):
        encode_clear_values([-1])
