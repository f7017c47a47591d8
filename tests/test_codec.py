"""Tests for payload encoding."""

import pytest
from topicbus.codec import encode_payload, decode_payload


class TestCodec:
    """Tests for encode_payload and decode_payload."""

    def test_bytes_pass_through(self):
        """Test that raw bytes are sent untouched."""
        assert encode_payload(b"\x00raw") == b"\x00raw"
        assert encode_payload(bytearray(b"abc")) == b"abc"

    @pytest.mark.parametrize("value,expected", [
        ({"a": 1}, b'{"a": 1}'),
        ([1, 2], b"[1, 2]"),
        ("on", b'"on"'),
        (5, b"5"),
        (None, b"null"),
    ])
    def test_values_sent_as_json(self, value, expected):
        """Test that non-bytes payloads are JSON encoded."""
        assert encode_payload(value) == expected

    def test_unserialisable_falls_back_to_str(self):
        """Test that objects JSON cannot encode use str()."""
        assert encode_payload({1, 2}) in (b"{1, 2}", b"{2, 1}")

    def test_decode_json(self):
        """Test decoding JSON payloads."""
        assert decode_payload(b'{"online": true}') == (True, {"online": True})
        assert decode_payload("42") == (True, 42)

    def test_decode_non_json(self):
        """Test that other payloads are flagged as not JSON."""
        assert decode_payload(b"hello") == (False, None)
        assert decode_payload(b"\xff\xfe") == (False, None)
        assert decode_payload(None) == (False, None)
