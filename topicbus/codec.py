"""Payload encoding for bus messages."""

import json
from typing import Any, Tuple, Union


def encode_payload(payload: Any) -> bytes:
    """Encode an outgoing payload.

    Bytes pass through untouched; everything else is sent as JSON, so a
    string ``"on"`` goes out as ``"\\"on\\""`` and ``5`` as ``"5"``.
    """
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    try:
        encoded = json.dumps(payload)
    except (TypeError, ValueError):
        encoded = str(payload)
    return encoded.encode('utf-8')


def decode_payload(payload: Union[bytes, str, None]) -> Tuple[bool, Any]:
    """Decode an incoming payload.

    Returns: (is_json, value) where value is None when is_json is False
    """
    if payload is None:
        return False, None
    try:
        if isinstance(payload, (bytes, bytearray)):
            payload = bytes(payload).decode('utf-8')
        return True, json.loads(payload)
    except (UnicodeDecodeError, ValueError):
        return False, None
