"""Helpers for decoding dataref payloads and sending JSON over a WebSocket."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

log = logging.getLogger(__name__)


def decode_null_terminated_string(encoded_data: str) -> list[str]:
    """Decode base64 data and split it into strings on null bytes.

    Empty pieces (from doubled nulls or trailing padding) are dropped.
    Raises ValueError if the input is not valid standard base64.
    """
    try:
        raw = base64.b64decode(encoded_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"error decoding base64: {exc}") from exc
    return [part.decode("utf-8", errors="replace") for part in raw.split(b"\x00") if part]


def decode_uint32(val: int) -> str:
    """Interpret a uint32 as up to four little-endian characters.

    Reading stops at the first null byte; bytes outside printable ASCII are
    shown as ``[xNN]``. The result is printed and returned.
    """
    if not 0 <= val <= 0xFFFFFFFF:
        raise ValueError(f"value {val} is outside the uint32 range")
    chars = []
    for byte in val.to_bytes(4, "little"):
        if byte == 0:
            break
        chars.append(chr(byte) if 32 <= byte <= 126 else f"[x{byte:x}]")
    text = "".join(chars)
    print(f'Int: {val} -> String: "{text}"')
    return text


async def send_json(ws: Any, data: Any) -> str:
    """Serialise ``data`` to JSON and send it as a text frame on ``ws``.

    Objects with a ``to_json`` method are converted through it first.
    Returns the text that was sent.
    """
    payload = data.to_json() if hasattr(data, "to_json") else data
    message = json.dumps(payload)
    log.info("-> Sending: %s", message)
    await ws.send_str(message)
    return message