"""Wire structures of the X-Plane web API (REST and WebSocket)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


def _load(obj: Any) -> dict:
    if isinstance(obj, (bytes, bytearray)):
        obj = obj.decode("utf-8")
    if isinstance(obj, str):
        try:
            obj = json.loads(obj)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise ValueError("expected a JSON object")
    return obj


def _int(obj: dict, key: str) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _str(obj: dict, key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _bool(obj: dict, key: str) -> bool:
    value = obj.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


@dataclass
class DatarefInfo:
    """Description of a dataref as returned by the REST API."""

    id: int = 0
    is_writable: bool = False
    name: str = ""
    value_type: str = ""

    @classmethod
    def from_json(cls, obj: Any) -> DatarefInfo:
        data = _load(obj)
        return cls(
            id=_int(data, "id"),
            is_writable=_bool(data, "is_writable"),
            name=_str(data, "name"),
            value_type=_str(data, "value_type"),
        )

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "is_writable": self.is_writable,
            "name": self.name,
            "value_type": self.value_type,
        }


@dataclass
class Dataref:
    """A dataref the client tracks, with its latest decoded value."""

    name: str
    api_info: DatarefInfo = field(default_factory=DatarefInfo)
    value: Any = None
    decoded_data_type: str = ""


@dataclass
class DatarefSubscriptionRequest:
    """A WebSocket request subscribing to the values of datarefs by id."""

    request_id: int
    type: str
    datarefs: list[int] = field(default_factory=list)

    def to_json(self) -> dict:
        return {
            "req_id": self.request_id,
            "type": self.type,
            "params": {"datarefs": [{"id": dataref_id} for dataref_id in self.datarefs]},
        }


@dataclass
class SubscriptionResponse:
    """A message received on the WebSocket."""

    request_id: int = 0
    type: str = ""
    data: dict[str, Any] | None = None
    success: bool = False

    @classmethod
    def from_json(cls, obj: Any) -> SubscriptionResponse:
        message = _load(obj)
        data = message.get("data")
        if data is not None and not isinstance(data, dict):
            raise ValueError("field 'data' must be an object")
        return cls(
            request_id=_int(message, "req_id"),
            type=_str(message, "type"),
            data=data,
            success=_bool(message, "success"),
        )


@dataclass
class ErrorPayload:
    """Body of a message whose type is ``error``."""

    code: int = 0
    message: str = ""

    @classmethod
    def from_json(cls, obj: Any) -> ErrorPayload:
        data = _load(obj)
        return cls(code=_int(data, "code"), message=_str(data, "message"))


def parse_datarefs_response(obj: Any) -> list[DatarefInfo]:
    """Parse the ``{"data": [...]}`` body of a REST dataref query."""
    body = _load(obj)
    entries = body.get("data")
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ValueError("field 'data' must be a list")
    return [DatarefInfo.from_json(entry) for entry in entries]