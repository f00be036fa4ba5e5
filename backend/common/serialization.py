"""
Serialization Utilities

Helpers for turning domain objects (dataclasses, enums, datetimes, tagged
answers) into JSON-compatible structures and back.
"""

import json
import datetime
from enum import Enum
from dataclasses import is_dataclass, fields
from typing import Any, Dict, List, Optional


def serialize(obj: Any, exclude_none: bool = False) -> Any:
    """
    Convert an object into JSON-compatible primitives.

    Objects exposing ``to_dict`` are serialized through it, so domain types
    control their own wire shape.

    Args:
        obj: The object to serialize
        exclude_none: Drop ``None`` values from mappings

    Returns:
        Primitive, list or dict
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (list, tuple, set)):
        return [serialize(item, exclude_none) for item in obj]

    if isinstance(obj, dict):
        return {
            key: serialize(value, exclude_none)
            for key, value in obj.items()
            if not (exclude_none and value is None)
        }

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return serialize(obj.to_dict(), exclude_none)

    if is_dataclass(obj):
        return {
            f.name: serialize(getattr(obj, f.name), exclude_none)
            for f in fields(obj)
            if not (exclude_none and getattr(obj, f.name) is None)
        }

    return str(obj)


def to_json(obj: Any, pretty: bool = False, exclude_none: bool = False) -> str:
    """Serialize an object to a JSON string."""
    return json.dumps(serialize(obj, exclude_none), indent=2 if pretty else None)


def parse_datetime(value: Any) -> Optional[datetime.datetime]:
    """Accept a datetime, an ISO-8601 string or None."""
    if value is None or isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise ValueError(f"Cannot parse datetime from {value!r}")


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, matching what the database columns store."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class SerializableMixin:
    """
    Mixin that provides dict/JSON conversion to a class.

    Classes using this mixin define:
    1. __serializable_fields__ - field names included in serialization
    2. __optional_fields__ - field names that may be absent when deserializing
    """

    __serializable_fields__: List[str] = []
    __optional_fields__: List[str] = []

    def to_dict(self) -> Dict[str, Any]:
        """Convert the object to a dictionary."""
        return {
            name: serialize(getattr(self, name))
            for name in self.__serializable_fields__
            if hasattr(self, name)
        }

    def to_json(self, pretty: bool = False) -> str:
        return to_json(self.to_dict(), pretty)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Create an instance from a dictionary."""
        init_kwargs = {}
        for name in cls.__serializable_fields__:
            if name in data:
                init_kwargs[name] = data[name]
            elif name not in cls.__optional_fields__:
                raise ValueError(f"Missing required field: {name}")
        return cls(**init_kwargs)

    @classmethod
    def from_json(cls, json_str: str):
        return cls.from_dict(json.loads(json_str))
