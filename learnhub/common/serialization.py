"""
Serialization Utilities

This module converts the assessment dataclasses into JSON-safe structures
(for persistence and for the HTTP layer) and back, handling datetimes and enums.
"""

import json
import datetime
from enum import Enum
from typing import Any, Optional
from dataclasses import is_dataclass, fields


def to_primitive(obj: Any, exclude_none: bool = False) -> Any:
    """
    Convert an object into plain dicts, lists and scalars.

    Args:
        obj: The object to convert
        exclude_none: Whether to drop keys whose value is None

    Returns:
        A JSON-serializable structure
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, datetime.datetime):
        return obj.isoformat()

    if isinstance(obj, datetime.date):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (list, tuple, set)):
        return [to_primitive(item, exclude_none) for item in obj]

    if isinstance(obj, dict):
        return {
            str(to_primitive(key)): to_primitive(value, exclude_none)
            for key, value in obj.items()
            if not (exclude_none and value is None)
        }

    if is_dataclass(obj):
        return {
            f.name: to_primitive(getattr(obj, f.name), exclude_none)
            for f in fields(obj)
            if not f.name.startswith("_")
            and not (exclude_none and getattr(obj, f.name) is None)
        }

    if hasattr(obj, "to_dict") and callable(getattr(obj, "to_dict")):
        return to_primitive(obj.to_dict(), exclude_none)

    return str(obj)


def to_json(obj: Any, pretty: bool = False) -> str:
    """
    Serialize an object to a JSON string.

    Keys are sorted so equal objects always serialize to identical text.
    """
    return json.dumps(
        to_primitive(obj),
        indent=2 if pretty else None,
        sort_keys=True,
        ensure_ascii=False,
    )


def parse_datetime(value: Any) -> Optional[datetime.datetime]:
    """
    Parse an ISO formatted string into a timezone-aware UTC datetime.

    Naive datetimes are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    else:
        parsed = datetime.datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def utcnow() -> datetime.datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)
