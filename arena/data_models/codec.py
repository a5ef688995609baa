"""
Helpers shared by the data model ``to_dict`` / ``from_dict`` methods.

Domain objects are persisted as JSON documents, so datetimes travel as ISO-8601
strings and enums as their values.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dump_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def load_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def dump_int_keys(mapping: Dict[int, Any]) -> Dict[str, Any]:
    # JSON object keys are always strings
    return {str(key): value for key, value in mapping.items()}


def load_int_keys(mapping: Optional[Dict[str, Any]]) -> Dict[int, Any]:
    return {int(key): value for key, value in (mapping or {}).items()}
