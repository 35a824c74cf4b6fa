"""
Notification list filters.

Compiles a FilterSpec into query parameters and decides whether a filter
change invalidates the cached list.
"""
from typing import Any, Mapping, Optional

from kpt_sync.core.exceptions import ValidationError
from kpt_sync.schemas.notification import (
    FilterSpec,
    NotificationPriority,
    NotificationType,
)

FILTER_FIELDS = ("type", "is_read", "priority")

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


def compile_filters(spec: Optional[FilterSpec]) -> dict[str, str]:
    """
    Translate a FilterSpec into list endpoint query parameters.

    Unset fields are omitted entirely rather than sent empty; booleans are
    rendered lowercase.

    Args:
        spec: Filter to compile. None behaves like an empty filter.

    Returns:
        Mapping of query parameter name to string value
    """
    if spec is None:
        return {}

    params: dict[str, str] = {}
    if spec.type is not None:
        params["type"] = spec.type.value
    if spec.is_read is not None:
        params["is_read"] = "true" if spec.is_read else "false"
    if spec.priority is not None:
        params["priority"] = spec.priority.value
    return params


def filters_changed(old: Optional[FilterSpec], new: Optional[FilterSpec]) -> bool:
    """Return True if switching from ``old`` to ``new`` invalidates the cache."""
    return (old or FilterSpec()) != (new or FilterSpec())


def parse_filters(raw: Optional[Mapping[str, Any]]) -> FilterSpec:
    """
    Build a FilterSpec from a loose mapping (e.g. query string values).

    None values are treated as unset.

    Raises:
        ValidationError: On unknown keys or values outside the enumerations
    """
    if not raw:
        return FilterSpec()

    unknown = set(raw) - set(FILTER_FIELDS)
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Unknown filter field: {name}", field=name)

    return FilterSpec(
        type=_parse_enum(NotificationType, raw.get("type"), "type"),
        is_read=_parse_bool(raw.get("is_read")),
        priority=_parse_enum(NotificationPriority, raw.get("priority"), "priority"),
    )


def _parse_enum(enum_cls, value: Any, field: str):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError as e:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field} filter {value!r}. Valid values: {valid}",
            field=field,
        ) from e


def _parse_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValidationError(f"Invalid is_read filter {value!r}", field="is_read")
