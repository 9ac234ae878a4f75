"""
Custom-field resolution for ClickUp task records.

The organization models tags, project and deadline as custom fields rather
than native attributes, so each is located inside ``task.custom_fields``:

  1. Pinned id     -> a field whose ``id`` equals the configured id wins
  2. Name fallback -> a field of an accepted type whose normalized name
                      contains (for tags: equals) the expected word

Values arrive in several shapes (option ids, option objects, drop-down
indexes, epoch numbers, numeric or ISO strings, nested date objects). Each
shape has its own normalizer below. Nothing here raises: malformed input
resolves to ``None`` or an empty tuple.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from connectors.models import TaskTag

# Zero-width characters, variation selectors and the BOM.
_INVISIBLE_RE = re.compile(
    "[\u200b-\u200d\u2060\ufeff\ufe00-\ufe0f\U000e0100-\U000e01ef]"
)
_NON_ALNUM_RE = re.compile(r"[\W_]+")

RELATIONSHIP_FIELD_TYPES: tuple[str, ...] = ("list_relationship", "tasks", "relationship")
DATE_FIELD_TYPES: tuple[str, ...] = ("date",)
LABEL_FIELD_TYPES: tuple[str, ...] = ("labels",)

# Keys searched, in order, when a date value arrives as an object.
_DATE_VALUE_KEYS: tuple[str, ...] = ("start", "date", "end", "value")
_MAX_DATE_DEPTH: int = 4


@dataclass(frozen=True)
class FieldSelector:
    """How to locate one custom field."""

    preferred_id: Optional[str] = None
    name_contains: Optional[str] = None
    name_equals: Optional[str] = None
    field_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class CustomFieldIds:
    """Deployment-pinned custom field ids (all optional)."""

    tags: Optional[str] = None
    project: Optional[str] = None
    deadline: Optional[str] = None


@dataclass(frozen=True)
class _Option:
    label: str
    color: Optional[str] = None


# ── Field lookup ─────────────────────────────────────────────────────────


def normalize_field_name(value: Any) -> str:
    """Fold a display name to lowercase alphanumeric words separated by spaces."""
    if not isinstance(value, str):
        return ""
    text = unicodedata.normalize("NFKC", value)
    text = _INVISIBLE_RE.sub("", text)
    text = _NON_ALNUM_RE.sub(" ", text.lower())
    return " ".join(text.split())


def _field_name(field: Mapping[str, Any]) -> str:
    return normalize_field_name(field.get("name") or field.get("label"))


def _field_type(field: Mapping[str, Any]) -> str:
    raw_type = field.get("type")
    return raw_type.lower() if isinstance(raw_type, str) else ""


def find_custom_field(
    fields: Any, selector: FieldSelector
) -> Optional[dict[str, Any]]:
    """Return the first custom field matching ``selector``, or ``None``.

    An id match takes precedence over every name/type match.
    """
    if not isinstance(fields, list):
        return None
    candidates: list[dict[str, Any]] = [f for f in fields if isinstance(f, dict)]

    if selector.preferred_id:
        for field in candidates:
            if str(field.get("id", "")) == selector.preferred_id:
                return field

    needle = normalize_field_name(selector.name_contains)
    exact_name = normalize_field_name(selector.name_equals)
    accepted_types = {t.lower() for t in selector.field_types}
    if not needle and not exact_name and not accepted_types:
        return None

    for field in candidates:
        if accepted_types and _field_type(field) not in accepted_types:
            continue
        name = _field_name(field)
        if exact_name and name != exact_name:
            continue
        if needle and needle not in name:
            continue
        return field
    return None


# ── Option lookup ────────────────────────────────────────────────────────


def _text(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _option_label(option: Mapping[str, Any]) -> Optional[str]:
    return (
        _text(option.get("name"))
        or _text(option.get("label"))
        or _text(option.get("value"))
    )


def _option_color(option: Mapping[str, Any]) -> Optional[str]:
    return _text(option.get("color"))


def build_option_lookup(field: Mapping[str, Any]) -> dict[str, _Option]:
    """Map option id, uuid and order index to label and color."""
    type_config = field.get("type_config")
    options = type_config.get("options") if isinstance(type_config, dict) else None
    if not isinstance(options, list):
        return {}

    lookup: dict[str, _Option] = {}
    for option in options:
        if not isinstance(option, dict):
            continue
        label = _option_label(option)
        if not label:
            continue
        resolved = _Option(label=label, color=_option_color(option))
        for key in ("id", "uuid"):
            identifier = _text(option.get(key))
            if identifier:
                lookup.setdefault(identifier, resolved)
        order_index = option.get("orderindex")
        if isinstance(order_index, int) and not isinstance(order_index, bool):
            lookup.setdefault(f"#{order_index}", resolved)
    return lookup


def _option_from_string(value: str, lookup: dict[str, _Option]) -> Optional[_Option]:
    stripped = value.strip()
    if not stripped:
        return None
    return lookup.get(stripped) or _Option(label=stripped)


def _option_from_index(value: int, lookup: dict[str, _Option]) -> Optional[_Option]:
    # Drop-down fields store the selected option's order index.
    return lookup.get(f"#{value}")


def _option_from_mapping(
    value: Mapping[str, Any], lookup: dict[str, _Option]
) -> Optional[_Option]:
    identifier = _text(value.get("id")) or _text(value.get("uuid"))
    known = lookup.get(identifier) if identifier else None
    label = _option_label(value)
    if label:
        return _Option(
            label=label,
            color=_option_color(value) or (known.color if known else None),
        )
    if known:
        return known
    if identifier:
        return _Option(label=identifier)
    return None


def _resolve_option(value: Any, lookup: dict[str, _Option]) -> Optional[_Option]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        return _option_from_string(value, lookup)
    if isinstance(value, int):
        return _option_from_index(value, lookup)
    if isinstance(value, dict):
        return _option_from_mapping(value, lookup)
    return None


def _iter_values(value: Any) -> Iterable[Any]:
    if value is None or value == "" or value == []:
        return ()
    if isinstance(value, list):
        return value
    return (value,)


# ── Tags ─────────────────────────────────────────────────────────────────


def find_tags_field(fields: Any, field_id: Optional[str] = None) -> Optional[dict[str, Any]]:
    """Locate the tag-holding field: pinned id, a field named "Tags", then a labels field named *tag*."""
    field = find_custom_field(fields, FieldSelector(preferred_id=field_id, name_equals="tags"))
    if field is not None:
        return field
    return find_custom_field(
        fields, FieldSelector(name_contains="tag", field_types=LABEL_FIELD_TYPES)
    )


def resolve_tags(fields: Any, field_id: Optional[str] = None) -> tuple[TaskTag, ...]:
    """Resolve the tag field's value to tags, preserving source order."""
    field = find_tags_field(fields, field_id)
    if field is None:
        return ()

    lookup = build_option_lookup(field)
    tags: list[TaskTag] = []
    for entry in _iter_values(field.get("value")):
        option = _resolve_option(entry, lookup)
        if option is not None:
            tags.append(TaskTag(name=option.label, color_hint=option.color))
    return tuple(tags)


# ── Project ──────────────────────────────────────────────────────────────


def _relationship_label(entry: Any, lookup: dict[str, _Option]) -> Optional[str]:
    if isinstance(entry, dict):
        label = _text(entry.get("name")) or _text(entry.get("label")) or _text(entry.get("title"))
        if label:
            return label
        identifier = _text(entry.get("id"))
        if identifier:
            known = lookup.get(identifier)
            return known.label if known else identifier
        return None
    identifier = _text(entry)
    if identifier is None:
        return None
    known = lookup.get(identifier)
    return known.label if known else identifier


def resolve_project_name(fields: Any, field_id: Optional[str] = None) -> Optional[str]:
    """Join the labels held by the project relationship field."""
    field = find_custom_field(
        fields,
        FieldSelector(
            preferred_id=field_id,
            name_contains="project",
            field_types=RELATIONSHIP_FIELD_TYPES,
        ),
    )
    if field is None:
        return None

    lookup = build_option_lookup(field)
    labels: list[str] = []
    for entry in _iter_values(field.get("value")):
        label = _relationship_label(entry, lookup)
        if label:
            labels.append(label)
    return ", ".join(labels) if labels else None


# ── Deadline ─────────────────────────────────────────────────────────────


def _timestamp_from_epoch_ms(value: float) -> Optional[datetime]:
    if value == 0:
        return None
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _timestamp_from_number(value: Any, depth: int) -> Optional[datetime]:
    try:
        millis = float(value)
    except OverflowError:
        return None
    return _timestamp_from_epoch_ms(millis)


def _timestamp_from_string(value: Any, depth: int) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        return _timestamp_from_epoch_ms(float(text))
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed_date = date.fromisoformat(text)
        except ValueError:
            return None
        return datetime(parsed_date.year, parsed_date.month, parsed_date.day, tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _timestamp_from_mapping(value: Any, depth: int) -> Optional[datetime]:
    if depth >= _MAX_DATE_DEPTH:
        return None
    for key in _DATE_VALUE_KEYS:
        nested = value.get(key)
        if nested is None or nested is value:
            continue
        return parse_timestamp(nested, depth + 1)
    return None


_TIMESTAMP_NORMALIZERS: tuple[tuple[type | tuple[type, ...], Callable[[Any, int], Optional[datetime]]], ...] = (
    ((int, float), _timestamp_from_number),
    (str, _timestamp_from_string),
    (dict, _timestamp_from_mapping),
)


def parse_timestamp(value: Any, depth: int = 0) -> Optional[datetime]:
    """Parse an epoch-ms number/string, ISO string, or nested date object to UTC."""
    if isinstance(value, bool) or value is None:
        return None
    for value_types, normalizer in _TIMESTAMP_NORMALIZERS:
        if isinstance(value, value_types):
            return normalizer(value, depth)
    return None


def resolve_deadline(fields: Any, field_id: Optional[str] = None) -> Optional[datetime]:
    """Resolve the deadline date field to a UTC timestamp."""
    field = find_custom_field(
        fields,
        FieldSelector(
            preferred_id=field_id,
            name_contains="deadline",
            field_types=DATE_FIELD_TYPES,
        ),
    )
    if field is None:
        return None
    return parse_timestamp(field.get("value"))
