"""Record encoding into the endpoint's line protocol.

``RecordEncoder.encode(record, schema)`` renders one record as a single
line of space-separated ``alias=value`` tokens, sorted by alias and
terminated by a newline::

    a1=1.2 ab=hh ac=2 d=2016-10-25T05:33:52.504876Z

Rendering:

- ``int``, ``Decimal`` and numeric text as written; ``float`` via ``repr``
- ``bool`` as ``true`` / ``false``
- strings as-is, with newline and tab escaped so a record stays on one line
- mappings and lists as compact JSON, keys in record order
- ``date`` fields via :func:`~logship.dates.convert_date`

Typed fields are checked with :func:`valid_schema` first.  What happens to
an invalid value depends on the validation policy:

- ``drop_field``     — the field is left out and a warning is logged
- ``reject_record``  — :class:`FieldValidationError` is raised and the
                       sender reports the record as failed

A required field missing from the record (or ``None``) is emitted with its
type's zero value; a missing optional field is left out.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal

from logship.dates import DateFormatError, convert_date
from logship.logging import get_logger
from logship.models.schema import RemoteField
from logship.schema import ResolvedSchema

ValidationPolicy = Literal["drop_field", "reject_record"]

_log = get_logger(__name__)

_INTEGER_TEXT = re.compile(r"[+-]?\d+")
_NUMBER_TEXT = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


class FieldValidationError(ValueError):
    """A record field does not match its declared remote type."""


# ---------------------------------------------------------------------------
# Type checks
# ---------------------------------------------------------------------------


def valid_schema(value_type: str, value: Any) -> bool:
    """Return True if *value* is acceptable for a field of *value_type*.

    ``long`` accepts integers and integer text only: ``2.0`` and ``"2.0"``
    are rejected even though they are numerically integral.  ``float``
    accepts any number or numeric text.
    """
    if value_type == "long":
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        if isinstance(value, (Decimal, str)):
            return _INTEGER_TEXT.fullmatch(str(value).strip()) is not None
        return False
    if value_type == "float":
        if isinstance(value, bool):
            return False
        if isinstance(value, (int, float, Decimal)):
            return True
        if isinstance(value, str):
            return _NUMBER_TEXT.fullmatch(value.strip()) is not None
        return False
    if value_type == "string":
        return isinstance(value, str)
    if value_type == "boolean":
        return isinstance(value, bool)
    if value_type == "date":
        try:
            convert_date(value)
        except DateFormatError:
            return False
        return True
    if value_type == "map":
        return isinstance(value, Mapping)
    if value_type == "array":
        return isinstance(value, (list, tuple))
    return False


def _check_field(field: RemoteField, value: Any) -> Any:
    """Validate *value* against *field*; return it normalized (dates converted)."""
    if field.value_type == "date":
        try:
            return convert_date(value)
        except DateFormatError as exc:
            raise FieldValidationError(f"{field.key}: {exc}") from exc

    if not valid_schema(field.value_type, value):
        raise FieldValidationError(
            f"{field.key}: {type(value).__name__} value {value!r} is not a valid {field.value_type}"
        )

    if field.value_type == "array" and field.elem_type is not None:
        for item in value:
            if not valid_schema(field.elem_type, item):
                raise FieldValidationError(f"{field.key}: array element {item!r} is not a {field.elem_type}")
        if field.elem_type == "date":
            return [convert_date(item) for item in value]
    elif field.value_type == "map":
        normalized = dict(value)
        for nested in field.fields:
            if value.get(nested.key) is not None:
                normalized[nested.key] = _check_field(nested, value[nested.key])
        return normalized
    return value


def zero_value(field: RemoteField, now: datetime) -> Any:
    """Return the stand-in emitted for a missing required *field*."""
    if field.value_type in ("long", "float"):
        return 0
    if field.value_type == "string":
        return ""
    if field.value_type == "boolean":
        return False
    if field.value_type == "map":
        return {}
    if field.value_type == "array":
        return []
    return convert_date(now)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_value(value: Any) -> str:
    """Render one field value as it appears after ``alias=``."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value.replace("\n", "\\n").replace("\t", "\\t")
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_json_default)
    return str(value)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    if isinstance(obj, datetime):
        return convert_date(obj)
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"{type(obj).__name__} is not JSON serializable")


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------


class RecordEncoder:
    """Encode records against a resolved schema.

    Args:
        policy: What to do with an invalid field value.
        clock:  Source of "now" for missing required date fields.
    """

    def __init__(
        self,
        policy: ValidationPolicy = "drop_field",
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._policy = policy
        self._clock = clock

    def encode(self, record: Mapping[str, Any], schema: ResolvedSchema) -> bytes:
        """Return the newline-terminated line for *record*.

        Raises:
            FieldValidationError: A field is invalid and the policy is
                                  ``reject_record``.
        """
        tokens = []
        for field in schema.fields:
            value = record.get(field.source)
            if value is None:
                if field.remote is None or not field.remote.required:
                    continue
                value = zero_value(field.remote, self._clock())
            elif field.remote is not None:
                try:
                    value = _check_field(field.remote, value)
                except FieldValidationError as exc:
                    if self._policy == "reject_record":
                        raise
                    _log.warning("invalid field dropped", alias=field.alias, source=field.source, error=str(exc))
                    continue
            tokens.append(f"{field.alias}={render_value(value)}")

        return (" ".join(tokens) + "\n").encode("utf-8")
