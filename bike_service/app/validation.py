"""
Validation gate for create and replace payloads.

Every field has one rule in BIKE_RULES. All rules run, violations are
collected, and a single ValidationError carries the (field, reason) list.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .codec import RecordCodec
from .errors import CodecError, ValidationError

BIKE_TYPES = ("mountain", "road", "tandem")

# BigInteger column
MAX_INTEGER = 2 ** 63 - 1

_INTEGER_TEXT = re.compile(r"[-+]?\d+")

_MISSING = object()


class Invalid(Exception):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass(frozen=True)
class ServerControlled:
    """Field may only be set by the server."""

    def check(self, value: Any, strict_numbers: bool) -> Any:
        if value is not _MISSING:
            raise Invalid("cannot be provided")
        return _MISSING


@dataclass(frozen=True)
class NonEmptyText:
    def check(self, value: Any, strict_numbers: bool) -> Any:
        _require(value)
        if not isinstance(value, str):
            raise Invalid("must be a string")
        if not value.strip():
            raise Invalid("must not be empty")
        return value


@dataclass(frozen=True)
class PositiveNumber:
    def check(self, value: Any, strict_numbers: bool) -> Any:
        _require(value)
        number = _as_number(value, strict_numbers)
        if number <= 0:
            raise Invalid("must be greater than 0")
        return number


@dataclass(frozen=True)
class PositiveInteger:
    maximum: int = MAX_INTEGER

    def check(self, value: Any, strict_numbers: bool) -> Any:
        _require(value)
        if isinstance(value, int) and not isinstance(value, bool):
            number = value
        elif isinstance(value, str) and not strict_numbers and _INTEGER_TEXT.fullmatch(value.strip()):
            number = int(value)
        else:
            number = _as_number(value, strict_numbers)
            if not number.is_integer():
                raise Invalid("must be a positive integer")
            number = int(number)
        if number <= 0:
            raise Invalid("must be a positive integer")
        if number > self.maximum:
            raise Invalid(f"must be at most {self.maximum}")
        return number


@dataclass(frozen=True)
class OneOf:
    choices: Tuple[str, ...]

    def check(self, value: Any, strict_numbers: bool) -> Any:
        _require(value)
        if value not in self.choices:
            raise Invalid(f"must be one of: {', '.join(self.choices)}")
        return value


BIKE_RULES = {
    "id": ServerControlled(),
    "available": ServerControlled(),
    "manufacturer": NonEmptyText(),
    "model": NonEmptyText(),
    "type": OneOf(BIKE_TYPES),
    "hourlyCost": PositiveNumber(),
    "ownerUserId": PositiveInteger(),
    "suitableHeightInMeters": PositiveNumber(),
    "maximumWeightInKg": PositiveNumber(),
}


def _require(value: Any) -> None:
    if value is _MISSING or value is None:
        raise Invalid("is required")


def _as_number(value: Any, strict_numbers: bool) -> float:
    if isinstance(value, bool):
        raise Invalid("must be a number")
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            raise Invalid("must be a finite number") from None
    elif isinstance(value, str):
        if strict_numbers:
            raise Invalid("must be a number, not text")
        try:
            number = float(value)
        except ValueError:
            raise Invalid("must be a number") from None
    else:
        raise Invalid("must be a number")
    if not math.isfinite(number):
        raise Invalid("must be a finite number")
    return number


def validate_bike(payload: Any, operation: str = "create",
                  strict_numbers: bool = False) -> Dict[str, Any]:
    """Проверяет тело запроса и возвращает нормализованные поля.

    ``operation`` is ``"create"`` or ``"update"``; a full replace is held to
    the same rules as a create. Fields outside BIKE_RULES are dropped.
    """
    if operation not in ("create", "update"):
        raise ValueError(f"unknown operation {operation!r}")
    if not isinstance(payload, Mapping):
        raise ValidationError([("body", "must be a JSON object")])

    errors: List[Tuple[str, str]] = []
    cleaned: Dict[str, Any] = {}
    for field, rule in BIKE_RULES.items():
        try:
            value = rule.check(payload.get(field, _MISSING), strict_numbers)
        except Invalid as e:
            errors.append((field, e.reason))
            continue
        if value is not _MISSING:
            cleaned[field] = value

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_filters(query: Mapping[str, str], codec: RecordCodec) -> Dict[str, Any]:
    """Turns list query parameters into typed equality filters."""
    errors: List[Tuple[str, str]] = []
    filters: Dict[str, Any] = {}
    for field, text in query.items():
        rule: Optional[Any] = BIKE_RULES.get(field)
        if rule is None:
            errors.append((field, "is not a filterable field"))
        elif isinstance(rule, ServerControlled):
            errors.append((field, "cannot be used as a filter"))
        else:
            try:
                value = codec.coerce(field, text)
            except CodecError as e:
                errors.append((field, e.message))
                continue
            if isinstance(value, int) and not isinstance(value, bool) and abs(value) > MAX_INTEGER:
                errors.append((field, f"must be at most {MAX_INTEGER}"))
                continue
            filters[field] = value
    if errors:
        raise ValidationError(errors)
    return filters
