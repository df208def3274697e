"""
Record codec: nested Bike record <-> flat dotted-path map.

Redis hashes store every value as text, so the codec also owns the
field-type table and turns stored text back into int/float/bool.
Arrays are not supported at any depth.
"""
import enum
import math
import re
from typing import Any, Dict, Mapping

from .errors import CodecError, MissingFieldError

SEPARATOR = "."

_INTEGER_RE = re.compile(r"-?\d+")


class FieldType(str, enum.Enum):
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"


BIKE_FIELDS: Dict[str, FieldType] = {
    "id": FieldType.INTEGER,
    "manufacturer": FieldType.TEXT,
    "model": FieldType.TEXT,
    "type": FieldType.TEXT,
    "hourlyCost": FieldType.FLOAT,
    "ownerUserId": FieldType.INTEGER,
    "suitableHeightInMeters": FieldType.FLOAT,
    "maximumWeightInKg": FieldType.FLOAT,
    "available": FieldType.BOOLEAN,
}


def flatten(record: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """{"a": {"b": 1}} -> {"a.b": 1}"""
    flat: Dict[str, Any] = {}
    for key, value in record.items():
        key = str(key)
        if SEPARATOR in key:
            raise CodecError(key, f"key must not contain '{SEPARATOR}'")
        path = f"{prefix}{SEPARATOR}{key}" if prefix else key

        if isinstance(value, Mapping):
            if not value:
                raise CodecError(path, "empty objects cannot be flattened")
            flat.update(flatten(value, path))
        elif isinstance(value, (list, tuple, set)):
            raise CodecError(path, "arrays are not supported")
        else:
            flat[path] = value
    return flat


def unflatten(flat: Mapping[str, Any]) -> Dict[str, Any]:
    """{"a.b": 1} -> {"a": {"b": 1}}"""
    record: Dict[str, Any] = {}
    for path, value in flat.items():
        parts = path.split(SEPARATOR)
        node = record
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise CodecError(path, f"'{part}' is both a value and an object")
            node = child
        if isinstance(node.get(parts[-1]), dict):
            raise CodecError(path, "is both a value and an object")
        node[parts[-1]] = value
    return record


def to_text(path: str, value: Any) -> str:
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    raise CodecError(path, f"unsupported value type {type(value).__name__}")


def from_text(path: str, text: str, kind: FieldType) -> Any:
    if kind is FieldType.TEXT:
        return text
    if kind is FieldType.BOOLEAN:
        if text == "true":
            return True
        if text == "false":
            return False
        raise CodecError(path, f"expected 'true' or 'false', got {text!r}")
    if kind is FieldType.INTEGER:
        if not _INTEGER_RE.fullmatch(text):
            raise CodecError(path, f"expected an integer, got {text!r}")
        return int(text)
    if kind is FieldType.FLOAT:
        try:
            number = float(text)
        except ValueError:
            raise CodecError(path, f"expected a number, got {text!r}") from None
        if not math.isfinite(number):
            raise CodecError(path, f"expected a finite number, got {text!r}")
        return number
    raise CodecError(path, f"unknown field type {kind!r}")


class RecordCodec:
    """Encodes records for a flat text store and decodes them back.

    ``fields`` maps dotted paths to their declared type. Paths in stored
    data that the table does not declare are passed through as text.
    """

    def __init__(self, fields: Mapping[str, FieldType]):
        self.fields = dict(fields)

    def encode(self, record: Mapping[str, Any]) -> Dict[str, str]:
        return {path: self.to_text(path, value) for path, value in flatten(record).items()}

    def to_text(self, path: str, value: Any) -> str:
        """Canonical text: a float field always reads "5.0", never "5"."""
        if (self.fields.get(path) is FieldType.FLOAT
                and isinstance(value, int) and not isinstance(value, bool)):
            try:
                value = float(value)
            except OverflowError:
                raise CodecError(path, "number is too large") from None
        return to_text(path, value)

    def decode(self, flat: Mapping[str, str], required: bool = True) -> Dict[str, Any]:
        values: Dict[str, Any] = dict(flat)
        for path, kind in self.fields.items():
            if path not in flat:
                if required:
                    raise MissingFieldError(path)
                continue
            values[path] = from_text(path, flat[path], kind)
        return unflatten(values)

    def coerce(self, path: str, text: str) -> Any:
        """Coerces a single text value, e.g. a query-string filter."""
        if path not in self.fields:
            raise CodecError(path, "unknown field")
        return from_text(path, text, self.fields[path])


bike_codec = RecordCodec(BIKE_FIELDS)
