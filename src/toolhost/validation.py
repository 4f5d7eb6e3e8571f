"""Tool input decoding and schema generation.

Tool inputs are dataclasses whose fields carry their JSON Schema description
in field metadata. The same declaration drives both the advertised input
schema and the decoding of raw JSON payloads.
"""

from __future__ import annotations

import json
from dataclasses import MISSING, Field, fields, is_dataclass
from functools import lru_cache
from typing import Any, TypeVar

from jsonschema import Draft202012Validator

from toolhost.errors import validation_error

T = TypeVar("T")

# Annotation strings (postponed evaluation) to JSON Schema types
_JSON_TYPES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
}


def _json_type(f: Field[Any]) -> tuple[str, bool]:
    """Return (json_type, nullable) for a dataclass field."""
    annotation = f.type if isinstance(f.type, str) else getattr(f.type, "__name__", str(f.type))
    parts = [p.strip() for p in annotation.split("|")]
    nullable = "None" in parts
    base = [p for p in parts if p != "None"]
    if len(base) != 1 or base[0] not in _JSON_TYPES:
        raise TypeError(f"Unsupported input field type for '{f.name}': {annotation}")
    return _JSON_TYPES[base[0]], nullable


def field_schema(f: Field[Any]) -> dict[str, Any]:
    """Build the advertised JSON Schema property for one field."""
    json_type, _ = _json_type(f)
    prop: dict[str, Any] = {"type": json_type}
    if "enum" in f.metadata:
        prop["enum"] = list(f.metadata["enum"])
    if "description" in f.metadata:
        prop["description"] = f.metadata["description"]
    if f.default is not MISSING and f.default not in ("", None):
        prop["default"] = f.default
    return prop


def input_properties(input_type: type) -> dict[str, dict[str, Any]]:
    """Build the advertised properties for an input dataclass."""
    if not is_dataclass(input_type):
        raise TypeError(f"{input_type!r} is not a dataclass")
    return {f.name: field_schema(f) for f in fields(input_type)}


@lru_cache(maxsize=None)
def _shape_validator(input_type: type) -> Draft202012Validator:
    """Validator that checks only value types, never presence or enums."""
    properties = {}
    for f in fields(input_type):
        json_type, nullable = _json_type(f)
        properties[f.name] = {"type": [json_type, "null"] if nullable else json_type}
    return Draft202012Validator({"type": "object", "properties": properties})


def decode_input(input_type: type[T], payload: Any) -> T:
    """Decode a raw JSON payload into an input dataclass.

    Unknown keys are ignored and missing keys take the field default.

    Args:
        input_type: Input dataclass.
        payload: JSON text (str/bytes) or an already-decoded mapping.

    Returns:
        Populated input instance.

    Raises:
        ToolError: validation error on field "input" if the payload is not
            a JSON object or a value has the wrong type.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise validation_error(f"invalid input: {e}", "input") from None

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise validation_error(f"invalid input: {e}", "input") from None

    if not isinstance(payload, dict):
        raise validation_error("invalid input: must be a JSON object", "input")

    errors = list(_shape_validator(input_type).iter_errors(payload))
    if errors:
        error = errors[0]
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        raise validation_error(f"invalid input at '{path}': {error.message}", "input")

    known = {f.name for f in fields(input_type)}
    values = {k: v for k, v in payload.items() if k in known and v is not None}
    return input_type(**values)
