"""
Declarative payload schemas and the single engine that validates against them.

Schemas are plain data: every flow and tool describes its input and output
with `Schema`/`FieldSpec` values instead of bespoke model classes, so one
validator covers all of them.
"""
from __future__ import annotations
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from .errors import SchemaViolation


class Kind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: Kind
    required: bool = True
    default: Any = MISSING
    items: Optional["FieldSpec"] = None #element spec for arrays
    fields: Optional["Schema"] = None #nested schema for objects
    media: bool = False #string field carrying a data: media reference
    description: str = ""

    def __post_init__(self):
        if self.kind == Kind.ARRAY and self.items is None:
            raise ValueError(f"Array field '{self.name}' needs an element spec")
        if self.kind == Kind.OBJECT and self.fields is None:
            raise ValueError(f"Object field '{self.name}' needs nested fields")
        if self.media and self.kind != Kind.STRING:
            raise ValueError(f"Media field '{self.name}' must be a string")

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


@dataclass(frozen=True)
class Schema:
    fields: Tuple[FieldSpec, ...] = field(default_factory=tuple)

    def __post_init__(self):
        names = [f.name for f in self.fields]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field names in schema: {', '.join(duplicates)}")

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def get(self, name: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def media_fields(self) -> Tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.media)

    def to_json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {f.name: _field_json_schema(f) for f in self.fields},
            "required": [f.name for f in self.fields if f.required and not f.has_default],
            "additionalProperties": False,
        }


def schema(*fields: FieldSpec) -> Schema:
    return Schema(fields=tuple(fields))


def string(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, Kind.STRING, **kwargs)


def number(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, Kind.NUMBER, **kwargs)


def boolean(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, Kind.BOOLEAN, **kwargs)


def array(name: str, items: FieldSpec, **kwargs) -> FieldSpec:
    return FieldSpec(name, Kind.ARRAY, items=items, **kwargs)


def obj(name: str, *fields: FieldSpec, **kwargs) -> FieldSpec:
    return FieldSpec(name, Kind.OBJECT, fields=schema(*fields), **kwargs)


def media_ref(name: str, **kwargs) -> FieldSpec:
    return FieldSpec(name, Kind.STRING, media=True, **kwargs)


def _field_json_schema(spec: FieldSpec) -> Dict[str, Any]:
    if spec.kind == Kind.ARRAY:
        out: Dict[str, Any] = {"type": "array", "items": _field_json_schema(spec.items)}
    elif spec.kind == Kind.OBJECT:
        out = spec.fields.to_json_schema()
    else:
        out = {"type": spec.kind.value}
    if spec.description:
        out["description"] = spec.description
    if spec.has_default:
        out["default"] = spec.default
    return out


def kind_of(value: Any) -> str:
    """Name the structural kind of a runtime value, for error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return Kind.BOOLEAN.value
    if isinstance(value, (int, float)):
        return Kind.NUMBER.value
    if isinstance(value, str):
        return Kind.STRING.value
    if isinstance(value, (list, tuple)):
        return Kind.ARRAY.value
    if isinstance(value, Mapping):
        return Kind.OBJECT.value
    return type(value).__name__


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def validate(schema: Schema, payload: Any, *, error_cls=SchemaViolation, path: str = "") -> Dict[str, Any]:
    """
    Validate `payload` against `schema` and return a new dict with defaults
    filled in. Unknown keys are dropped; the payload is never mutated.

    Raises `error_cls` (a SchemaViolation subclass) naming the offending path.
    """
    if not isinstance(payload, Mapping):
        raise error_cls(path or "$", Kind.OBJECT.value, kind_of(payload))

    result: Dict[str, Any] = {}
    for spec in schema:
        field_path = _join(path, spec.name)
        value = payload.get(spec.name)
        if value is None:
            if spec.has_default:
                result[spec.name] = copy.deepcopy(spec.default)
            elif spec.required:
                raise error_cls(field_path, spec.kind.value, "missing",
                                message=f"{field_path}: required field is missing")
            continue
        result[spec.name] = validate_value(spec, value, error_cls=error_cls, path=field_path)
    return result


def validate_value(spec: FieldSpec, value: Any, *, error_cls=SchemaViolation, path: Optional[str] = None) -> Any:
    path = spec.name if path is None else path
    actual = kind_of(value)

    if spec.kind == Kind.OBJECT:
        return validate(spec.fields, value, error_cls=error_cls, path=path)

    if spec.kind == Kind.ARRAY:
        if actual != Kind.ARRAY.value:
            raise error_cls(path, Kind.ARRAY.value, actual)
        items = []
        for i, item in enumerate(value):
            item_path = f"{path}[{i}]"
            if item is None:
                raise error_cls(item_path, spec.items.kind.value, "null")
            items.append(validate_value(spec.items, item, error_cls=error_cls, path=item_path))
        return items

    if actual != spec.kind.value:
        raise error_cls(path, spec.kind.value, actual)
    return value
