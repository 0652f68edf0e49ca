"""Validation and bounded repair of model output against content schemas.

Only three shape ambiguities are ever repaired, and only on fields that carry
the matching marker in their annotation:

``ScalarToList``
    a list-of-text field received a single string; it becomes a one-element list.
``ListToText``
    a text field received a list of strings; they are joined with a separator.
``NumericText``
    a numeric field received a numeric-looking string; it is converted.

Every other mismatch is left for pydantic's strict types to reject, and
surfaces as a ``SchemaViolationError`` naming the field path.
"""

from __future__ import annotations

import json
import re
import types
from dataclasses import dataclass, field
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr
from pydantic import ValidationError, ValidationInfo, model_validator
from pydantic.alias_generators import to_camel
from pydantic.fields import FieldInfo

from orchestrator.core.exceptions import MalformedEncodingError, SchemaViolationError

_FENCE_RE = re.compile(r"^```[A-Za-z]*[ \t]*\n(?P<body>.*)\n[ \t]*```$", re.DOTALL)
_INTEGER_RE = re.compile(r"[+-]?\d+")

_UNCHANGED = object()


class Repair:
    """Base class for allow-listed repairs. Subclasses return ``_UNCHANGED`` when not applicable."""

    def apply(self, value: Any) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class ScalarToList(Repair):
    def apply(self, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return _UNCHANGED


@dataclass(frozen=True)
class ListToText(Repair):
    separator: str = ", "

    def apply(self, value: Any) -> Any:
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return self.separator.join(value)
        return _UNCHANGED


@dataclass(frozen=True)
class NumericText(Repair):
    def apply(self, value: Any) -> Any:
        if isinstance(value, str) and _INTEGER_RE.fullmatch(value.strip()):
            return int(value.strip())
        return _UNCHANGED


TextList = Annotated[list[StrictStr], ScalarToList()]
JoinedText = Annotated[StrictStr, ListToText()]
Integer = Annotated[StrictInt, NumericText()]


def _repair_in_annotation(annotation: Any) -> Repair | None:
    origin = get_origin(annotation)
    if origin is Annotated:
        base, *extras = get_args(annotation)
        for extra in extras:
            if isinstance(extra, Repair):
                return extra
        return _repair_in_annotation(base)
    if origin is Union or origin is types.UnionType:
        for arg in get_args(annotation):
            found = _repair_in_annotation(arg)
            if found is not None:
                return found
    return None


def _repair_for(field_info: FieldInfo) -> Repair | None:
    for item in field_info.metadata:
        if isinstance(item, Repair):
            return item
    return _repair_in_annotation(field_info.annotation)


class StructuredContent(BaseModel):
    """Base model for generated content: camelCase on the wire, strict scalars."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _apply_allowed_repairs(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data

        repaired = dict(data)
        for name, field_info in cls.model_fields.items():
            key = field_info.alias if field_info.alias in repaired else name
            if key not in repaired:
                continue
            rule = _repair_for(field_info)
            if rule is None:
                continue
            value = rule.apply(repaired[key])
            if value is _UNCHANGED:
                continue
            repaired[key] = value
            if isinstance(info.context, dict):
                info.context.setdefault("repairs", []).append(
                    f"{cls.__name__}.{key}: {type(rule).__name__}"
                )
        return repaired


@dataclass(frozen=True)
class ValidatedContent:
    value: StructuredContent
    repairs: tuple[str, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return self.value.model_dump(by_alias=True, exclude_none=True)


def _strip_fence(raw_output: str) -> str:
    text = raw_output.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group("body").strip()
    return text


def _field_path(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def parse_output(raw_output: str) -> Any:
    """Decode model output as JSON, raising MalformedEncodingError on failure."""
    text = _strip_fence(raw_output or "")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedEncodingError(
            f"Output is not valid JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})"
        ) from exc
    except (ValueError, RecursionError) as exc:
        # Oversized integer literals and pathological nesting.
        raise MalformedEncodingError(f"Output could not be decoded: {exc}") from exc


def validate(raw_output: str, schema: type[StructuredContent]) -> ValidatedContent:
    """Parse ``raw_output`` and validate it against ``schema``.

    Pure and deterministic: the same input always produces the same value or
    the same error.
    """
    parsed = parse_output(raw_output)
    context: dict[str, Any] = {"repairs": []}
    try:
        value = schema.model_validate(parsed, context=context)
    except RecursionError as exc:
        raise SchemaViolationError("<root>", "Output is nested too deeply") from exc
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        violations = [f"{_field_path(error['loc'])}: {error['msg']}" for error in errors]
        first = errors[0]
        raise SchemaViolationError(
            _field_path(first["loc"]), first["msg"], violations=violations
        ) from exc
    return ValidatedContent(value=value, repairs=tuple(context["repairs"]))


__all__ = [
    "Integer",
    "JoinedText",
    "ListToText",
    "NumericText",
    "Repair",
    "ScalarToList",
    "StructuredContent",
    "TextList",
    "ValidatedContent",
    "parse_output",
    "validate",
]
