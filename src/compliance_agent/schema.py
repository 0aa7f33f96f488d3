"""
Input schemas for actions and skills.

A schema does two jobs: it validates structured input (returning the value or
a list of field-level errors) and it describes itself as a plain JSON-schema
dict so the same definition can be handed to the model provider as a tool
parameter description.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JSONSchemaValidationError


@dataclass(frozen=True)
class FieldError:
    """A single validation failure, addressed by dotted field path ("" = root)."""

    field: str
    message: str


@dataclass
class SchemaResult:
    """Outcome of ``Schema.validate``."""

    value: Any = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@runtime_checkable
class Schema(Protocol):
    """Capability interface every input schema provides."""

    def validate(self, data: Any) -> SchemaResult: ...

    def describe(self) -> dict[str, Any]: ...


def _field_for(error: JSONSchemaValidationError) -> str:
    path = ".".join(str(p) for p in error.absolute_path)
    if error.validator == "required" and isinstance(error.instance, dict):
        # The missing property is not part of the path; recover it.
        for name in error.validator_value:
            if name not in error.instance and f"'{name}'" in error.message:
                return f"{path}.{name}" if path else name
    return path


class JsonSchema:
    """
    ``Schema`` backed by a JSON-schema document.

    Example:
        schema = JsonSchema({
            "type": "object",
            "properties": {"newStatus": {"type": "string"}},
            "required": ["newStatus"],
        })
        result = schema.validate({"newStatus": "OPEN"})
        assert result.ok
    """

    def __init__(self, schema: dict[str, Any]) -> None:
        Draft202012Validator.check_schema(schema)
        self._schema = copy.deepcopy(schema)
        self._validator = Draft202012Validator(self._schema)

    def validate(self, data: Any) -> SchemaResult:
        errors = sorted(
            self._validator.iter_errors(data),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        if errors:
            return SchemaResult(
                errors=[FieldError(field=_field_for(e), message=e.message) for e in errors]
            )
        return SchemaResult(value=copy.deepcopy(data))

    def describe(self) -> dict[str, Any]:
        return copy.deepcopy(self._schema)

    def __repr__(self) -> str:
        return f"JsonSchema({self._schema!r})"


def object_schema(
    properties: dict[str, dict[str, Any]],
    required: list[str] | None = None,
) -> JsonSchema:
    """Shorthand for the common ``{"type": "object", ...}`` case."""
    return JsonSchema(
        {
            "type": "object",
            "properties": properties,
            "required": list(required or []),
        }
    )
