"""Typed parameter values passed to API invocations."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from synthetic_monitor.errors import ParameterDecodeError, ValidationError
from synthetic_monitor.models import ApiDefinition


class ValueKind(str, Enum):
    """Tag describing the type of a parameter value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"


@dataclass(frozen=True)
class ParameterValue:
    """A parameter value with an explicit type tag."""

    kind: ValueKind
    value: Any

    @classmethod
    def of(cls, raw: Any) -> "ParameterValue":
        """Wrap a plain Python value, inferring its kind."""
        if isinstance(raw, ParameterValue):
            return raw
        # bool is a subclass of int
        if isinstance(raw, bool):
            return cls(ValueKind.BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            return cls(ValueKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(ValueKind.STRING, raw)
        return cls(ValueKind.JSON, raw)

    def as_query(self) -> str:
        """String form used in paths and query strings."""
        if self.kind == ValueKind.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind == ValueKind.JSON:
            return json.dumps(self.value, separators=(",", ":"))
        return str(self.value)

    def as_json(self) -> Any:
        return self.value


def coerce_parameters(raw: Mapping[str, Any] | None) -> dict[str, ParameterValue]:
    """Convert a plain mapping into typed parameter values."""
    if not raw:
        return {}
    return {str(name): ParameterValue.of(value) for name, value in raw.items()}


def plain_parameters(values: Mapping[str, ParameterValue]) -> dict[str, Any]:
    """Inverse of :func:`coerce_parameters`."""
    return {name: value.as_json() for name, value in values.items()}


def validate_parameters(api: ApiDefinition, values: Mapping[str, ParameterValue]) -> None:
    """Check parameter values against an API's declarations.

    Args:
        api: API whose declared parameters are the allowed set.
        values: Values to be sent.

    Raises:
        ValidationError: If an unknown parameter is given or a required
            parameter is missing. All problems are reported together.
    """
    errors = []

    declared = {p.name for p in api.parameters}
    for name in values:
        if name not in declared:
            errors.append(f"Unknown parameter: {name}")

    for param in api.parameters:
        if param.required and param.name not in values:
            errors.append(f"Missing required parameter: {param.name}")

    if errors:
        raise ValidationError(
            f"Invalid parameters for API '{api.name}': {'; '.join(errors)}",
            errors,
        )


def serialize_input(values: Mapping[str, ParameterValue]) -> str:
    """Serialize parameters into the stored input payload."""
    return json.dumps({"parameters": plain_parameters(values)}, ensure_ascii=False)


def decode_parameters(raw: str | None) -> dict[str, Any]:
    """Decode the parameters out of a stored input payload.

    Raises:
        ParameterDecodeError: If the payload is not valid JSON or not an object.
    """
    if not raw:
        return {}

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ParameterDecodeError(f"Input payload is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParameterDecodeError("Input payload is not a JSON object")

    parameters = data.get("parameters", {})
    if not isinstance(parameters, dict):
        raise ParameterDecodeError("Input 'parameters' is not a JSON object")
    return parameters
