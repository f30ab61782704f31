"""Creation-time validation of catalog records."""

import re
from typing import TYPE_CHECKING

from synthetic_monitor.errors import ValidationError
from synthetic_monitor.models import (
    ApiDefinition,
    Node,
    NodeGroup,
    ParameterType,
    SyntheticTest,
    TargetKind,
)

if TYPE_CHECKING:
    from synthetic_monitor.repository import Repository

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE")

MIN_INTERVAL_SECONDS = 10
MAX_INTERVAL_SECONDS = 86400
MIN_THRESHOLD_MS = 0
MAX_THRESHOLD_MS = 60000

# Path segments of unreserved/sub-delim characters, plus {name} placeholders
URI_PATTERN = re.compile(r"^(/([a-zA-Z0-9._~%!$&'()*+,;=:@-]|\{[a-zA-Z_][a-zA-Z0-9_]*\})*)+$")
PLACEHOLDER_PATTERN = re.compile(r"\{([a-zA-Z_][a-zA-Z0-9_]*)\}")


def _check_name(errors: list[str], label: str, value: str, max_length: int) -> None:
    if not value or not value.strip():
        errors.append(f"{label} is required")
    elif len(value) > max_length:
        errors.append(f"{label} must be at most {max_length} characters")


def _raise_if(errors: list[str], what: str) -> None:
    if errors:
        raise ValidationError(f"Invalid {what}: {'; '.join(errors)}", errors)


def validate_node(node: Node) -> None:
    errors: list[str] = []
    _check_name(errors, "Node name", node.name, 50)
    _check_name(errors, "Host", node.host, 100)
    if not 1 <= node.port <= 65535:
        errors.append("Port must be between 1 and 65535")
    if len(node.description) > 100:
        errors.append("Description must be at most 100 characters")
    _raise_if(errors, "node")


def validate_node_group(group: NodeGroup, repository: "Repository") -> None:
    """Validate a group, including that every member node exists."""
    errors: list[str] = []
    _check_name(errors, "Group name", group.name, 50)
    if len(group.description) > 200:
        errors.append("Description must be at most 200 characters")
    if not group.node_ids:
        errors.append("At least one node must be selected")
    for node_id in group.node_ids:
        if repository.get_node(node_id) is None:
            errors.append(f"Node does not exist: {node_id}")
    _raise_if(errors, "node group")


def validate_api(api: ApiDefinition) -> None:
    errors: list[str] = []
    _check_name(errors, "API name", api.name, 50)

    if not api.uri or not api.uri.strip():
        errors.append("URI is required")
    elif not api.uri.startswith("/"):
        errors.append("URI must start with /")
    elif len(api.uri) > 200:
        errors.append("URI must be at most 200 characters")
    elif not URI_PATTERN.match(api.uri):
        errors.append(f"URI is not a valid path: {api.uri}")

    if api.method.upper() not in ALLOWED_METHODS:
        errors.append(f"Method must be one of {', '.join(ALLOWED_METHODS)}")

    seen: set[str] = set()
    for param in api.parameters:
        _check_name(errors, "Parameter name", param.name, 40)
        if param.name in seen:
            errors.append(f"Duplicate parameter: {param.name}")
        seen.add(param.name)
        if param.type == ParameterType.PATH and not param.required:
            errors.append(f"Path parameter must be required: {param.name}")

    for placeholder in PLACEHOLDER_PATTERN.findall(api.uri or ""):
        declared = api.get_parameter(placeholder)
        if declared is None or declared.type != ParameterType.PATH:
            errors.append(f"URI placeholder is not a declared path parameter: {placeholder}")

    _raise_if(errors, "API")


def validate_synthetic_test(test: SyntheticTest, repository: "Repository") -> None:
    """Validate a synthetic test and the records it refers to."""
    errors: list[str] = []
    _check_name(errors, "Test name", test.name, 50)

    if not MIN_INTERVAL_SECONDS <= test.interval_seconds <= MAX_INTERVAL_SECONDS:
        errors.append(
            f"Interval must be between {MIN_INTERVAL_SECONDS} and {MAX_INTERVAL_SECONDS} seconds"
        )
    if not MIN_THRESHOLD_MS <= test.alert_threshold_ms <= MAX_THRESHOLD_MS:
        errors.append(
            f"Alert threshold must be between {MIN_THRESHOLD_MS} and {MAX_THRESHOLD_MS} ms"
        )

    if test.target.kind == TargetKind.NODE:
        if repository.get_node(test.target.id) is None:
            errors.append(f"Target node does not exist: {test.target.id}")
    elif repository.get_node_group(test.target.id) is None:
        errors.append(f"Target group does not exist: {test.target.id}")

    api = repository.get_api(test.api_id)
    if api is None:
        errors.append(f"API does not exist: {test.api_id}")
    else:
        # Required parameters may still be supplied at execution time
        for name in test.parameters:
            if api.get_parameter(name) is None:
                errors.append(f"Unknown parameter: {name}")

    _raise_if(errors, "synthetic test")
