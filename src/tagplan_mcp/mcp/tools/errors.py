"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...errors import (
    ConflictError,
    ContainerNotFoundError,
    InvalidRequestError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    PlanParseError,
    PrerequisiteError,
    QuotaExceededError,
    TagPlanError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (prerequisite, not_found,
            permission_denied, quota_exceeded, conflict, validation_error,
            server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "No container for example.com", "Check the domain.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Role hints per tool
# ---------------------------------------------------------------------------

_REQUIRED_ROLE: dict[str, str] = {
    "tracking_sync": "Edit",
    "tracking_clean": "Edit",
    "tracking_publish": "Publish",
}


def translate_error(error: TagPlanError, tool_name: str = "") -> types.CallToolResult:
    """Translate a tagplan exception to a structured error response.

    Args:
        error: The exception raised by an engine operation.
        tool_name: Tool that raised it, used to name the missing role.

    Returns:
        CallToolResult with isError=True and corrective action
    """
    message = str(error)

    match error:
        case PrerequisiteError(step=step) if step:
            return build_error_response(
                "prerequisite",
                message,
                f"Run the '{step}' step first, then retry.",
            )
        case PrerequisiteError():
            return build_error_response(
                "prerequisite",
                message,
                "Create the missing project file, then retry.",
            )
        case PlanParseError():
            return build_error_response(
                "validation_error",
                message,
                "Fix the tracking plan YAML, then retry.",
            )
        case ContainerNotFoundError() | NotFoundError():
            return build_error_response(
                "not_found",
                message,
                "Check the domain or GTM-XXXX id and that the service "
                "account can see the container.",
            )
        case PermissionDeniedError():
            role = _REQUIRED_ROLE.get(tool_name, "Read")
            return build_error_response(
                "permission_denied",
                message,
                f"Grant the service account the '{role}' permission on the "
                "container (or property), then retry.",
            )
        case QuotaExceededError():
            return build_error_response(
                "quota_exceeded",
                message,
                "Wait a few minutes, then retry; elements already created "
                "are detected and skipped.",
            )
        case ConflictError():
            return build_error_response(
                "conflict",
                message,
                "Fix the workspace errors in the Tag Manager UI, then retry.",
            )
        case InvalidRequestError():
            return build_error_response(
                "validation_error",
                message,
                "Check the plan values sent for this element.",
            )
        case NetworkError():
            return build_error_response(
                "server_error",
                message,
                "Check network connectivity and retry.",
            )
        case _:
            return build_error_response(
                "server_error",
                message,
                "Retry later; re-running only applies what is still missing.",
            )
