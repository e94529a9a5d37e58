"""MCP tool handlers for tracking-plan operations.

This package wraps the sync engine and the auditor with async handlers,
text/JSON rendering and structured error responses.
"""

from .errors import build_error_response, translate_error
from .registry import (
    DELETE,
    EDIT,
    PUBLISH,
    READ,
    ServerContext,
    ToolRegistry,
    ToolSpec,
    load_permissions_file,
)
from .tracking import TRACKING_SPECS

ALL_SPECS: list[ToolSpec] = list(TRACKING_SPECS)

__all__ = [
    "build_error_response",
    "translate_error",
    # Registry
    "ServerContext",
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    "READ",
    "EDIT",
    "DELETE",
    "PUBLISH",
    # Spec lists
    "ALL_SPECS",
    "TRACKING_SPECS",
]
