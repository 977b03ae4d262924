"""
API module: transport-neutral tool handlers.
"""

from browsermesh.api.tools import (
    CLOSE_TOOL_NAME,
    CREATE_TOOL_NAME,
    TOOL_NAMES,
    USAGE_TOOL_NAME,
    SessionTools,
    ToolResponse,
)

__all__ = [
    "CLOSE_TOOL_NAME",
    "CREATE_TOOL_NAME",
    "TOOL_NAMES",
    "USAGE_TOOL_NAME",
    "SessionTools",
    "ToolResponse",
]
