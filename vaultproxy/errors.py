"""Error types shared across the proxy."""

from enum import Enum


class VaultProxyError(Exception):
    """Base class for all proxy errors."""

    def __init__(self, message: str, retriable: bool = False) -> None:
        super().__init__(message)
        self.retriable = retriable


class ChatValidationError(VaultProxyError):
    """Raised when an inbound chat request is missing required fields."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to accept chat request: {reason}")
        self.reason = reason


class ModelTransportError(VaultProxyError):
    """Raised when the language-model connection fails before or during a stream."""

    def __init__(self, reason: str, retriable: bool = False) -> None:
        super().__init__(f"Failed to stream model response: {reason}", retriable=retriable)


class UpstreamToolError(VaultProxyError):
    """The secret store rejected a tool's HTTP call.

    Handlers never raise this across the executor boundary; it is used to
    carry the status and the store's error strings into a ToolResult.
    """

    def __init__(self, status: int, errors: list[str]) -> None:
        detail = ", ".join(errors) if errors else f"HTTP {status}"
        super().__init__(detail)
        self.status = status
        self.errors = errors


class MalformedToolArguments(VaultProxyError):
    """Tool-call argument fragments did not form a JSON object."""

    def __init__(self, tool_name: str, raw: str) -> None:
        super().__init__(f"Failed to parse arguments for tool '{tool_name}'")
        self.tool_name = tool_name
        self.raw = raw


class ToolErrorKind(str, Enum):
    NETWORK_FAILURE = "NetworkFailure"
    UPSTREAM_REJECTED = "UpstreamRejected"
    UNKNOWN_TOOL = "UnknownTool"
    INVALID_ARGUMENTS = "InvalidArguments"
    # Handler failed on an unexpected store response
    HANDLER_FAILED = "HandlerFailed"
