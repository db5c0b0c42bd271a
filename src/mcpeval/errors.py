"""Exception hierarchy for mcpeval."""

from __future__ import annotations


class MCPEvalError(Exception):
    """Base class for all mcpeval errors."""


class ToolInvocationError(MCPEvalError):
    """Raised by a tool host when a capability call fails."""

    kind = "error"

    def __init__(self, tool: str, message: str) -> None:
        self.tool = tool
        self.message = message
        super().__init__(f"Tool '{tool}' failed: {message}")


class ToolTimeoutError(ToolInvocationError):
    """A tool call did not return before its deadline."""

    kind = "timeout"

    def __init__(self, tool: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(tool, f"timed out after {timeout:g}s")


class GatewayError(MCPEvalError):
    """A model gateway call failed (network or provider fault)."""


class GatewayTimeoutError(GatewayError):
    """A model gateway call did not return before its deadline."""


class UnresolvedReferenceError(MCPEvalError):
    """A step reference could not be resolved while in strict mode."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Unresolved reference {expression!r}: {reason}")


class SchedulerConfigError(MCPEvalError):
    """The run cannot start: no runnable provider/model combination."""
