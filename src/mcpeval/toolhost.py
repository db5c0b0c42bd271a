"""Tool hosts: where evaluated actions are executed.

``MCPToolHost`` talks to a real MCP server over stdio or SSE.
``LocalToolHost`` exposes plain Python callables, which is what tests
and in-process experiments use.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import shlex
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol

from mcpeval.errors import ToolInvocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capability:
    """A named, schema-described operation offered by a tool host."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)

    def describe_parameters(self) -> str:
        """Render the JSON-schema parameters as a bullet list for prompts."""
        props = self.parameters.get("properties")
        if not props:
            if self.parameters:
                return json.dumps(self.parameters, indent=2)
            return "No parameters required"
        required = set(self.parameters.get("required") or [])
        lines = []
        for name, details in props.items():
            details = details if isinstance(details, dict) else {}
            flag = " (REQUIRED)" if name in required else ""
            lines.append(
                f"- {name}{flag}: {details.get('type', 'any')} - {details.get('description', '')}"
            )
        return "\n".join(lines)


class ToolHost(Protocol):
    """Protocol that all tool hosts must satisfy."""

    async def list_capabilities(self) -> List[Capability]: ...

    async def invoke(self, name: str, arguments: Dict[str, Any]) -> Any: ...


class LocalToolHost:
    """Tool host backed by Python callables (sync or async)."""

    def __init__(self) -> None:
        self._tools: Dict[str, Callable[..., Any]] = {}
        self._capabilities: Dict[str, Capability] = {}

    def register(
        self,
        name: str,
        fn: Callable[..., Any],
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Expose ``fn`` as capability ``name``. It receives arguments as kwargs."""
        self._tools[name] = fn
        self._capabilities[name] = Capability(name, description, parameters or {})

    async def list_capabilities(self) -> List[Capability]:
        return list(self._capabilities.values())

    async def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        if name not in self._tools:
            raise ToolInvocationError(name, f"Unknown tool: {name!r}")
        try:
            result = self._tools[name](**arguments)
            if inspect.isawaitable(result):
                result = await result
        except ToolInvocationError:
            raise
        except Exception as e:
            raise ToolInvocationError(name, str(e)) from e
        return result


def decode_content(content: List[Any]) -> Any:
    """Turn MCP result content into something step references can address.

    A single text item holding JSON is decoded; other text items are
    returned as ``{"content": [...]}``.
    """
    texts = [getattr(item, "text", None) for item in content]
    texts = [t for t in texts if t is not None]
    if len(texts) == 1:
        try:
            return json.loads(texts[0])
        except json.JSONDecodeError:
            pass
    return {"content": texts}


class MCPToolHost:
    """Tool host backed by an MCP client session."""

    def __init__(self, session: Any) -> None:
        self._session = session
        self._capabilities: Optional[List[Capability]] = None
        self._lock = asyncio.Lock()

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        command: Optional[str] = None,
        url: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator["MCPToolHost"]:
        """Start (stdio) or reach (SSE) an MCP server and yield a host for it."""
        from mcp import ClientSession, StdioServerParameters
        from mcp.client.sse import sse_client
        from mcp.client.stdio import stdio_client

        if not command and not url:
            raise ValueError("Either an MCP server command or URL must be provided")

        async with AsyncExitStack() as stack:
            if command:
                argv = shlex.split(command)
                logger.info("Starting MCP server: %s", argv)
                params = StdioServerParameters(command=argv[0], args=argv[1:], env=env)
                read, write = await stack.enter_async_context(stdio_client(params))
            else:
                logger.info("Connecting to MCP server at %s", url)
                read, write = await stack.enter_async_context(sse_client(url))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
            host = cls(session)
            tools = await host.list_capabilities()
            logger.info("Available tools (%d): %s", len(tools), ", ".join(t.name for t in tools))
            yield host

    async def list_capabilities(self) -> List[Capability]:
        async with self._lock:
            if self._capabilities is None:
                result = await self._session.list_tools()
                self._capabilities = [
                    Capability(
                        name=t.name,
                        description=t.description or "",
                        parameters=dict(t.inputSchema or {}),
                    )
                    for t in result.tools
                ]
        return list(self._capabilities)

    async def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        try:
            result = await self._session.call_tool(name, arguments)
        except Exception as e:
            raise ToolInvocationError(name, str(e)) from e
        decoded = decode_content(result.content or [])
        if result.isError:
            message = decoded if isinstance(decoded, str) else json.dumps(decoded, default=str)
            raise ToolInvocationError(name, message)
        return decoded
