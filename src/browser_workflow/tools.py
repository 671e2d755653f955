"""
Browser tool contract for the execution loop.

Defines the tool definitions offered to the model, the ``ToolInvoker`` contract
implemented by browser executors, a ``ToolSet`` that binds the two, and a
``RetryingToolInvoker`` adding per-tool timeouts and transient-failure retries.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

from browser_workflow.errors import ToolExecutionError, is_transient_error


logger = logging.getLogger(__name__)

# Seconds allowed per tool invocation.
TOOL_TIMEOUTS: Dict[str, float] = {
    "screenshot": 10.0,
    "navigate": 15.0,
    "click": 8.0,
    "type": 6.0,
    "scroll": 4.0,
    "getPageContext": 5.0,
    "wait": 30.0,
    "pressKey": 3.0,
    "keyCombo": 3.0,
}
DEFAULT_TOOL_TIMEOUT = 8.0
MAX_TOOL_RETRIES = 3
TOOL_RETRY_DELAY = 1.5
MAX_WAIT_SECONDS = 30.0


class ToolInvoker(Protocol):
    async def invoke(self, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


BROWSER_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="navigate",
        description="Open a URL in the current tab. Follow with getPageContext to verify.",
        parameters={
            "type": "object",
            "properties": {"url": {"type": "string", "description": "Absolute URL to open"}},
            "required": ["url"],
        },
    ),
    ToolDefinition(
        name="click",
        description="Click an element by CSS selector, or at viewport coordinates x/y.",
        parameters={
            "type": "object",
            "properties": {
                "selector": {"type": "string", "description": "CSS selector taken from the page context"},
                "x": {"type": "number"},
                "y": {"type": "number"},
            },
        },
    ),
    ToolDefinition(
        name="type",
        description="Type text into an input. Focuses the selector first when one is given.",
        parameters={
            "type": "object",
            "properties": {
                "selector": {"type": "string"},
                "text": {"type": "string"},
                "pressEnter": {"type": "boolean", "description": "Press Enter after typing"},
            },
            "required": ["text"],
        },
    ),
    ToolDefinition(
        name="scroll",
        description="Scroll the page (up, down, top, bottom) or scroll an element into view.",
        parameters={
            "type": "object",
            "properties": {
                "direction": {"type": "string", "enum": ["up", "down", "top", "bottom"]},
                "selector": {"type": "string"},
                "amount": {"type": "integer", "description": "Pixels to scroll for up/down"},
            },
        },
    ),
    ToolDefinition(
        name="getPageContext",
        description="Read the current page: URL, title, visible text, links and forms.",
    ),
    ToolDefinition(
        name="wait",
        description="Pause for a number of seconds (max 30) to let the page settle.",
        parameters={
            "type": "object",
            "properties": {"seconds": {"type": "number"}},
            "required": ["seconds"],
        },
    ),
    ToolDefinition(
        name="pressKey",
        description="Press a single key such as Enter, Tab or Escape.",
        parameters={
            "type": "object",
            "properties": {"key": {"type": "string"}},
            "required": ["key"],
        },
    ),
    ToolDefinition(
        name="keyCombo",
        description="Press a key combination, e.g. ['Control', 'a'].",
        parameters={
            "type": "object",
            "properties": {"keys": {"type": "array", "items": {"type": "string"}}},
            "required": ["keys"],
        },
    ),
    ToolDefinition(
        name="screenshot",
        description="Capture a screenshot of the current viewport.",
    ),
]


def normalize_tool_result(result: Any) -> Dict[str, Any]:
    """Coerce an invoker result into a dict carrying an explicit ``success`` flag."""
    if not isinstance(result, dict):
        return {"success": True, "result": result}
    result = dict(result)
    if result.get("error") or result.get("isError"):
        result["success"] = False
        result.setdefault("error", "Tool reported an error")
    else:
        result.setdefault("success", True)
    return result


class ToolSet:
    """
    Tools offered to the model, bound to the invoker that executes them.

    ``wait`` runs locally; every other tool is delegated to the invoker.
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        definitions: Optional[Iterable[ToolDefinition]] = None,
        max_wait_seconds: float = MAX_WAIT_SECONDS,
    ):
        self.invoker = invoker
        self.max_wait_seconds = max_wait_seconds
        self._definitions = {d.name: d for d in (definitions if definitions is not None else BROWSER_TOOLS)}

    @property
    def names(self) -> List[str]:
        return list(self._definitions)

    def openai_tools(self) -> List[Dict[str, Any]]:
        return [d.to_openai() for d in self._definitions.values()]

    async def execute(self, tool_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run one tool.

        Returns:
            Normalized result dict; unknown tools yield a failed result

        Raises:
            Exception: Whatever the invoker raises
        """
        if tool_name not in self._definitions:
            return {"success": False, "error": f"Unknown tool: {tool_name}"}

        if tool_name == "wait":
            try:
                seconds = float(args.get("seconds", 1))
            except (TypeError, ValueError):
                seconds = 1.0
            seconds = max(0.0, min(seconds, self.max_wait_seconds))
            await asyncio.sleep(seconds)
            return {"success": True, "waited": seconds}

        return normalize_tool_result(await self.invoker.invoke(tool_name, args))


class RetryingToolInvoker:
    """
    Wraps a ToolInvoker with per-tool timeouts and bounded transient retries.

    Transient failures (timeouts, dropped connections, unreachable content
    scripts) are retried up to ``max_retries`` times with a fixed delay. Other
    errors surface immediately.
    """

    def __init__(
        self,
        inner: ToolInvoker,
        timeouts: Optional[Dict[str, float]] = None,
        default_timeout: float = DEFAULT_TOOL_TIMEOUT,
        max_retries: int = MAX_TOOL_RETRIES,
        retry_delay: float = TOOL_RETRY_DELAY,
    ):
        self.inner = inner
        self.timeouts = dict(TOOL_TIMEOUTS if timeouts is None else timeouts)
        self.default_timeout = default_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def timeout_for(self, tool_name: str) -> float:
        return self.timeouts.get(tool_name, self.default_timeout)

    async def invoke(self, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        timeout = self.timeout_for(tool_name)
        attempts = self.max_retries + 1
        last_error = None

        for attempt in range(1, attempts + 1):
            try:
                result = await asyncio.wait_for(self.inner.invoke(tool_name, params), timeout=timeout)
            except asyncio.TimeoutError:
                last_error = f"Tool '{tool_name}' timeout after {timeout}s"
            except Exception as e:
                if not is_transient_error(str(e)):
                    raise
                last_error = str(e)
            else:
                error = result.get("error") if isinstance(result, dict) else None
                if not (error and is_transient_error(str(error))):
                    return result
                last_error = str(error)

            if attempt < attempts:
                logger.warning(
                    "Transient failure for %s (attempt %d/%d): %s; retrying in %.1fs",
                    tool_name,
                    attempt,
                    attempts,
                    last_error,
                    self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)

        raise ToolExecutionError(
            tool_name,
            f"{tool_name} failed after {attempts} attempts: {last_error}",
            attempts=attempts,
        )
