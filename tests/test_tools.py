"""
Tests for the tool set and the retrying tool invoker.

These tests verify:
- Local handling of wait and unknown tools
- Result normalization
- Transient-failure retries, timeouts and retry exhaustion
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from browser_workflow.errors import ToolExecutionError
from browser_workflow.tools import BROWSER_TOOLS, RetryingToolInvoker, ToolSet, normalize_tool_result

from helpers import RecordingInvoker


TRANSIENT = "Could not establish connection. Receiving end does not exist."


def test_browser_tools_have_openai_shape():
    tool_set = ToolSet(RecordingInvoker())

    tools = tool_set.openai_tools()

    assert len(tools) == len(BROWSER_TOOLS)
    assert all(t["type"] == "function" for t in tools)
    assert {"navigate", "click", "type", "scroll", "getPageContext", "wait"} <= set(tool_set.names)


def test_normalize_tool_result():
    assert normalize_tool_result({"url": "a"}) == {"url": "a", "success": True}
    assert normalize_tool_result({"error": "boom"}) == {"error": "boom", "success": False}
    assert normalize_tool_result("done") == {"success": True, "result": "done"}


@pytest.mark.asyncio
async def test_tool_set_unknown_tool():
    invoker = RecordingInvoker()
    result = await ToolSet(invoker).execute("teleport", {})

    assert result == {"success": False, "error": "Unknown tool: teleport"}
    assert invoker.calls == []


@pytest.mark.asyncio
async def test_tool_set_wait_runs_locally_and_is_capped():
    invoker = RecordingInvoker()
    tool_set = ToolSet(invoker, max_wait_seconds=2)

    with patch("browser_workflow.tools.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await tool_set.execute("wait", {"seconds": 60})

    sleep.assert_awaited_once_with(2)
    assert result == {"success": True, "waited": 2}
    assert invoker.calls == []


@pytest.mark.asyncio
async def test_tool_set_delegates_to_invoker():
    invoker = RecordingInvoker({"navigate": {"url": "https://example.com"}})

    result = await ToolSet(invoker).execute("navigate", {"url": "https://example.com"})

    assert result["success"] is True
    assert invoker.calls == [("navigate", {"url": "https://example.com"})]


@pytest.mark.asyncio
async def test_tool_set_propagates_invoker_exceptions():
    invoker = RecordingInvoker({"click": RuntimeError("browser crashed")})

    with pytest.raises(RuntimeError, match="browser crashed"):
        await ToolSet(invoker).execute("click", {"selector": "#a"})


@pytest.mark.asyncio
async def test_retrying_invoker_recovers_from_transient_errors():
    """Test that two transient failures are retried and the third attempt succeeds."""
    invoker = RecordingInvoker(
        {"click": [{"success": False, "error": TRANSIENT}, RuntimeError(TRANSIENT), {"success": True}]}
    )
    retrying = RetryingToolInvoker(invoker, retry_delay=0)

    result = await retrying.invoke("click", {"selector": "#a"})

    assert result == {"success": True}
    assert invoker.called("click") == 3


@pytest.mark.asyncio
async def test_retrying_invoker_gives_up_after_max_retries():
    invoker = RecordingInvoker({"click": {"success": False, "error": "Network error while clicking"}})
    retrying = RetryingToolInvoker(invoker, max_retries=3, retry_delay=0)

    with pytest.raises(ToolExecutionError) as exc_info:
        await retrying.invoke("click", {"selector": "#a"})

    assert exc_info.value.tool_name == "click"
    assert exc_info.value.attempts == 4
    assert invoker.called("click") == 4


@pytest.mark.asyncio
async def test_retrying_invoker_does_not_retry_other_errors():
    invoker = RecordingInvoker({"click": ValueError("Element not found: #missing")})
    retrying = RetryingToolInvoker(invoker, retry_delay=0)

    with pytest.raises(ValueError):
        await retrying.invoke("click", {"selector": "#missing"})

    assert invoker.called("click") == 1


@pytest.mark.asyncio
async def test_retrying_invoker_returns_non_transient_error_results():
    invoker = RecordingInvoker({"click": {"success": False, "error": "Element not found"}})
    retrying = RetryingToolInvoker(invoker, retry_delay=0)

    result = await retrying.invoke("click", {"selector": "#a"})

    assert result["error"] == "Element not found"
    assert invoker.called("click") == 1


@pytest.mark.asyncio
async def test_retrying_invoker_times_out_slow_tools():
    class SlowInvoker:
        calls = 0

        async def invoke(self, tool_name, params):
            SlowInvoker.calls += 1
            await asyncio.sleep(1)
            return {"success": True}

    retrying = RetryingToolInvoker(SlowInvoker(), timeouts={"scroll": 0.01}, max_retries=1, retry_delay=0)

    with pytest.raises(ToolExecutionError, match="timeout after 0.01s"):
        await retrying.invoke("scroll", {"direction": "down"})

    assert SlowInvoker.calls == 2


def test_timeout_for_uses_default():
    retrying = RetryingToolInvoker(RecordingInvoker(), default_timeout=4)

    assert retrying.timeout_for("navigate") == 15.0
    assert retrying.timeout_for("customTool") == 4
