"""Tests for the Summarizer and the You.com search client."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from browser_workflow.errors import NoOutputGeneratedError
from browser_workflow.llm import ModelTurn, ToolCallRequest
from browser_workflow.models import FINISH_REASON_FALLBACK, ExecutionStep, SearchResult
from browser_workflow.search import YouSearchClient
from browser_workflow.summarizer import Summarizer, format_sources, format_trajectory, parse_task_completed

from helpers import ScriptedModel


STEPS = [
    ExecutionStep(step=1, action="navigate", target="https://example.com", success=True, url="https://example.com"),
    ExecutionStep(step=2, action="click", target="#buy", success=False, error="Element not found"),
]


class FakeSearch:
    def __init__(self, results):
        self.results = results
        self.queries = []

    async def search(self, query, num_results=3):
        self.queries.append((query, num_results))
        return list(self.results)


def test_format_trajectory():
    assert format_trajectory(STEPS) == (
        "Step 1: navigate => SUCCESS | url: https://example.com\n"
        "Step 2: click => FAILURE"
    )


def test_parse_task_completed():
    assert parse_task_completed("...\nTASK_COMPLETED: YES") is True
    assert parse_task_completed("TASK_COMPLETED: no") is False
    assert parse_task_completed("no verdict") is None


def test_format_sources():
    text = format_sources([SearchResult("Docs", "https://docs.example.com"), SearchResult("", "https://x.org")])

    assert text == "\n\n### Sources\n- [Docs](https://docs.example.com)\n- [Source 2](https://x.org)"


@pytest.mark.asyncio
async def test_fallback_text_is_reused_without_model_call():
    model = ScriptedModel(completions=["should not be used"])

    result = await Summarizer().summarize(
        "", "Find the price", "⚠️ fallback text", model, finish_reason=FINISH_REASON_FALLBACK
    )

    assert result.summary == "⚠️ fallback text"
    assert result.success is False
    assert result.skipped is True
    assert model.complete_calls == []


@pytest.mark.asyncio
async def test_summarize_single_call():
    model = ScriptedModel(completions=["## Summary\nBought shoes.\nTASK_COMPLETED: YES"])

    result = await Summarizer().summarize(format_trajectory(STEPS), "Buy shoes", "Done", model)

    assert result.success is True
    assert result.task_completed is True
    call = model.complete_calls[0]
    assert call["tools"] is None
    assert "Step 2: click => FAILURE" in call["messages"][0]["content"]
    assert "**Objective:**\nBuy shoes" in call["messages"][0]["content"]


@pytest.mark.asyncio
async def test_summarize_failure_returns_unsuccessful_result():
    model = ScriptedModel(completions=[NoOutputGeneratedError("No output generated")])

    result = await Summarizer().summarize("", "Buy shoes", "Done", model)

    assert result.summary == ""
    assert result.success is False
    assert result.skipped is False


@pytest.mark.asyncio
async def test_summarize_with_search_appends_sources():
    search = FakeSearch([SearchResult("Shoe guide", "https://guide.example.com", "Sizes")])
    search_turn = ModelTurn(
        text="",
        tool_calls=[ToolCallRequest("call_1", "searchWeb", {"query": "shoe sizes", "num_results": 2})],
        finish_reason="tool_calls",
    )
    model = ScriptedModel(completions=[search_turn, "Shoes bought.\nTASK_COMPLETED: YES"])

    result = await Summarizer().summarize("Step 1: navigate => SUCCESS", "Buy shoes", "Done", model, search)

    assert search.queries == [("shoe sizes", 2)]
    assert result.summary.endswith("### Sources\n- [Shoe guide](https://guide.example.com)")
    assert result.sources[0].url == "https://guide.example.com"
    assert [c["tool_choice"] for c in model.complete_calls] == ["required", "auto"]
    tool_message = model.complete_calls[1]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert "Shoe guide" in tool_message["content"]


@pytest.mark.asyncio
async def test_summarize_with_search_final_step_has_no_tools():
    search = FakeSearch([])
    calls = [ToolCallRequest(f"call_{i}", "searchWeb", {"query": f"q{i}"}) for i in range(2)]
    model = ScriptedModel(
        completions=[
            ModelTurn(text="", tool_calls=[calls[0]], finish_reason="tool_calls"),
            ModelTurn(text="", tool_calls=[calls[1]], finish_reason="tool_calls"),
            "Final report",
        ]
    )

    result = await Summarizer().summarize("", "Research", "Done", model, search)

    assert result.summary == "Final report"
    assert model.complete_calls[2]["tools"] is None
    assert len(search.queries) == 2


@pytest.mark.asyncio
async def test_you_search_client_parses_results():
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = {
        "hits": [
            {"title": "A", "url": "https://a.com", "snippets": ["first"]},
            {"title": "B", "url": "https://b.com", "description": "second"},
        ]
    }
    client = MagicMock()
    client.post = AsyncMock(return_value=response)

    results = await YouSearchClient("key", client=client).search("shoes", num_results=2)

    assert [(r.title, r.url, r.snippet) for r in results] == [("A", "https://a.com", "first"), ("B", "https://b.com", "second")]
    kwargs = client.post.call_args.kwargs
    assert kwargs["headers"]["X-API-Key"] == "key"
    assert kwargs["json"] == {"query": "shoes", "num_web_results": 2}


@pytest.mark.asyncio
async def test_you_search_client_raises_on_http_error():
    request = httpx.Request("POST", "https://api.you.com/search")
    response = httpx.Response(401, request=request, json={"error": "unauthorized"})
    client = MagicMock()
    client.post = AsyncMock(return_value=response)

    with pytest.raises(httpx.HTTPStatusError):
        await YouSearchClient("bad-key", client=client).search("shoes")
