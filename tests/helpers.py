"""
Shared fakes for workflow tests.

ScriptedModel replays canned model turns so the workflow can be driven without
a network, and RecordingInvoker stands in for a browser.
"""

from typing import Any, Dict, List, Optional

from browser_workflow.errors import NoOutputGeneratedError, StructuredOutputError
from browser_workflow.llm import ModelTurn, TextDelta, ToolCallRequest, TurnFinish
from browser_workflow.models import Usage


class AsyncIter:
    """Async iterator over a fixed list, used to fake streamed responses."""

    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)


def tool_turn(*calls, text: str = "") -> List[Any]:
    """Model turn requesting tools. Each call is (tool_name, args)."""
    events: List[Any] = [TextDelta(text=text)] if text else []
    for i, (tool_name, args) in enumerate(calls, start=1):
        events.append(ToolCallRequest(tool_call_id=f"call_{tool_name}_{i}", tool_name=tool_name, arguments=dict(args)))
    events.append(TurnFinish(finish_reason="tool_calls", usage=Usage(10, 5, 15)))
    return events


def text_turn(text: str) -> List[Any]:
    return [TextDelta(text=text), TurnFinish(finish_reason="stop", usage=Usage(10, 20, 30))]


class ScriptedModel:
    """
    LanguageModel fake.

    Attributes:
        turns: Queue of stream_turn scripts (event lists or exceptions)
        structured: Queue of generate_structured results (dicts, models or exceptions)
        completions: Queue of complete results (ModelTurn or exceptions)
    """

    def __init__(self, turns=None, structured=None, completions=None, model: str = "fake-model"):
        self.model = model
        self.turns = list(turns or [])
        self.structured = list(structured or [])
        self.completions = list(completions or [])
        self.stream_calls: List[Dict[str, Any]] = []
        self.structured_calls: List[Dict[str, Any]] = []
        self.complete_calls: List[Dict[str, Any]] = []

    async def generate_structured(self, schema, system_prompt, user_prompt, *, repair=None, max_retries=2):
        self.structured_calls.append(
            {"schema": schema, "system_prompt": system_prompt, "user_prompt": user_prompt}
        )
        if not self.structured:
            raise StructuredOutputError(f"No scripted output for {schema.__name__}")
        item = self.structured.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            if repair is not None:
                item = repair(item)
            return schema.model_validate(item)
        return item

    async def complete(
        self,
        system_prompt,
        messages,
        tools=None,
        tool_choice=None,
        max_tokens=None,
        temperature=None,
    ):
        self.complete_calls.append(
            {
                "system_prompt": system_prompt,
                "messages": list(messages),
                "tools": tools,
                "tool_choice": tool_choice,
            }
        )
        if not self.completions:
            raise NoOutputGeneratedError("No output generated")
        item = self.completions.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return ModelTurn(text=item, tool_calls=[], finish_reason="stop")
        return item

    async def stream_turn(self, system_prompt, messages, tools, tool_choice="auto"):
        self.stream_calls.append(
            {"system_prompt": system_prompt, "messages": list(messages), "tool_choice": tool_choice}
        )
        if not self.turns:
            raise NoOutputGeneratedError("No output generated")
        script = self.turns.pop(0)
        if isinstance(script, Exception):
            raise script
        for event in script:
            yield event


class RecordingInvoker:
    """
    ToolInvoker fake.

    ``results`` maps tool names to a result dict, an exception, or a list of
    those consumed in order (the last entry repeats).
    """

    def __init__(self, results: Optional[Dict[str, Any]] = None):
        self.results = dict(results or {})
        self.calls: List[tuple] = []

    async def invoke(self, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((tool_name, dict(params)))
        result = self.results.get(tool_name, {"success": True})
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, Exception):
            raise result
        return result

    def called(self, tool_name: str) -> int:
        return sum(1 for name, _ in self.calls if name == tool_name)


def planning_payload(steps=None, confidence: float = 0.8) -> Dict[str, Any]:
    steps = steps or [
        {
            "step": 1,
            "action": "navigate",
            "target": "https://example.com",
            "reasoning": "Open the site",
            "expectedOutcome": "Site loaded",
        },
        {
            "step": 2,
            "action": "getPageContext",
            "target": "current_page",
            "reasoning": "Read the page",
            "expectedOutcome": "Page text available",
        },
    ]
    return {
        "plan": {
            "objective": "Read example.com",
            "approach": "Open and read",
            "steps": steps,
            "criticalPaths": [1],
            "estimatedSteps": len(steps),
            "complexityScore": 0.3,
            "potentialIssues": [],
            "optimizations": [],
        },
        "confidence": confidence,
    }


def evaluation_payload(
    quality: str = "good",
    should_retry: bool = False,
    should_proceed: bool = True,
    issues=None,
    strategy: Optional[Dict[str, Any]] = None,
    score: float = 0.8,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "quality": quality,
        "score": score,
        "completeness": score,
        "correctness": score,
        "issues": list(issues or []),
        "successes": ["Page was opened"],
        "recommendations": [],
        "shouldRetry": should_retry,
        "shouldProceed": should_proceed,
    }
    if strategy is not None:
        payload["retryStrategy"] = strategy
    return payload
