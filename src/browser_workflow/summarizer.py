"""
Summarizer for finished workflow runs.

Turns the accepted execution trajectory into a markdown report. When a search
provider is available the model may call a ``searchWeb`` tool and the cited
sources are appended. Summarization is best effort: failures are reported as
``success=False`` and never raised.
"""

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from browser_workflow.errors import classify_error
from browser_workflow.llm import LanguageModel
from browser_workflow.models import FINISH_REASON_FALLBACK, ExecutionStep, SearchResult, SummarizationResult
from browser_workflow.prompts import SUMMARIZER_SYSTEM_PROMPT, SUMMARIZER_USER_PROMPT
from browser_workflow.search import SearchProvider
from browser_workflow.tools import ToolDefinition


logger = logging.getLogger(__name__)

MAX_SUMMARY_STEPS = 3
SUMMARY_MAX_TOKENS = 600
SUMMARY_TEMPERATURE = 0.7

_TASK_COMPLETED = re.compile(r"TASK_COMPLETED:\s*(YES|NO)", re.IGNORECASE)

SEARCH_TOOL = ToolDefinition(
    name="searchWeb",
    description="Search the web to find relevant, up-to-date information",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Search query"},
            "num_results": {"type": "integer", "description": "Number of results to return (1-10)"},
        },
        "required": ["query"],
    },
)


def format_trajectory(steps: List[ExecutionStep]) -> str:
    """Render execution steps as one line per step."""
    lines = []
    for s in steps:
        line = f"Step {s.step}: {s.action} => {'SUCCESS' if s.success else 'FAILURE'}"
        if s.url:
            line += f" | url: {s.url}"
        lines.append(line)
    return "\n".join(lines)


def parse_task_completed(summary: str) -> Optional[bool]:
    matches = _TASK_COMPLETED.findall(summary or "")
    if not matches:
        return None
    return matches[-1].upper() == "YES"


def format_sources(results: List[SearchResult]) -> str:
    lines = ["", "", "### Sources"]
    for i, result in enumerate(results, start=1):
        lines.append(f"- [{result.title or f'Source {i}'}]({result.url})")
    return "\n".join(lines)


class Summarizer:
    """Produces the final report for a run."""

    async def summarize(
        self,
        trajectory: str,
        objective: str,
        outcome_text: str,
        model: LanguageModel,
        search_provider: Optional[SearchProvider] = None,
        *,
        finish_reason: Optional[str] = None,
    ) -> SummarizationResult:
        """
        Summarize a run.

        Args:
            trajectory: Output of ``format_trajectory``
            objective: The user's query
            outcome_text: Final text produced by the execution loop
            model: LanguageModel for the report
            search_provider: Optional web search for enrichment
            finish_reason: Execution finish reason; the no-output fallback skips the model call

        Returns:
            SummarizationResult (never raises)
        """
        start_time = time.time()
        if finish_reason == FINISH_REASON_FALLBACK:
            logger.info("Execution used the no-output fallback; reusing its text as the summary")
            return SummarizationResult(summary=outcome_text, success=False, skipped=True)

        user_prompt = SUMMARIZER_USER_PROMPT.format(
            objective=objective,
            trajectory=trajectory or "(no tool steps recorded)",
            outcome=outcome_text or "(no text output)",
        )
        try:
            if search_provider is not None:
                summary, sources = await self._summarize_with_search(model, user_prompt, search_provider)
            else:
                turn = await model.complete(
                    SUMMARIZER_SYSTEM_PROMPT,
                    [{"role": "user", "content": user_prompt}],
                    max_tokens=SUMMARY_MAX_TOKENS,
                    temperature=SUMMARY_TEMPERATURE,
                )
                summary, sources = turn.text, []
        except Exception as e:
            logger.warning("Summarization failed (%s)", classify_error(e), exc_info=True)
            return SummarizationResult(summary="", success=False, duration=time.time() - start_time)

        if sources:
            summary += format_sources(sources)
        duration = time.time() - start_time
        logger.info("Summary generated (%d chars) in %.2fs", len(summary), duration)
        return SummarizationResult(
            summary=summary,
            success=bool(summary.strip()),
            task_completed=parse_task_completed(summary),
            sources=sources,
            duration=duration,
        )

    async def _summarize_with_search(
        self,
        model: LanguageModel,
        user_prompt: str,
        search_provider: SearchProvider,
    ) -> tuple:
        messages: List[Dict[str, Any]] = [{"role": "user", "content": user_prompt}]
        tools = [SEARCH_TOOL.to_openai()]
        sources: List[SearchResult] = []
        text = ""

        for step in range(1, MAX_SUMMARY_STEPS + 1):
            final_step = step == MAX_SUMMARY_STEPS
            turn = await model.complete(
                SUMMARIZER_SYSTEM_PROMPT,
                messages,
                tools=None if final_step else tools,
                tool_choice=None if final_step else ("required" if step == 1 else "auto"),
                max_tokens=SUMMARY_MAX_TOKENS,
                temperature=SUMMARY_TEMPERATURE,
            )
            text = turn.text
            if not turn.tool_calls:
                break

            messages.append(
                {
                    "role": "assistant",
                    "content": turn.text or None,
                    "tool_calls": [
                        {
                            "id": call.tool_call_id,
                            "type": "function",
                            "function": {"name": call.tool_name, "arguments": call.raw_arguments or json.dumps(call.arguments)},
                        }
                        for call in turn.tool_calls
                    ],
                }
            )
            for call in turn.tool_calls:
                content = await self._run_search(call.tool_name, call.arguments, search_provider, sources)
                messages.append({"role": "tool", "tool_call_id": call.tool_call_id, "content": content})

        return text, sources

    async def _run_search(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        search_provider: SearchProvider,
        sources: List[SearchResult],
    ) -> str:
        if tool_name != SEARCH_TOOL.name:
            return json.dumps({"success": False, "error": f"Unknown tool: {tool_name}"})
        query = str(arguments.get("query") or "").strip()
        if not query:
            return json.dumps({"success": False, "error": "query is required"})
        try:
            results = await search_provider.search(query, int(arguments.get("num_results") or 3))
        except Exception as e:
            logger.warning("Web search for %r failed: %s", query, e)
            return json.dumps({"success": False, "error": str(e)})

        sources.extend(results)
        return json.dumps(
            {
                "success": True,
                "results": [{"title": r.title, "url": r.url, "snippet": r.snippet} for r in results],
            }
        )
