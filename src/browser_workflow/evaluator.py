"""
Evaluator for execution attempts.

Scores an execution loop result against the original query and plan with one
structured model call. Evaluation failures never block a run: they produce a
fixed fallback evaluation that lets the workflow proceed.
"""

import logging
import time
from typing import List, Optional

from browser_workflow.errors import classify_error
from browser_workflow.llm import LanguageModel
from browser_workflow.models import (
    EvaluationCriteria,
    EvaluationResult,
    ExecutionResult,
    Plan,
    Quality,
)
from browser_workflow.prompts import EVALUATOR_SYSTEM_PROMPT
from browser_workflow.schemas import EvaluationPayload


logger = logging.getLogger(__name__)


def calculate_success_rate(execution: ExecutionResult) -> int:
    """Percentage of successful tool executions, 0 when no tools ran."""
    total = len(execution.tool_executions)
    if total == 0:
        return 0
    successful = sum(1 for t in execution.tool_executions if t.success)
    return round(successful / total * 100)


def should_immediately_retry(evaluation: EvaluationResult) -> bool:
    """
    The single retry gate: a poor result with concrete issues and a strategy.

    ``should_retry`` alone is not enough, and ``should_proceed`` is not consulted.
    """
    return (
        evaluation.should_retry
        and evaluation.quality == Quality.POOR
        and len(evaluation.issues) > 0
        and evaluation.retry_strategy is not None
    )


def fallback_evaluation(error: BaseException, duration: float = 0.0) -> EvaluationResult:
    """Evaluation used when the evaluator's own model call fails."""
    return EvaluationResult(
        quality=Quality.POOR,
        score=0.5,
        completeness=0.5,
        correctness=0.5,
        issues=[
            f"Evaluation failed: {error}",
            f"Error type: {type(error).__name__} ({classify_error(error)})",
        ],
        successes=[],
        recommendations=[
            "Retry evaluation with different model or criteria",
            "Check model configuration and API keys",
            "Verify execution result structure",
        ],
        should_retry=False,
        should_proceed=True,
        duration=duration,
    )


def no_output_evaluation() -> EvaluationResult:
    """Evaluation for an execution that fell back because the model returned no output."""
    return EvaluationResult(
        quality=Quality.POOR,
        score=0.1,
        completeness=0.0,
        correctness=0.0,
        issues=[
            "Language model returned no output during execution",
            "Fallback summary was generated from the plan instead of real execution",
        ],
        successes=[],
        recommendations=[
            "Verify model provider credentials and quota",
            "Check network access to the model provider",
            "Retry the workflow once the provider is reachable",
        ],
        should_retry=False,
        should_proceed=False,
    )


class Evaluator:
    """Scores execution attempts with a structured model call."""

    def build_prompt(
        self,
        execution: ExecutionResult,
        original_query: str,
        plan: Optional[Plan],
        criteria: EvaluationCriteria,
    ) -> str:
        if plan is not None and plan.steps:
            plan_lines = "\n".join(
                f"{i}. {s.action}({s.target}) - Expected: {s.expected_outcome}"
                for i, s in enumerate(plan.steps, start=1)
            )
        else:
            plan_lines = "No plan provided"

        if execution.tool_executions:
            tool_lines = "\n".join(
                f"{i}. {t.tool_name}: {'✓ success' if t.success else '✗ failed'} ({round(t.duration * 1000)}ms)"
                + (f" - {t.error_text}" if t.error_text else "")
                for i, t in enumerate(execution.tool_executions, start=1)
            )
        else:
            tool_lines = "No tools executed"

        custom: List[str] = criteria.custom_criteria or ["Standard quality criteria"]
        sections = [
            "Evaluate the following browser automation execution:",
            "",
            f"**Original Query:**\n{original_query}",
            "",
            f"**Execution Plan:**\n{plan_lines}",
            "",
            f"**Tool Executions:**\n{tool_lines}",
            "",
            "**Execution Summary:**",
            f"- Total steps: {execution.tool_call_count}",
            f"- Tool executions: {len(execution.tool_executions)}",
            f"- Success rate: {calculate_success_rate(execution)}%",
            f"- Text output length: {len(execution.full_text)} chars",
            f"- Finish reason: {execution.finish_reason}",
            "",
            f"**Agent Output:**\n{execution.full_text or '(No text output)'}",
            "",
            "**Evaluation Criteria:**",
            *custom,
            f"- Required tools: {', '.join(criteria.required_tools) or 'Not specified'}",
            f"- Min success rate: {round(criteria.min_success_rate * 100)}%",
            f"- Max errors: {criteria.max_errors}",
            f"- Min text output length: {criteria.text_min_length} chars",
            "",
            "Provide a comprehensive evaluation of this execution.",
        ]
        return "\n".join(sections)

    async def evaluate(
        self,
        model: LanguageModel,
        execution: ExecutionResult,
        original_query: str,
        plan: Optional[Plan],
        criteria: Optional[EvaluationCriteria] = None,
    ) -> EvaluationResult:
        """
        Evaluate one execution attempt.

        Returns:
            EvaluationResult; the fallback evaluation when the model call fails
        """
        criteria = criteria or EvaluationCriteria()
        start_time = time.time()
        try:
            payload = await model.generate_structured(
                EvaluationPayload,
                EVALUATOR_SYSTEM_PROMPT,
                self.build_prompt(execution, original_query, plan, criteria),
            )
        except Exception as e:
            logger.warning("Evaluation failed (%s); using fallback evaluation", classify_error(e), exc_info=True)
            return fallback_evaluation(e, duration=time.time() - start_time)

        evaluation = payload.to_result(duration=time.time() - start_time)
        logger.info(
            "Evaluation: quality=%s score=%.2f retry=%s proceed=%s",
            evaluation.quality.value,
            evaluation.score,
            evaluation.should_retry,
            evaluation.should_proceed,
        )
        return evaluation


def format_evaluation_summary(evaluation: EvaluationResult) -> str:
    """Render an evaluation as markdown."""
    lines = [
        "## Execution Evaluation",
        "",
        f"**Quality:** {evaluation.quality.value.upper()}",
        f"**Score:** {round(evaluation.score * 100)}/100",
        f"**Completeness:** {round(evaluation.completeness * 100)}%",
        f"**Correctness:** {round(evaluation.correctness * 100)}%",
    ]
    if evaluation.successes:
        lines += ["", "### Successes"] + [f"- {s}" for s in evaluation.successes]
    if evaluation.issues:
        lines += ["", "### Issues"] + [f"- {i}" for i in evaluation.issues]
    if evaluation.recommendations:
        lines += ["", "### Recommendations"] + [f"- {r}" for r in evaluation.recommendations]
    if evaluation.retry_strategy is not None:
        strategy = evaluation.retry_strategy
        lines += ["", "### Retry Strategy", f"**Approach:** {strategy.approach}"]
        if strategy.focus_areas:
            lines.append(f"**Focus Areas:** {', '.join(strategy.focus_areas)}")
        if strategy.modifications:
            lines.append(f"**Modifications:** {', '.join(strategy.modifications)}")

    if evaluation.should_proceed:
        decision = "✅ Proceed"
    elif evaluation.should_retry:
        decision = "🔄 Retry recommended"
    else:
        decision = "⚠️ Manual review needed"
    lines += ["", f"**Decision:** {decision}"]
    return "\n".join(lines)
