"""
Retry controller wiring evaluation back into execution.

Runs the execution loop, evaluates the attempt, and re-runs execution with the
evaluator's feedback appended to the system prompt while the evaluation passes
the retry gate and retries remain. Exhausting retries is not an error.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from browser_workflow.approval import ApprovalCallback
from browser_workflow.errors import WorkflowCancelledError
from browser_workflow.evaluator import Evaluator, fallback_evaluation, no_output_evaluation, should_immediately_retry
from browser_workflow.execution_loop import ExecutionEvent, ExecutionLoop
from browser_workflow.llm import LanguageModel
from browser_workflow.metrics_tracker import MetricsTracker
from browser_workflow.models import EvaluationCriteria, EvaluationResult, ExecutionResult, Plan
from browser_workflow.task_ledger import TaskLedger
from browser_workflow.tools import ToolSet


logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
RETRY_USER_MESSAGE = "Please retry the execution with improvements based on the evaluation feedback."


@dataclass
class RetryOutcome:
    """
    Result of the execute/evaluate loop.

    Attributes:
        execution: Result of the last execution attempt
        evaluation: Evaluation of the last attempt
        retry_count: Retries performed after the first attempt
        system_prompt: System prompt used for the last attempt
    """
    execution: ExecutionResult
    evaluation: EvaluationResult
    retry_count: int
    system_prompt: str


def build_retry_prompt(system_prompt: str, evaluation: EvaluationResult, attempt: int, max_retries: int) -> str:
    """Append the evaluator's feedback to the system prompt for the next attempt."""
    strategy = evaluation.retry_strategy
    approach = strategy.approach if strategy is not None else ""
    focus_areas = strategy.focus_areas if strategy is not None else []
    return (
        f"{system_prompt}\n\n"
        f"**RETRY ATTEMPT {attempt}/{max_retries}**\n\n"
        f"**Previous Issues:**\n" + "\n".join(evaluation.issues) + "\n\n"
        f"**Retry Strategy:**\n{approach}\n\n"
        f"**Focus Areas:**\n" + "\n".join(focus_areas)
    )


class RetryController:
    """
    Bounded execute -> evaluate -> retry loop.

    Attributes:
        execution_loop: Loop that runs each attempt
        evaluator: Evaluator scoring each attempt
        max_retries: Additional attempts allowed after the first
        criteria: Evaluation criteria passed to the evaluator
    """

    def __init__(
        self,
        execution_loop: ExecutionLoop,
        evaluator: Evaluator,
        max_retries: int = DEFAULT_MAX_RETRIES,
        criteria: Optional[EvaluationCriteria] = None,
    ):
        self.execution_loop = execution_loop
        self.evaluator = evaluator
        self.max_retries = max_retries
        self.criteria = criteria or EvaluationCriteria()

    async def run(
        self,
        model: LanguageModel,
        system_prompt: str,
        tool_set: ToolSet,
        conversation: List[Dict[str, Any]],
        query: str,
        plan: Optional[Plan],
        *,
        approval_callback: Optional[ApprovalCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        ledger: Optional[TaskLedger] = None,
        metrics: Optional[MetricsTracker] = None,
        on_event: Optional[Callable[[ExecutionEvent], None]] = None,
    ) -> RetryOutcome:
        """
        Execute, evaluate and retry until the evaluation no longer asks for a retry.

        Raises:
            WorkflowCancelledError: If the cancellation signal is set
            Exception: Errors escaping the execution loop
        """
        ledger = ledger or TaskLedger.for_workflow()
        metrics = metrics or MetricsTracker()
        messages = list(conversation)
        retry_count = 0

        while True:
            ledger.start("execute", f"Attempt {retry_count + 1}/{self.max_retries + 1}")
            execution = await self.execution_loop.execute(
                model,
                system_prompt,
                tool_set,
                messages,
                approval_callback,
                plan=plan,
                cancel_event=cancel_event,
                on_event=on_event,
            )
            metrics.record_execution(execution)

            if execution.is_fallback:
                # Credentials or connectivity problem; retrying automatically will not help.
                ledger.fail("execute", "Language model returned no output; used fallback summary")
                ledger.complete("evaluate", "Skipped: no model output")
                evaluation = no_output_evaluation()
                break

            ledger.complete(
                "execute",
                f"{len(execution.tool_executions)} tool calls, finish reason {execution.finish_reason}",
            )
            if cancel_event is not None and cancel_event.is_set():
                raise WorkflowCancelledError("Execution cancelled before evaluation")

            ledger.start("evaluate")
            try:
                evaluation = await self.evaluator.evaluate(model, execution, query, plan, self.criteria)
            except Exception as e:
                logger.warning("Evaluator raised; using fallback evaluation", exc_info=True)
                evaluation = fallback_evaluation(e)
            metrics.record_evaluation()
            ledger.complete("evaluate", f"{evaluation.quality.value} ({round(evaluation.score * 100)}/100)")

            retry_now = should_immediately_retry(evaluation)
            if retry_now and retry_count < self.max_retries:
                retry_count += 1
                metrics.record_retry()
                logger.info("Retrying execution (%d/%d): %s", retry_count, self.max_retries, "; ".join(evaluation.issues))
                system_prompt = build_retry_prompt(system_prompt, evaluation, retry_count, self.max_retries)
                messages = messages + [{"role": "user", "content": RETRY_USER_MESSAGE}]
                ledger.retry("execute", f"Retry {retry_count}/{self.max_retries}")
                continue

            if retry_now:
                logger.warning("Max retries (%d) reached with quality %s", self.max_retries, evaluation.quality.value)
            if evaluation.should_proceed:
                logger.info("Evaluation passed (%s); proceeding", evaluation.quality.value)
            else:
                logger.warning(
                    "Evaluation does not recommend proceeding (quality=%s); continuing to summary",
                    evaluation.quality.value,
                )
            break

        return RetryOutcome(
            execution=execution,
            evaluation=evaluation,
            retry_count=retry_count,
            system_prompt=system_prompt,
        )
