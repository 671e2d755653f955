"""
Browser automation workflow.

Runs the fixed phase sequence for one request:

    plan -> context -> execute <-> evaluate (bounded retries) -> summarize

Phases run strictly one after another. Every run owns its own task ledger and
metrics, so independent runs can execute concurrently. Planning, evaluation and
summarization absorb their own failures; configuration errors, cancellation and
unexpected execution errors propagate to the caller after the active task is
marked in the ledger.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from browser_workflow.approval import ApprovalCallback, ApprovalPolicy
from browser_workflow.config import WorkflowSettings
from browser_workflow.error_analyzer import ErrorAnalyzer
from browser_workflow.errors import ConfigurationError, WorkflowCancelledError
from browser_workflow.evaluator import Evaluator
from browser_workflow.execution_loop import ExecutionEvent, ExecutionLoop
from browser_workflow.llm import LanguageModel, create_language_model
from browser_workflow.metrics_tracker import MetricsTracker
from browser_workflow.models import EvaluationCriteria, PlanningResult, Quality, TaskStatus, WorkflowOutput
from browser_workflow.planner import Planner, build_fallback_plan, format_plan_as_instructions
from browser_workflow.prompts import EXECUTION_SYSTEM_PROMPT
from browser_workflow.retry_controller import RetryController
from browser_workflow.search import SearchProvider, YouSearchClient
from browser_workflow.summarizer import Summarizer, format_trajectory
from browser_workflow.task_ledger import TaskLedger, TaskListener
from browser_workflow.tools import RetryingToolInvoker, ToolInvoker, ToolSet
from browser_workflow.tracing import WorkflowTracer


logger = logging.getLogger(__name__)

T = TypeVar("T")


def workflow_criteria() -> EvaluationCriteria:
    """Evaluation criteria for browser workflow runs; a fresh instance per workflow."""
    return EvaluationCriteria(
        required_tools=["navigate", "getPageContext"],
        min_success_rate=0.7,
        max_errors=3,
        text_min_length=100,
    )


@dataclass
class WorkflowInput:
    """
    One workflow request.

    Attributes:
        user_query: Natural-language request
        conversation: Prior chat messages ({"role", "content"}) preceding the query
        current_url: URL of the page the run starts from
        page_context: Page context already gathered by the caller; skips the context phase
    """
    user_query: str
    conversation: List[Dict[str, Any]] = field(default_factory=list)
    current_url: Optional[str] = None
    page_context: Optional[Dict[str, Any]] = None


def new_workflow_id() -> str:
    return f"wf_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


async def run_step(
    name: str,
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 1,
    timeout: Optional[float] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> T:
    """
    Run one workflow step with a timeout and bounded exponential-backoff retries.

    Configuration errors and cancellation are never retried.

    Raises:
        Exception: The last error once all attempts failed
    """
    attempts = retries + 1
    last_error: Optional[BaseException] = None
    for attempt in range(attempts):
        if attempt > 0:
            await asyncio.sleep(0.5 * (2 ** (attempt - 1)))
        if cancel_event is not None and cancel_event.is_set():
            raise WorkflowCancelledError(f"Cancelled before step '{name}'")
        try:
            return await asyncio.wait_for(fn(), timeout=timeout)
        except (ConfigurationError, WorkflowCancelledError):
            raise
        except Exception as e:
            last_error = e
            logger.warning("Step %s failed (attempt %d/%d): %s", name, attempt + 1, attempts, e or type(e).__name__)
    raise last_error


def build_execution_prompt(planning: PlanningResult, current_url: Optional[str], page_context: Optional[Dict[str, Any]]) -> str:
    sections = [EXECUTION_SYSTEM_PROMPT, format_plan_as_instructions(planning)]
    if current_url or page_context:
        context = page_context or {}
        lines = ["## Current Page"]
        lines.append(f"URL: {context.get('url') or current_url or 'unknown'}")
        if context.get("title"):
            lines.append(f"Title: {context['title']}")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


class BrowserAutomationWorkflow:
    """
    Orchestrates planning, execution, evaluation, retries and summarization.

    Attributes:
        settings: Workflow configuration
        tool_invoker: Browser tool executor (wrapped with timeouts and transient retries)
        approval_callback: Optional approval capability for sensitive tool calls
        search_provider: Optional web search used by the summarizer
        tracer: Opik tracer
    """

    def __init__(
        self,
        settings: WorkflowSettings,
        tool_invoker: ToolInvoker,
        *,
        model: Optional[LanguageModel] = None,
        planner_model: Optional[LanguageModel] = None,
        approval_callback: Optional[ApprovalCallback] = None,
        search_provider: Optional[SearchProvider] = None,
        tracer: Optional[WorkflowTracer] = None,
        retry_tool_calls: bool = True,
    ):
        """
        Initialize the workflow.

        Args:
            settings: Workflow configuration
            tool_invoker: Executor for browser tools
            model: LanguageModel override; resolved from settings when omitted
            planner_model: Planner LanguageModel override
            approval_callback: Called with (tool_name, params) for sensitive tool calls
            search_provider: Web search for summaries; built from settings.search_api_key when omitted
            tracer: Tracer override
            retry_tool_calls: Wrap the invoker with per-tool timeouts and transient retries
        """
        self.settings = settings
        self.tool_invoker = RetryingToolInvoker(tool_invoker) if retry_tool_calls else tool_invoker
        self.approval_callback = approval_callback
        self._model = model
        self._planner_model = planner_model

        if search_provider is None and settings.search_api_key:
            search_provider = YouSearchClient(settings.search_api_key)
        self.search_provider = search_provider
        self.tracer = tracer or WorkflowTracer(settings.opik_project_name, enabled=settings.tracing_enabled)

        self.execution_loop = ExecutionLoop(
            max_steps=settings.max_steps,
            approval_policy=ApprovalPolicy.from_settings(settings.approval),
            approval_timeout=settings.approval.timeout,
        )
        self.evaluator = Evaluator()
        self.retry_controller = RetryController(
            self.execution_loop,
            self.evaluator,
            max_retries=settings.max_retries,
            criteria=workflow_criteria(),
        )
        self.summarizer = Summarizer()
        self.error_analyzer = ErrorAnalyzer()

    def _resolve_models(self) -> tuple:
        model = self._model or create_language_model(self.settings.model)
        if self._planner_model is not None:
            planner_model = self._planner_model
        elif self.settings.planner_model is not None:
            planner_model = create_language_model(self.settings.planner_model)
        else:
            planner_model = model
        return model, planner_model

    async def run(
        self,
        request: Union[WorkflowInput, str],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        task_listener: Optional[TaskListener] = None,
        on_event: Optional[Callable[[ExecutionEvent], None]] = None,
    ) -> WorkflowOutput:
        """
        Run the workflow for one request.

        Args:
            request: WorkflowInput or a bare query string
            cancel_event: Set to cancel the run
            task_listener: Receives every task ledger update
            on_event: Receives execution loop events

        Returns:
            WorkflowOutput

        Raises:
            ConfigurationError: If model credentials are missing
            WorkflowCancelledError: If the run was cancelled
            Exception: Unexpected execution errors
        """
        if isinstance(request, str):
            request = WorkflowInput(user_query=request)

        workflow_id = new_workflow_id()
        ledger = TaskLedger.for_workflow()
        if task_listener is not None:
            ledger.subscribe(task_listener)
        metrics = MetricsTracker()
        metrics.start()

        logger.info("Starting workflow %s: %s", workflow_id, request.user_query)
        trace = self.tracer.start_trace(
            "browser_automation_workflow",
            {"workflow_id": workflow_id, "query": request.user_query, "current_url": request.current_url},
        )

        try:
            output = await self._run_phases(request, workflow_id, ledger, metrics, trace, cancel_event, on_event)
        except (WorkflowCancelledError, asyncio.CancelledError):
            logger.warning("Workflow %s cancelled", workflow_id)
            self._mark_interrupted(ledger, TaskStatus.CANCELLED, "Cancelled")
            self.tracer.end_trace(trace, {"cancelled": True})
            raise
        except Exception as e:
            logger.error("Workflow %s failed: %s", workflow_id, e)
            self._mark_interrupted(ledger, TaskStatus.ERROR, f"{type(e).__name__}: {e}")
            self.tracer.end_trace(trace, {"error": str(e), "error_type": type(e).__name__})
            raise

        self.tracer.end_trace(
            trace,
            {
                "success": output.success,
                "quality": output.evaluation.quality.value,
                "retry_count": output.retry_count,
                "duration": output.duration,
            },
        )
        logger.info(
            "Workflow %s finished in %.2fs (quality=%s, retries=%d)",
            workflow_id,
            output.duration,
            output.evaluation.quality.value,
            output.retry_count,
        )
        return output

    def _mark_interrupted(self, ledger: TaskLedger, status: TaskStatus, note: str) -> None:
        tasks = ledger.active_tasks()
        if not tasks:
            tasks = [t for t in ledger.get_all() if t.status == TaskStatus.PENDING][:1]
        for task in tasks:
            if status == TaskStatus.CANCELLED:
                ledger.cancel(task.id, note)
            else:
                ledger.fail(task.id, note)

    async def _run_phases(
        self,
        request: WorkflowInput,
        workflow_id: str,
        ledger: TaskLedger,
        metrics: MetricsTracker,
        trace: Optional[Any],
        cancel_event: Optional[asyncio.Event],
        on_event: Optional[Callable[[ExecutionEvent], None]],
    ) -> WorkflowOutput:
        start_time = time.time()
        query = request.user_query
        model, planner_model = self._resolve_models()

        # Planning
        ledger.start("plan")
        planner = Planner(planner_model)
        metrics.record_planner_call()
        try:
            planning = await run_step(
                "planning",
                lambda: planner.plan(query, request.current_url, request.page_context),
                retries=1,
                timeout=self.settings.planning_timeout,
                cancel_event=cancel_event,
            )
        except WorkflowCancelledError:
            raise
        except Exception:
            logger.warning("Planning step failed; using fallback plan", exc_info=True)
            planning = build_fallback_plan(query)
        ledger.complete(
            "plan",
            f"{len(planning.plan.steps)} steps, confidence {round(planning.confidence * 100)}%"
            + (" (fallback)" if planning.used_fallback else ""),
        )
        self.tracer.log_span(
            trace,
            "planning",
            input={"query": query, "current_url": request.current_url},
            output=planning.to_dict(),
            metadata={"used_fallback": planning.used_fallback},
            span_type="llm",
        )

        # Context
        page_context = await self._gather_context(request, ledger, cancel_event)

        # Execute / evaluate / retry
        system_prompt = build_execution_prompt(planning, request.current_url, page_context)
        conversation = list(request.conversation) + [{"role": "user", "content": query}]
        outcome = await self.retry_controller.run(
            model,
            system_prompt,
            ToolSet(self.tool_invoker),
            conversation,
            query,
            planning.plan,
            approval_callback=self.approval_callback,
            cancel_event=cancel_event,
            ledger=ledger,
            metrics=metrics,
            on_event=on_event,
        )
        execution, evaluation = outcome.execution, outcome.evaluation
        self.tracer.log_span(
            trace,
            "execution",
            input={"system_prompt_chars": len(outcome.system_prompt), "retry_count": outcome.retry_count},
            output={
                "finish_reason": execution.finish_reason,
                "tool_calls": execution.tool_call_count,
                "text_chars": len(execution.full_text),
            },
            metadata={"total_tokens": execution.usage.total_tokens},
            span_type="llm",
        )
        self.tracer.log_span(
            trace,
            "evaluation",
            input={"finish_reason": execution.finish_reason},
            output={"quality": evaluation.quality.value, "score": evaluation.score, "issues": evaluation.issues},
            span_type="llm",
        )

        if cancel_event is not None and cancel_event.is_set():
            raise WorkflowCancelledError("Cancelled before summarization")

        error_analysis = None
        if (
            self.settings.analyze_failures
            and not execution.is_fallback
            and evaluation.quality in (Quality.POOR, Quality.FAILED)
        ):
            error_analysis = await self.error_analyzer.analyze(
                model, execution.execution_steps, query, execution.full_text, evaluation
            )

        # Summarize
        ledger.start("summarize")
        summarization = await self.summarizer.summarize(
            format_trajectory(execution.execution_steps),
            query,
            execution.full_text,
            model,
            self.search_provider,
            finish_reason=execution.finish_reason,
        )
        if summarization.skipped:
            ledger.complete("summarize", "Reused fallback text")
        elif summarization.success:
            ledger.complete("summarize", f"{len(summarization.summary)} chars")
        else:
            ledger.fail("summarize", "Summarization failed")
        self.tracer.log_span(
            trace,
            "summarization",
            input={"steps": len(execution.execution_steps)},
            output={"success": summarization.success, "skipped": summarization.skipped},
            span_type="llm",
        )

        metrics.stop()
        return WorkflowOutput(
            success=True,
            planning=planning,
            streaming=execution,
            evaluation=evaluation,
            summarization=summarization,
            duration=time.time() - start_time,
            workflow_id=workflow_id,
            retry_count=outcome.retry_count,
            tasks=[replace(task) for task in ledger.get_all()],
            metrics=metrics.get_summary(),
            error_analysis=error_analysis,
        )

    async def _gather_context(
        self,
        request: WorkflowInput,
        ledger: TaskLedger,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[Dict[str, Any]]:
        if request.page_context is not None:
            ledger.complete("context", "Provided by caller")
            return request.page_context

        ledger.start("context")

        async def fetch_context() -> Dict[str, Any]:
            result = await self.tool_invoker.invoke("getPageContext", {})
            if isinstance(result, dict) and result.get("error"):
                raise RuntimeError(f"getPageContext failed: {result['error']}")
            return result

        try:
            page_context = await run_step(
                "page_context",
                fetch_context,
                retries=1,
                timeout=self.settings.context_timeout,
                cancel_event=cancel_event,
            )
        except WorkflowCancelledError:
            raise
        except Exception as e:
            # Execution can still gather context itself through getPageContext.
            logger.warning("Could not gather page context: %s", e)
            ledger.fail("context", str(e) or type(e).__name__)
            return None

        ledger.complete("context", str(page_context.get("title") or page_context.get("url") or "Context gathered"))
        return page_context
