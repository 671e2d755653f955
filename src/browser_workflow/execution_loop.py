"""
Execution loop for browser automation.

Drives the language model through a tool-calling conversation: each step is one
streamed model turn, whose tool calls are executed one at a time (behind the
approval gate) and fed back before the next turn. The loop stops on the first of:

- the model answering without tool calls
- the step budget running out
- too many consecutive tool failures
- the same navigation target repeating within a short window
- the cancellation signal (raises WorkflowCancelledError)

A model that produces no output at all does not fail the loop; it yields a
fallback result built from the plan.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from browser_workflow.approval import REJECTION_MESSAGE, ApprovalCallback, ApprovalGate, ApprovalPolicy
from browser_workflow.errors import NoOutputGeneratedError, WorkflowCancelledError
from browser_workflow.llm import LanguageModel, TextDelta, ToolCallRequest, TurnFinish
from browser_workflow.models import (
    FINISH_REASON_FALLBACK,
    ApprovalRecord,
    ExecutionResult,
    ExecutionStep,
    Plan,
    ToolExecution,
    ToolExecutionState,
    Usage,
)
from browser_workflow.telemetry import log_tool_selection
from browser_workflow.tools import ToolSet


logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 100
MAX_CONSECUTIVE_FAILURES = 3
NAVIGATION_LOOP_WINDOW = 5
NAVIGATION_LOOP_THRESHOLD = 3
MAX_TOOL_RESULT_CHARS = 8000

STOP_STEP_LIMIT = "step-limit"
STOP_EXCESSIVE_ERRORS = "excessive-errors"
STOP_NAVIGATION_LOOP = "navigation-loop"

_BINARY_RESULT_KEYS = ("screenshot", "image", "data_url")


@dataclass
class ExecutionEvent:
    """
    Event emitted while the loop runs.

    Attributes:
        type: step-start, text-delta, tool-call, approval-requested, tool-result, step-finish or finish
        step: 1-based model turn the event belongs to
        text: Text chunk for text-delta events
        tool_execution: Tool execution for tool-call / approval / tool-result events
        result: Final result for the finish event
    """
    type: str
    step: int
    text: Optional[str] = None
    tool_execution: Optional[ToolExecution] = None
    result: Optional[ExecutionResult] = None


@dataclass
class _RunState:
    start_time: float = field(default_factory=time.time)
    text_parts: List[str] = field(default_factory=list)
    tool_executions: List[ToolExecution] = field(default_factory=list)
    execution_steps: List[ExecutionStep] = field(default_factory=list)
    approvals: List[ApprovalRecord] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    text_chunk_count: int = 0
    tool_call_count: int = 0
    step_count: int = 0
    consecutive_failures: int = 0
    navigation_history: List[str] = field(default_factory=list)
    has_successful_tool: bool = False

    @property
    def produced_output(self) -> bool:
        return bool(self.text_chunk_count or self.tool_executions)

    def to_result(self, finish_reason: str) -> ExecutionResult:
        return ExecutionResult(
            full_text="".join(self.text_parts),
            tool_executions=list(self.tool_executions),
            finish_reason=finish_reason,
            usage=self.usage,
            execution_steps=list(self.execution_steps),
            text_chunk_count=self.text_chunk_count,
            tool_call_count=self.tool_call_count,
            step_count=self.step_count,
            approvals_requested=list(self.approvals),
            duration=time.time() - self.start_time,
        )


def build_no_output_text(plan: Optional[Plan]) -> str:
    """Fallback outcome text used when the model produced no output."""
    lines = [
        "⚠️ Unable to continue automated browser execution because the language model returned no output.",
        "",
        "Final summary (fallback): planned workflow steps were:",
    ]
    if plan is not None and plan.steps:
        lines += [f"  {i}. {step.action} - {step.reasoning}" for i, step in enumerate(plan.steps, start=1)]
    else:
        lines.append("  (no plan available)")
    lines += [
        "",
        "Please verify your model provider credentials and network access, then retry the workflow.",
    ]
    return "\n".join(lines)


def _step_target(args: Dict[str, Any]) -> str:
    for key in ("url", "selector", "text", "direction", "key", "keys", "seconds"):
        if args.get(key) not in (None, ""):
            return str(args[key])
    return ""


def _result_for_model(output: Dict[str, Any]) -> str:
    visible = {
        key: ("[binary omitted]" if key in _BINARY_RESULT_KEYS else value)
        for key, value in output.items()
    }
    text = json.dumps(visible, default=str)
    if len(text) > MAX_TOOL_RESULT_CHARS:
        text = text[:MAX_TOOL_RESULT_CHARS] + "...[truncated]"
    return text


def _normalize_url(url: str) -> str:
    return url.strip().rstrip("/").lower()


class ExecutionLoop:
    """
    Tool-calling execution loop.

    Attributes:
        max_steps: Step budget (model turns)
        max_consecutive_failures: Failed tool calls in a row that stop the loop
        navigation_loop_window: Number of recent navigations inspected for loops
        navigation_loop_threshold: Repeats of one target within the window that stop the loop
        approval_policy: Policy deciding which tool calls need approval
        approval_timeout: Seconds to wait for an approval decision
    """

    def __init__(
        self,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
        navigation_loop_window: int = NAVIGATION_LOOP_WINDOW,
        navigation_loop_threshold: int = NAVIGATION_LOOP_THRESHOLD,
        approval_policy: Optional[ApprovalPolicy] = None,
        approval_timeout: Optional[float] = 300.0,
    ):
        self.max_steps = max_steps
        self.max_consecutive_failures = max_consecutive_failures
        self.navigation_loop_window = navigation_loop_window
        self.navigation_loop_threshold = navigation_loop_threshold
        self.approval_policy = approval_policy or ApprovalPolicy()
        self.approval_timeout = approval_timeout

    async def execute(
        self,
        model: LanguageModel,
        system_prompt: str,
        tool_set: ToolSet,
        conversation: List[Dict[str, Any]],
        approval_callback: Optional[ApprovalCallback] = None,
        *,
        plan: Optional[Plan] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: Optional[Callable[[ExecutionEvent], None]] = None,
    ) -> ExecutionResult:
        """
        Run the loop to completion and return its result.

        Raises:
            WorkflowCancelledError: If the cancellation signal is set
            Exception: Model or transport errors other than "no output"
        """
        result = None
        async for event in self.stream(
            model,
            system_prompt,
            tool_set,
            conversation,
            approval_callback,
            plan=plan,
            cancel_event=cancel_event,
        ):
            if on_event is not None:
                on_event(event)
            if event.type == "finish":
                result = event.result
        return result

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise WorkflowCancelledError("Execution cancelled")

    def _stop_reason(self, state: _RunState) -> Optional[str]:
        if state.consecutive_failures >= self.max_consecutive_failures:
            return STOP_EXCESSIVE_ERRORS
        recent = state.navigation_history[-self.navigation_loop_window:]
        if recent and recent.count(recent[-1]) >= self.navigation_loop_threshold:
            return STOP_NAVIGATION_LOOP
        return None

    async def stream(
        self,
        model: LanguageModel,
        system_prompt: str,
        tool_set: ToolSet,
        conversation: List[Dict[str, Any]],
        approval_callback: Optional[ApprovalCallback] = None,
        *,
        plan: Optional[Plan] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[ExecutionEvent]:
        """Run the loop, yielding events; the last event is always ``finish``."""
        if not conversation:
            raise ValueError("Execution requires at least one conversation message")

        gate = ApprovalGate(self.approval_policy, approval_callback, self.approval_timeout)
        tools = tool_set.openai_tools()
        messages = list(conversation)
        state = _RunState()
        finish_reason = STOP_STEP_LIMIT

        for step_number in range(1, self.max_steps + 1):
            self._check_cancelled(cancel_event)
            tool_choice = "auto" if state.has_successful_tool else "required"
            yield ExecutionEvent(type="step-start", step=step_number)

            turn_text: List[str] = []
            tool_calls: List[ToolCallRequest] = []
            turn_finish: Optional[TurnFinish] = None
            try:
                async for model_event in model.stream_turn(system_prompt, messages, tools, tool_choice):
                    if isinstance(model_event, TextDelta):
                        turn_text.append(model_event.text)
                        state.text_chunk_count += 1
                        yield ExecutionEvent(type="text-delta", step=step_number, text=model_event.text)
                    elif isinstance(model_event, ToolCallRequest):
                        tool_calls.append(model_event)
                    elif isinstance(model_event, TurnFinish):
                        turn_finish = model_event
            except NoOutputGeneratedError:
                if state.produced_output:
                    logger.warning("Model returned no output on step %d; finishing", step_number)
                    finish_reason = "no-output"
                    break
                logger.warning("Model returned no output; falling back to plan summary")
                yield ExecutionEvent(
                    type="finish",
                    step=step_number,
                    result=self._no_output_result(plan, state),
                )
                return

            state.step_count = step_number
            if turn_finish is not None:
                state.usage.add(turn_finish.usage)
            text = "".join(turn_text)
            state.text_parts.append(text)
            messages.append(self._assistant_message(text, tool_calls))

            if not tool_calls:
                finish_reason = turn_finish.finish_reason if turn_finish is not None else "stop"
                yield ExecutionEvent(type="step-finish", step=step_number)
                break

            state.tool_call_count += len(tool_calls)
            stop_reason = None
            for call in tool_calls:
                self._check_cancelled(cancel_event)
                log_tool_selection(call.tool_name, text)
                async for event in self._run_tool_call(call, step_number, tool_set, gate, state):
                    yield event
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.tool_call_id,
                        "content": _result_for_model(state.tool_executions[-1].output or {}),
                    }
                )
                stop_reason = self._stop_reason(state)
                if stop_reason:
                    break

            yield ExecutionEvent(type="step-finish", step=step_number)
            if stop_reason:
                logger.warning("Stopping execution loop: %s", stop_reason)
                finish_reason = stop_reason
                break
        else:
            logger.warning("Execution loop reached the step budget (%d)", self.max_steps)

        result = state.to_result(finish_reason)
        logger.info(
            "Execution finished (%s): %d steps, %d tool calls, %d text chars",
            result.finish_reason,
            result.step_count,
            result.tool_call_count,
            len(result.full_text),
        )
        yield ExecutionEvent(type="finish", step=state.step_count, result=result)

    def _assistant_message(self, text: str, tool_calls: List[ToolCallRequest]) -> Dict[str, Any]:
        if not tool_calls:
            return {"role": "assistant", "content": text}
        return {
            "role": "assistant",
            "content": text or None,
            "tool_calls": [
                {
                    "id": call.tool_call_id,
                    "type": "function",
                    "function": {"name": call.tool_name, "arguments": call.raw_arguments or json.dumps(call.arguments)},
                }
                for call in tool_calls
            ],
        }

    async def _run_tool_call(
        self,
        call: ToolCallRequest,
        step_number: int,
        tool_set: ToolSet,
        gate: ApprovalGate,
        state: _RunState,
    ) -> AsyncIterator[ExecutionEvent]:
        execution = ToolExecution(
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            state=ToolExecutionState.INPUT_AVAILABLE,
            input=dict(call.arguments),
        )
        state.tool_executions.append(execution)
        yield ExecutionEvent(type="tool-call", step=step_number, tool_execution=execution)

        output: Optional[Dict[str, Any]] = None
        rejected = False
        if call.arguments_error:
            output = {"success": False, "error": f"Invalid arguments for {call.tool_name}: {call.arguments_error}"}
        else:
            reason = gate.check(call.tool_name, call.arguments)
            if reason:
                execution.state = ToolExecutionState.APPROVAL_PENDING
                yield ExecutionEvent(type="approval-requested", step=step_number, tool_execution=execution)
                decision = await gate.request(call.tool_name, call.arguments, reason)
                state.approvals.append(
                    ApprovalRecord(
                        tool_name=call.tool_name,
                        args=dict(call.arguments),
                        approved=decision.approved,
                        reason=decision.reason,
                    )
                )
                if not decision.approved:
                    rejected = True
                    output = {"success": False, "error": REJECTION_MESSAGE}

        if output is None:
            execution.state = ToolExecutionState.INPUT_STREAMING
            started = time.time()
            try:
                output = await tool_set.execute(call.tool_name, call.arguments)
            except Exception as e:
                logger.warning("Tool %s failed: %s", call.tool_name, e)
                output = {"success": False, "error": str(e) or type(e).__name__}
            execution.duration = time.time() - started

        success = bool(output.get("success")) and not output.get("error")
        execution.output = output
        if success:
            execution.state = ToolExecutionState.OUTPUT_AVAILABLE
            state.has_successful_tool = True
            state.consecutive_failures = 0
        else:
            execution.state = ToolExecutionState.OUTPUT_ERROR
            execution.error_text = str(output.get("error") or "Tool execution failed")
            if not rejected:
                state.consecutive_failures += 1

        if call.tool_name == "navigate" and call.arguments.get("url"):
            state.navigation_history.append(_normalize_url(str(call.arguments["url"])))

        url = call.arguments.get("url") or output.get("url")
        state.execution_steps.append(
            ExecutionStep(
                step=len(state.execution_steps) + 1,
                action=call.tool_name,
                target=_step_target(call.arguments),
                success=success,
                url=str(url) if url else None,
                error=execution.error_text,
            )
        )
        logger.info(
            "Tool %s %s (%.0fms)",
            call.tool_name,
            "succeeded" if success else f"failed: {execution.error_text}",
            execution.duration * 1000,
        )
        yield ExecutionEvent(type="tool-result", step=step_number, tool_execution=execution)

    def _no_output_result(self, plan: Optional[Plan], state: _RunState) -> ExecutionResult:
        failure = ToolExecution(
            tool_call_id="fallback-no-output",
            tool_name="model",
            state=ToolExecutionState.OUTPUT_ERROR,
            output={
                "success": False,
                "error": "Language model returned no output",
                "recommendation": "Check model provider credentials and network access",
            },
            error_text="Language model returned no output",
        )
        return ExecutionResult(
            full_text=build_no_output_text(plan),
            tool_executions=[failure],
            finish_reason=FINISH_REASON_FALLBACK,
            usage=state.usage,
            execution_steps=[],
            step_count=state.step_count,
            duration=time.time() - state.start_time,
        )
