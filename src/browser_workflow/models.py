"""
Data models for the browser automation workflow.

This module defines the core data structures that flow between the workflow
phases, including:
- Planning outputs (Step, FallbackAction, Plan, PlanningResult)
- Execution outputs (ToolExecution, ExecutionStep, ApprovalRecord, Usage, ExecutionResult)
- Evaluation outputs (RetryStrategy, EvaluationCriteria, EvaluationResult)
- Task bookkeeping (Task, TaskUpdate)
- Terminal artifacts (SummarizationResult, ErrorAnalysis, WorkflowMetrics, WorkflowOutput)

Attributes use snake_case; ``to_dict`` emits the camelCase names used on the wire
and in prompts.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


PLAN_ACTIONS = (
    "navigate",
    "click",
    "type",
    "type_text",
    "press_key",
    "scroll",
    "wait",
    "getPageContext",
)

FINISH_REASON_FALLBACK = "fallback_no_output"


# ============================================================================
# Planning Models
# ============================================================================

@dataclass
class FallbackAction:
    """
    Single-level alternative to try when a step fails.

    Attributes:
        action: Action from the closed plan action set
        target: URL, selector, literal text or direction for the action
        reasoning: Why this alternative is worth trying
    """
    action: str
    target: str
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "target": self.target, "reasoning": self.reasoning}


@dataclass
class Step:
    """
    One ordered action in a plan.

    Attributes:
        step: 1-based position in the plan
        action: Action from the closed plan action set
        target: URL, selector, literal text or direction, depending on the action
        reasoning: Human-facing justification for the step
        expected_outcome: What should be observable after the step runs
        validation_criteria: Optional check confirming the step worked
        fallback_action: Optional alternative, never nested
    """
    step: int
    action: str
    target: str
    reasoning: str
    expected_outcome: str
    validation_criteria: Optional[str] = None
    fallback_action: Optional[FallbackAction] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "step": self.step,
            "action": self.action,
            "target": self.target,
            "reasoning": self.reasoning,
            "expectedOutcome": self.expected_outcome,
        }
        if self.validation_criteria:
            data["validationCriteria"] = self.validation_criteria
        if self.fallback_action is not None:
            data["fallbackAction"] = self.fallback_action.to_dict()
        return data


@dataclass
class Plan:
    """
    Structured action plan produced once per workflow run.

    Consumed read-only by the execution loop and the evaluator.

    Attributes:
        objective: What the user wants to achieve
        approach: High-level strategy for the plan
        steps: Ordered steps (1 to 50)
        critical_paths: 1-based step numbers that must succeed
        estimated_steps: Expected number of steps (1 to 50)
        complexity_score: Task complexity in [0, 1]
        potential_issues: Advisory list of anticipated problems
        optimizations: Advisory list of possible shortcuts
    """
    objective: str
    approach: str
    steps: List[Step]
    critical_paths: List[int] = field(default_factory=lambda: [1])
    estimated_steps: int = 1
    complexity_score: float = 0.5
    potential_issues: List[str] = field(default_factory=list)
    optimizations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objective": self.objective,
            "approach": self.approach,
            "steps": [s.to_dict() for s in self.steps],
            "criticalPaths": list(self.critical_paths),
            "estimatedSteps": self.estimated_steps,
            "complexityScore": self.complexity_score,
            "potentialIssues": list(self.potential_issues),
            "optimizations": list(self.optimizations),
        }


@dataclass
class PlanningResult:
    """
    Planner output.

    Attributes:
        plan: The validated plan
        confidence: Planner confidence in [0, 1]
        optimized_query: Optional rewritten query
        gaps: Optional list of missing information (at most 5)
        used_fallback: True when the plan is the deterministic fallback plan
    """
    plan: Plan
    confidence: float
    optimized_query: Optional[str] = None
    gaps: List[str] = field(default_factory=list)
    used_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"plan": self.plan.to_dict(), "confidence": self.confidence}
        if self.optimized_query:
            data["optimizedQuery"] = self.optimized_query
        if self.gaps:
            data["gaps"] = list(self.gaps)
        return data


# ============================================================================
# Execution Models
# ============================================================================

class ToolExecutionState(str, Enum):
    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"
    APPROVAL_PENDING = "approval-pending"


@dataclass
class ToolExecution:
    """
    One tool invocation made during the execution loop.

    Attributes:
        tool_call_id: Unique id assigned by the model (or synthesized)
        tool_name: Name of the invoked tool
        state: Current lifecycle state
        input: Arguments the model supplied
        output: Result payload once the tool finished
        error_text: Error message when the tool failed or was rejected
        timestamp: Unix timestamp when the call was received
        duration: Seconds spent executing the tool
    """
    tool_call_id: str
    tool_name: str
    state: ToolExecutionState
    input: Dict[str, Any] = field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    error_text: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == ToolExecutionState.OUTPUT_AVAILABLE

    @property
    def is_terminal(self) -> bool:
        return self.state in (ToolExecutionState.OUTPUT_AVAILABLE, ToolExecutionState.OUTPUT_ERROR)


@dataclass
class ExecutionStep:
    """
    Trajectory entry recorded for every executed tool call.

    Attributes:
        step: 1-based position in the trajectory
        action: Tool name
        target: Most relevant argument (url, selector, text, direction)
        success: Whether the tool succeeded
        url: Page URL associated with the step, when known
        error: Error message for failed steps
    """
    step: int
    action: str
    target: str
    success: bool
    url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ApprovalRecord:
    """A sensitive tool call that was put in front of the approval capability."""
    tool_name: str
    args: Dict[str, Any]
    approved: bool
    reason: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "Usage") -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens


@dataclass
class ExecutionResult:
    """
    Outcome of one execution loop attempt.

    Attributes:
        full_text: Concatenated text emitted by the model
        tool_executions: Every tool invocation, in call order
        finish_reason: Model finish reason, stop condition name, or "fallback_no_output"
        usage: Aggregated token usage across model turns
        execution_steps: Trajectory used by the summarizer
        text_chunk_count: Number of streamed text deltas
        tool_call_count: Number of tool calls the model requested
        step_count: Number of model turns
        approvals_requested: Approval decisions made during the attempt
        duration: Wall-clock seconds for the attempt
    """
    full_text: str
    tool_executions: List[ToolExecution]
    finish_reason: str
    usage: Usage = field(default_factory=Usage)
    execution_steps: List[ExecutionStep] = field(default_factory=list)
    text_chunk_count: int = 0
    tool_call_count: int = 0
    step_count: int = 0
    approvals_requested: List[ApprovalRecord] = field(default_factory=list)
    duration: float = 0.0

    @property
    def is_fallback(self) -> bool:
        return self.finish_reason == FINISH_REASON_FALLBACK


# ============================================================================
# Evaluation Models
# ============================================================================

class Quality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    POOR = "poor"
    FAILED = "failed"


@dataclass
class RetryStrategy:
    """
    Evaluator guidance for the next execution attempt.

    Attributes:
        approach: Overall change of approach
        focus_areas: What the next attempt should concentrate on
        modifications: Concrete changes to make
    """
    approach: str
    focus_areas: List[str] = field(default_factory=list)
    modifications: List[str] = field(default_factory=list)


@dataclass
class EvaluationCriteria:
    """
    Caller-supplied expectations the evaluator scores against.

    Attributes:
        required_tools: Tools that must have been used
        min_success_rate: Minimum fraction of successful tool calls
        max_errors: Maximum tolerated failed tool calls
        text_min_length: Minimum length of the final text output
        custom_criteria: Free-form additional criteria
    """
    required_tools: List[str] = field(default_factory=list)
    min_success_rate: float = 0.7
    max_errors: int = 3
    text_min_length: int = 100
    custom_criteria: List[str] = field(default_factory=list)


@dataclass
class EvaluationResult:
    """
    Quality verdict for one execution attempt.

    Attributes:
        quality: Overall quality bucket
        score: Overall score in [0, 1]
        completeness: How much of the query was addressed, in [0, 1]
        correctness: How accurate the result is, in [0, 1]
        issues: Problems found
        successes: Things that went well
        recommendations: Suggested improvements
        should_retry: Evaluator's raw retry recommendation
        should_proceed: Evaluator's raw proceed recommendation
        retry_strategy: Guidance for a retry, when one is warranted
        duration: Seconds spent evaluating
    """
    quality: Quality
    score: float
    completeness: float
    correctness: float
    issues: List[str] = field(default_factory=list)
    successes: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    should_retry: bool = False
    should_proceed: bool = True
    retry_strategy: Optional[RetryStrategy] = None
    duration: float = 0.0


# ============================================================================
# Task Ledger Models
# ============================================================================

class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    RETRYING = "retrying"


@dataclass
class Task:
    """
    Ledger entry for one workflow phase.

    Attributes:
        id: One of plan, context, execute, evaluate, summarize
        title: Human-readable phase title
        status: Current status
        description: Latest note attached by the owning phase
        updated_at: Unix timestamp of the last transition
    """
    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    description: Optional[str] = None
    updated_at: float = field(default_factory=time.time)

    @property
    def display_status(self) -> TaskStatus:
        if self.status == TaskStatus.RETRYING:
            return TaskStatus.IN_PROGRESS
        return self.status


@dataclass(frozen=True)
class TaskUpdate:
    task_id: str
    status: TaskStatus
    description: Optional[str] = None


# ============================================================================
# Summarization and Terminal Models
# ============================================================================

@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str = ""


@dataclass
class SummarizationResult:
    """
    Final human-readable report.

    Attributes:
        summary: Markdown report, or the reused fallback text
        success: Whether the summary was produced by a successful model call
        task_completed: Parsed TASK_COMPLETED verdict, when present
        sources: Search results cited in the report
        skipped: True when the model call was skipped for the no-output path
        duration: Seconds spent summarizing
    """
    summary: str
    success: bool
    task_completed: Optional[bool] = None
    sources: List[SearchResult] = field(default_factory=list)
    skipped: bool = False
    duration: float = 0.0


@dataclass
class ErrorAnalysis:
    recap: str
    blame: str
    improvement: str


@dataclass
class WorkflowMetrics:
    """
    Counters collected over one workflow run.

    Attributes:
        planner_calls: Planner invocations
        execution_attempts: Execution loop attempts (1 + retries)
        evaluations: Evaluator invocations
        tool_calls: Tool executions attempted
        failed_tool_calls: Tool executions that ended in an error
        approvals_requested: Sensitive tool calls sent for approval
        approvals_rejected: Approval requests that were rejected or timed out
        retries: Workflow-level retries performed
        total_time: Wall-clock seconds for the run
    """
    planner_calls: int
    execution_attempts: int
    evaluations: int
    tool_calls: int
    failed_tool_calls: int
    approvals_requested: int
    approvals_rejected: int
    retries: int
    total_time: float

    @property
    def tool_success_rate(self) -> float:
        if self.tool_calls == 0:
            return 0.0
        return (self.tool_calls - self.failed_tool_calls) / self.tool_calls


@dataclass(frozen=True)
class WorkflowOutput:
    """
    Terminal artifact of one workflow run.

    Attributes:
        success: True when planning and execution phases completed
        planning: Planner output
        streaming: Final execution loop result
        evaluation: Final evaluation
        summarization: Summarizer output
        duration: Wall-clock seconds for the run
        workflow_id: Unique id of the run
        retry_count: Workflow-level retries performed
        tasks: Snapshot of the task ledger at the end of the run
        metrics: Run metrics
        error_analysis: Failure analysis, produced only for poor or failed runs
    """
    success: bool
    planning: PlanningResult
    streaming: ExecutionResult
    evaluation: EvaluationResult
    summarization: SummarizationResult
    duration: float
    workflow_id: str
    retry_count: int = 0
    tasks: List[Task] = field(default_factory=list)
    metrics: Optional[WorkflowMetrics] = None
    error_analysis: Optional[ErrorAnalysis] = None
