"""
Browser workflow package for planned, evaluated browser automation.

This package provides the components of the plan -> execute -> evaluate ->
retry -> summarize workflow: a structured planner, a tool-calling execution
loop with approval gating, an evaluator driving bounded retries, a summarizer
and the task ledger that reports progress.
"""

from browser_workflow.models import (
    # Planning Models
    FallbackAction,
    Step,
    Plan,
    PlanningResult,
    # Execution Models
    ToolExecutionState,
    ToolExecution,
    ExecutionStep,
    ApprovalRecord,
    Usage,
    ExecutionResult,
    # Evaluation Models
    Quality,
    RetryStrategy,
    EvaluationCriteria,
    EvaluationResult,
    # Task Ledger Models
    TaskStatus,
    Task,
    TaskUpdate,
    # Terminal Models
    SearchResult,
    SummarizationResult,
    ErrorAnalysis,
    WorkflowMetrics,
    WorkflowOutput,
)
from browser_workflow.errors import (
    WorkflowError,
    ConfigurationError,
    WorkflowCancelledError,
    NoOutputGeneratedError,
    StructuredOutputError,
    ToolExecutionError,
    TaskConcurrencyError,
)
from browser_workflow.config import ProviderKind, ModelSettings, ApprovalSettings, WorkflowSettings
from browser_workflow.llm import LanguageModel, OpenAICompatibleModel, create_language_model
from browser_workflow.task_ledger import TaskLedger
from browser_workflow.planner import Planner
from browser_workflow.approval import ApprovalPolicy, ApprovalGate
from browser_workflow.tools import ToolSet, RetryingToolInvoker
from browser_workflow.execution_loop import ExecutionEvent, ExecutionLoop
from browser_workflow.evaluator import Evaluator
from browser_workflow.retry_controller import RetryController
from browser_workflow.summarizer import Summarizer
from browser_workflow.error_analyzer import ErrorAnalyzer
from browser_workflow.search import YouSearchClient
from browser_workflow.metrics_tracker import MetricsTracker
from browser_workflow.workflow import BrowserAutomationWorkflow, WorkflowInput

__all__ = [
    # Planning Models
    "FallbackAction",
    "Step",
    "Plan",
    "PlanningResult",
    # Execution Models
    "ToolExecutionState",
    "ToolExecution",
    "ExecutionStep",
    "ApprovalRecord",
    "Usage",
    "ExecutionResult",
    # Evaluation Models
    "Quality",
    "RetryStrategy",
    "EvaluationCriteria",
    "EvaluationResult",
    # Task Ledger Models
    "TaskStatus",
    "Task",
    "TaskUpdate",
    # Terminal Models
    "SearchResult",
    "SummarizationResult",
    "ErrorAnalysis",
    "WorkflowMetrics",
    "WorkflowOutput",
    # Errors
    "WorkflowError",
    "ConfigurationError",
    "WorkflowCancelledError",
    "NoOutputGeneratedError",
    "StructuredOutputError",
    "ToolExecutionError",
    "TaskConcurrencyError",
    # Configuration
    "ProviderKind",
    "ModelSettings",
    "ApprovalSettings",
    "WorkflowSettings",
    # Language Models
    "LanguageModel",
    "OpenAICompatibleModel",
    "create_language_model",
    # Components
    "TaskLedger",
    "Planner",
    "ApprovalPolicy",
    "ApprovalGate",
    "ToolSet",
    "RetryingToolInvoker",
    "ExecutionEvent",
    "ExecutionLoop",
    "Evaluator",
    "RetryController",
    "Summarizer",
    "ErrorAnalyzer",
    "YouSearchClient",
    "MetricsTracker",
    # Workflow
    "BrowserAutomationWorkflow",
    "WorkflowInput",
]
