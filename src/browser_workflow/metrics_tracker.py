"""
MetricsTracker for tracking workflow run metrics.

This module provides the MetricsTracker class which records key counters while
a workflow runs, including:
- Planner invocations
- Execution attempts and workflow-level retries
- Evaluations
- Tool calls, failures and approval decisions
- Run timing

The tracker produces a WorkflowMetrics summary at the end of the run.
"""

import time
from typing import Optional

from browser_workflow.models import ExecutionResult, WorkflowMetrics


class MetricsTracker:
    """
    Tracks counters for one workflow run.

    Attributes:
        planner_calls: Number of planner invocations
        execution_attempts: Number of execution loop attempts
        evaluations: Number of evaluator invocations
        tool_calls: Number of tool executions
        failed_tool_calls: Number of tool executions that ended in an error
        approvals_requested: Number of approval requests
        approvals_rejected: Number of rejected approval requests
        retries: Number of workflow-level retries
        start_time: Unix timestamp when tracking started
        end_time: Unix timestamp when tracking ended
    """

    def __init__(self):
        """Initialize the metrics tracker with zero counts."""
        self.planner_calls: int = 0
        self.execution_attempts: int = 0
        self.evaluations: int = 0
        self.tool_calls: int = 0
        self.failed_tool_calls: int = 0
        self.approvals_requested: int = 0
        self.approvals_rejected: int = 0
        self.retries: int = 0
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    def start(self) -> None:
        """Record the start of the run."""
        self.start_time = time.time()

    def stop(self) -> None:
        """Record the end of the run."""
        self.end_time = time.time()

    def record_planner_call(self) -> None:
        self.planner_calls += 1

    def record_execution(self, execution: ExecutionResult) -> None:
        """
        Record one execution attempt and its tool activity.

        The synthetic record of a no-output fallback is not counted as a tool call.

        Args:
            execution: Result of the attempt
        """
        self.execution_attempts += 1
        if execution.is_fallback:
            return
        self.tool_calls += len(execution.tool_executions)
        self.failed_tool_calls += sum(1 for t in execution.tool_executions if not t.success)
        self.approvals_requested += len(execution.approvals_requested)
        self.approvals_rejected += sum(1 for a in execution.approvals_requested if not a.approved)

    def record_evaluation(self) -> None:
        self.evaluations += 1

    def record_retry(self) -> None:
        self.retries += 1

    def get_summary(self) -> WorkflowMetrics:
        """
        Generate a summary of the run metrics.

        If the tracker was started but not stopped, the current time is used
        as the end time.

        Returns:
            WorkflowMetrics with all counters and the total run time

        Raises:
            ValueError: If start() was never called
        """
        if self.start_time is None:
            raise ValueError("Cannot generate summary: tracking was never started")

        end_time = self.end_time if self.end_time is not None else time.time()
        return WorkflowMetrics(
            planner_calls=self.planner_calls,
            execution_attempts=self.execution_attempts,
            evaluations=self.evaluations,
            tool_calls=self.tool_calls,
            failed_tool_calls=self.failed_tool_calls,
            approvals_requested=self.approvals_requested,
            approvals_rejected=self.approvals_rejected,
            retries=self.retries,
            total_time=end_time - self.start_time,
        )
