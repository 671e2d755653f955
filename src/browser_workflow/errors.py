"""Exception taxonomy for the browser workflow."""

import asyncio


class WorkflowError(Exception):
    """Base class for workflow errors."""


class ConfigurationError(WorkflowError):
    """Required credentials or settings are missing. Fatal for the run."""


class WorkflowCancelledError(WorkflowError):
    """The run's cancellation signal was set."""


class NoOutputGeneratedError(WorkflowError):
    """The language model finished a call without producing any output."""


class StructuredOutputError(WorkflowError):
    """Structured generation still failed validation after all retries."""


class ToolExecutionError(WorkflowError):
    """A tool kept failing with transient errors after all retries."""

    def __init__(self, tool_name: str, message: str, attempts: int = 1):
        super().__init__(message)
        self.tool_name = tool_name
        self.attempts = attempts


class TaskConcurrencyError(WorkflowError):
    """A task was started while the ledger's concurrency limit was reached."""


TRANSIENT_ERROR_MARKERS = (
    "timeout",
    "network error",
    "connection lost",
    "receiving end does not exist",
    "could not establish connection",
)


def is_transient_error(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in TRANSIENT_ERROR_MARKERS)


def classify_error(error: BaseException) -> str:
    """
    Classify an error into a category for logs and fallback reports.

    Args:
        error: Exception that occurred

    Returns:
        Error type string
    """
    if isinstance(error, NoOutputGeneratedError) or "no output generated" in str(error).lower():
        return "no_output"
    if isinstance(error, ConfigurationError):
        return "configuration"
    if isinstance(error, (WorkflowCancelledError, asyncio.CancelledError)):
        return "cancelled"
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"

    error_str = str(error).lower()
    if "timeout" in error_str or "timed out" in error_str:
        return "timeout"
    elif "connection" in error_str or "network" in error_str or "receiving end" in error_str:
        return "connection"
    else:
        return "unknown"
