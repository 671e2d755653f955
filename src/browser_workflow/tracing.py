"""
Opik tracing for workflow runs.

One trace per run, one span per phase. Tracing is strictly best effort: every
Opik call is guarded so a tracing failure is logged and never interrupts a run.
"""

import logging
from typing import Any, Dict, Optional

import opik


logger = logging.getLogger(__name__)


class WorkflowTracer:
    """
    Thin wrapper over an Opik client.

    Attributes:
        project_name: Opik project receiving the traces
        enabled: Whether traces are recorded at all
    """

    def __init__(self, project_name: str = "browser-workflow", enabled: bool = True, client: Optional[Any] = None):
        self.project_name = project_name
        self.enabled = enabled
        self._client = client

    @property
    def client(self) -> Optional[Any]:
        if not self.enabled:
            return None
        if self._client is None:
            try:
                self._client = opik.Opik(project_name=self.project_name)
                logger.info("Initialized Opik client for project %s", self.project_name)
            except Exception:
                logger.warning("Failed to initialize Opik client; disabling tracing", exc_info=True)
                self.enabled = False
        return self._client

    def start_trace(self, name: str, input: Dict[str, Any]) -> Optional[Any]:
        client = self.client
        if client is None:
            return None
        try:
            return client.trace(project_name=self.project_name, name=name, input=input)
        except Exception:
            logger.warning("[OPIK] Failed to create trace %s", name, exc_info=True)
            return None

    def log_span(
        self,
        trace: Optional[Any],
        name: str,
        input: Dict[str, Any],
        output: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
        span_type: str = "general",
    ) -> None:
        if trace is None:
            return
        try:
            trace.span(name=name, type=span_type, input=input, output=output, metadata=metadata or {})
        except Exception:
            logger.warning("[OPIK] Failed to log span %s", name, exc_info=True)

    def end_trace(self, trace: Optional[Any], output: Dict[str, Any]) -> None:
        if trace is None:
            return
        try:
            trace.update(output=output)
            trace.end()
        except Exception:
            logger.warning("[OPIK] Failed to end trace", exc_info=True)
