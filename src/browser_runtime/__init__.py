"""
Browser runtime for the browser workflow.

Provides the patchright-backed browser, the tool executor the workflow calls
for browser tools, and logging setup for command-line runs.
"""

from browser_runtime.browser import AgentBrowser
from browser_runtime.logging_config import configure_logging
from browser_runtime.tool_executor import BrowserToolExecutor

__all__ = [
    "AgentBrowser",
    "BrowserToolExecutor",
    "configure_logging",
]
