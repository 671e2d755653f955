"""
Approval gate for sensitive tool calls.

The gate is a workflow-layer wrapper around tool execution: it decides whether a
call is sensitive, asks the approval capability, and reports the decision. It
never executes the tool itself.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union
from urllib.parse import urlparse

from browser_workflow.config import ApprovalSettings


logger = logging.getLogger(__name__)

ApprovalCallback = Callable[[str, Dict[str, Any]], Union[bool, Awaitable[bool]]]

REJECTION_MESSAGE = "cancelled by user"

_TYPE_TOOLS = ("type", "type_text")


@dataclass(frozen=True)
class ApprovalDecision:
    required: bool
    approved: bool
    reason: str = ""


class ApprovalPolicy:
    """
    Decides which tool calls are sensitive.

    A call needs approval when it navigates to a host outside the allowed
    domains, types text longer than the threshold, or uses a tool from the
    always-confirm list.
    """

    def __init__(
        self,
        allowed_domains: Iterable[str] = (),
        type_text_threshold: int = 100,
        always_confirm: Iterable[str] = (),
    ):
        self._allowed_domains = {domain.lower().lstrip(".") for domain in allowed_domains if domain}
        self.type_text_threshold = type_text_threshold
        self.always_confirm = frozenset(always_confirm)

    @classmethod
    def from_settings(cls, settings: ApprovalSettings) -> "ApprovalPolicy":
        return cls(
            allowed_domains=settings.allowed_domains,
            type_text_threshold=settings.type_text_threshold,
            always_confirm=settings.always_confirm,
        )

    def _is_allowed_host(self, host: str) -> bool:
        host = host.lower()
        if host in self._allowed_domains:
            return True
        for allowed in self._allowed_domains:
            if host.endswith(f".{allowed}"):
                return True
        return False

    def requires_approval(self, tool_name: str, args: Dict[str, Any]) -> Optional[str]:
        """
        Return the reason a call needs approval, or None when it does not.
        """
        if tool_name in self.always_confirm:
            return f"{tool_name} always requires confirmation"

        if tool_name == "navigate":
            url = str(args.get("url") or args.get("target") or "")
            try:
                host = urlparse(url).hostname
            except ValueError:
                host = None
            if not host:
                return f"Cannot verify destination of '{url}'"
            if not self._is_allowed_host(host):
                return f"Navigation to non-whitelisted domain {host}"

        if tool_name in _TYPE_TOOLS:
            text = str(args.get("text") or "")
            if len(text) > self.type_text_threshold:
                return f"Typing {len(text)} characters (limit {self.type_text_threshold})"

        return None


class ApprovalGate:
    """
    Asks the approval capability about sensitive calls.

    Without a callback nothing is gated. A callback may be sync or async;
    a decision that does not arrive within ``timeout`` seconds is a rejection.
    """

    def __init__(
        self,
        policy: ApprovalPolicy,
        callback: Optional[ApprovalCallback] = None,
        timeout: Optional[float] = 300.0,
    ):
        self.policy = policy
        self.callback = callback
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.callback is not None

    def check(self, tool_name: str, args: Dict[str, Any]) -> Optional[str]:
        if not self.enabled:
            return None
        return self.policy.requires_approval(tool_name, args)

    async def request(self, tool_name: str, args: Dict[str, Any], reason: str) -> ApprovalDecision:
        logger.info("Requesting approval for %s: %s", tool_name, reason)
        try:
            if inspect.iscoroutinefunction(self.callback):
                decision = await asyncio.wait_for(self.callback(tool_name, args), timeout=self.timeout)
            else:
                # Sync callbacks (e.g. terminal prompts) must not block the event loop.
                decision = await asyncio.wait_for(
                    asyncio.to_thread(self.callback, tool_name, args), timeout=self.timeout
                )
                if inspect.isawaitable(decision):
                    decision = await asyncio.wait_for(decision, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Approval for %s timed out after %ss; treating as rejected", tool_name, self.timeout)
            return ApprovalDecision(required=True, approved=False, reason=f"{reason} (approval timed out)")

        approved = bool(decision)
        logger.info("Approval for %s %s", tool_name, "granted" if approved else "rejected")
        return ApprovalDecision(required=True, approved=approved, reason=reason)
