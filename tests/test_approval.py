"""Tests for the approval policy and gate."""

import asyncio
import time

import pytest

from browser_workflow.approval import ApprovalGate, ApprovalPolicy
from browser_workflow.config import ApprovalSettings


@pytest.fixture
def policy():
    return ApprovalPolicy(allowed_domains=["example.com", "docs.python.org"], type_text_threshold=20)


def test_navigate_to_allowed_domain_needs_no_approval(policy):
    assert policy.requires_approval("navigate", {"url": "https://example.com/path"}) is None
    assert policy.requires_approval("navigate", {"url": "https://shop.example.com"}) is None
    assert policy.requires_approval("navigate", {"url": "https://DOCS.python.org/3/"}) is None


def test_navigate_to_other_domain_needs_approval(policy):
    reason = policy.requires_approval("navigate", {"url": "https://evil-example.com"})

    assert reason == "Navigation to non-whitelisted domain evil-example.com"


def test_unparseable_url_is_sensitive(policy):
    assert policy.requires_approval("navigate", {"url": "not a url"}) is not None
    assert policy.requires_approval("navigate", {}) is not None


def test_long_text_needs_approval(policy):
    assert policy.requires_approval("type", {"text": "short"}) is None
    assert policy.requires_approval("type", {"text": "x" * 21}) == "Typing 21 characters (limit 20)"
    assert policy.requires_approval("type_text", {"text": "x" * 21}) is not None


def test_always_confirm_tools():
    policy = ApprovalPolicy(always_confirm=["click"])

    assert policy.requires_approval("click", {"selector": "#buy"}) is not None
    assert policy.requires_approval("scroll", {"direction": "down"}) is None


def test_from_settings():
    settings = ApprovalSettings(allowed_domains=["example.com"], type_text_threshold=5)
    policy = ApprovalPolicy.from_settings(settings)

    assert policy.type_text_threshold == 5
    assert policy.requires_approval("navigate", {"url": "https://example.com"}) is None


def test_gate_without_callback_gates_nothing(policy):
    gate = ApprovalGate(policy)

    assert gate.enabled is False
    assert gate.check("navigate", {"url": "https://elsewhere.org"}) is None


@pytest.mark.asyncio
async def test_gate_with_sync_callback(policy):
    calls = []

    def callback(tool_name, args):
        calls.append((tool_name, args))
        return False

    gate = ApprovalGate(policy, callback)
    reason = gate.check("navigate", {"url": "https://elsewhere.org"})
    decision = await gate.request("navigate", {"url": "https://elsewhere.org"}, reason)

    assert decision.required is True
    assert decision.approved is False
    assert calls == [("navigate", {"url": "https://elsewhere.org"})]


@pytest.mark.asyncio
async def test_gate_with_async_callback(policy):
    async def callback(tool_name, args):
        return True

    gate = ApprovalGate(policy, callback)
    decision = await gate.request("type", {"text": "x" * 50}, "long text")

    assert decision.approved is True
    assert decision.reason == "long text"


@pytest.mark.asyncio
async def test_gate_timeout_is_rejection(policy):
    async def slow_callback(tool_name, args):
        await asyncio.sleep(1)
        return True

    gate = ApprovalGate(policy, slow_callback, timeout=0.01)
    decision = await gate.request("navigate", {"url": "https://elsewhere.org"}, "external")

    assert decision.approved is False
    assert "timed out" in decision.reason


@pytest.mark.asyncio
async def test_gate_sync_callback_timeout_is_rejection(policy):
    """Test that a slow sync callback runs off the event loop and is rejected after the timeout."""
    def slow_callback(tool_name, args):
        time.sleep(0.5)
        return True

    ticks = []

    async def ticker():
        while True:
            ticks.append(1)
            await asyncio.sleep(0.01)

    ticking = asyncio.create_task(ticker())
    gate = ApprovalGate(policy, slow_callback, timeout=0.05)
    try:
        decision = await gate.request("navigate", {"url": "https://elsewhere.org"}, "external")
    finally:
        ticking.cancel()

    assert decision.approved is False
    assert "timed out" in decision.reason
    assert len(ticks) >= 2


@pytest.mark.asyncio
async def test_gate_sync_callback_decision(policy):
    gate = ApprovalGate(policy, lambda tool_name, args: tool_name == "navigate", timeout=1)

    decision = await gate.request("navigate", {"url": "https://elsewhere.org"}, "external")

    assert decision.approved is True
