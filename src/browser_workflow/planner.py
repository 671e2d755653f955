"""
Planner for browser automation tasks.

This module turns a natural-language request into a structured, ordered action
plan. The model's JSON output is repaired deterministically before validation,
and any failure degrades to a one-step fallback plan: planning never raises.
"""

import functools
import logging
import math
import re
import time
from typing import Any, Dict, List, Optional

from browser_workflow.llm import LanguageModel
from browser_workflow.models import PLAN_ACTIONS, Plan, PlanningResult, Step
from browser_workflow.prompts import PLANNER_SYSTEM_PROMPT, PLANNER_USER_PROMPT
from browser_workflow.schemas import PlanningPayload


logger = logging.getLogger(__name__)

MAX_PLAN_STEPS = 50
MAX_ADVISORY_ITEMS = 10
DEFAULT_CONFIDENCE = 0.5
DEFAULT_COMPLEXITY = 0.5

ACTION_SYNONYMS = {
    "waitForElement": "wait",
    "waitFor": "wait",
    "getContext": "getPageContext",
    "getPage": "getPageContext",
    "clickElement": "click",
    "typeText": "type",
    "scrollPage": "scroll",
    "pressKey": "press_key",
    "goto": "navigate",
}

_URL_PATTERN = re.compile(r"https?://[^\s]+")

_MULTI_STEP_WORDS = ("then", "and", "after", "next", "finally")
_FORM_WORDS = ("fill", "form", "input", "submit", "register", "sign up", "login")
_NAVIGATION_WORDS = ("navigate", "browse", "click", "menu", "tab", "page")
_SEARCH_WORDS = ("search", "find", "filter", "sort", "query")
_DYNAMIC_WORDS = ("load", "wait", "ajax", "js", "javascript", "dynamic")
_CLEAR_WORDS = ("navigate to", "go to", "open", "visit", "browse to")
_VAGUE_WORDS = ("maybe", "perhaps", "try", "might", "could", "somehow")


def _default_context_step() -> Dict[str, Any]:
    return {
        "step": 1,
        "action": "getPageContext",
        "target": "current_page",
        "reasoning": "Need to understand current page state before proceeding",
        "expectedOutcome": "Page context retrieved (title, text, links, forms)",
    }


def normalize_action(action: Any) -> str:
    """Map an action name onto the closed plan action set, defaulting to wait."""
    if isinstance(action, str):
        if action in PLAN_ACTIONS:
            return action
        if action in ACTION_SYNONYMS:
            return ACTION_SYNONYMS[action]
    logger.debug("Repaired invalid action %r to 'wait'", action)
    return "wait"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _string_list(value: Any, limit: int) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None][:limit]


def _repair_fallback(fallback: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(fallback, dict):
        return None
    # Only one level of fallback survives; deeper levels are discarded.
    return {
        "action": normalize_action(fallback.get("action") or "wait"),
        "target": str(fallback.get("target") or "1"),
        "reasoning": str(fallback.get("reasoning") or "Fallback action"),
    }


def _repair_step(raw_step: Dict[str, Any], number: int) -> Dict[str, Any]:
    action = normalize_action(raw_step.get("action"))
    target = raw_step.get("target")
    if target is None or not str(target).strip():
        target = "current_page" if action == "getPageContext" else "1"

    step: Dict[str, Any] = {
        "step": number,
        "action": action,
        "target": str(target),
        "reasoning": str(raw_step.get("reasoning") or f"Perform {action} as part of the plan"),
        "expectedOutcome": str(raw_step.get("expectedOutcome") or f"{action} completes successfully"),
    }
    if raw_step.get("validationCriteria"):
        step["validationCriteria"] = str(raw_step["validationCriteria"])
    fallback = _repair_fallback(raw_step.get("fallbackAction"))
    if fallback is not None:
        step["fallbackAction"] = fallback
    return step


def repair_planning_payload(data: Any, user_query: str = "") -> Any:
    """
    Apply deterministic repairs to a raw planning payload before validation.

    Repairs:
    - confidence nested inside the plan is hoisted to the top level (default 0.5)
    - invalid actions are mapped to the closed action set (unknown -> wait)
    - nested fallback actions are flattened to a single level
    - an empty or missing step list becomes a single getPageContext step
    - non-numeric complexityScore / estimatedSteps get safe defaults
    - steps are renumbered from 1 and criticalPaths are limited to existing steps

    Args:
        data: Parsed JSON returned by the model
        user_query: Query used to fill a missing objective

    Returns:
        Repaired payload (non-dict input is returned unchanged)
    """
    if not isinstance(data, dict):
        return data

    data = dict(data)
    if "plan" not in data and "steps" in data:
        # Plan fields returned at the top level
        data = {"plan": data, "confidence": data.get("confidence")}

    plan = data.get("plan")
    plan = dict(plan) if isinstance(plan, dict) else {}

    if "confidence" in plan:
        nested_confidence = plan.pop("confidence")
        if data.get("confidence") is None:
            data["confidence"] = nested_confidence
    confidence = data.get("confidence")
    data["confidence"] = _clamp(float(confidence), 0.0, 1.0) if _is_number(confidence) else DEFAULT_CONFIDENCE

    if not plan.get("objective"):
        plan["objective"] = user_query or "Complete the requested browser task"
    if not plan.get("approach"):
        plan["approach"] = "Sequential execution with validation"

    raw_steps = plan.get("steps")
    raw_steps = [s for s in raw_steps if isinstance(s, dict)] if isinstance(raw_steps, list) else []
    if not raw_steps:
        logger.info("Plan had no steps; substituting a getPageContext step")
        plan["steps"] = [_default_context_step()]
        plan["estimatedSteps"] = 1
        plan["criticalPaths"] = [1]
    else:
        plan["steps"] = [
            _repair_step(raw_step, number)
            for number, raw_step in enumerate(raw_steps[:MAX_PLAN_STEPS], start=1)
        ]

    step_count = len(plan["steps"])

    complexity = plan.get("complexityScore")
    plan["complexityScore"] = _clamp(float(complexity), 0.0, 1.0) if _is_number(complexity) else DEFAULT_COMPLEXITY

    estimated = plan.get("estimatedSteps")
    estimated = int(estimated) if _is_number(estimated) else step_count or 1
    plan["estimatedSteps"] = int(_clamp(estimated, 1, MAX_PLAN_STEPS))

    critical_paths = plan.get("criticalPaths")
    if isinstance(critical_paths, list):
        critical_paths = [int(i) for i in critical_paths if _is_number(i) and 1 <= int(i) <= step_count]
    plan["criticalPaths"] = sorted(set(critical_paths)) if critical_paths else [1]

    plan["potentialIssues"] = _string_list(plan.get("potentialIssues"), MAX_ADVISORY_ITEMS)
    plan["optimizations"] = _string_list(plan.get("optimizations"), MAX_ADVISORY_ITEMS)

    data["plan"] = plan
    if "gaps" in data:
        data["gaps"] = _string_list(data.get("gaps"), 5)
    return data


def calculate_complexity_score(user_query: str, steps: Optional[List[Any]] = None) -> float:
    """
    Estimate task complexity from keywords in the query.

    Each category of keyword adds a fixed amount to a base of 0.2; the result
    is capped at 1.0.
    """
    query = user_query.lower()
    complexity = 0.2

    if any(word in query for word in _MULTI_STEP_WORDS) or (steps is not None and len(steps) > 2):
        complexity += 0.3
    if any(word in query for word in _FORM_WORDS):
        complexity += 0.25
    if any(word in query for word in _NAVIGATION_WORDS):
        complexity += 0.15
    if any(word in query for word in _SEARCH_WORDS):
        complexity += 0.2
    if any(word in query for word in _DYNAMIC_WORDS):
        complexity += 0.15

    urls = _URL_PATTERN.findall(user_query)
    if len(urls) > 1:
        complexity += 0.1
    if urls and "?" in urls[0]:
        complexity += 0.1

    return min(round(complexity, 4), 1.0)


def calculate_confidence(user_query: str, complexity_score: float, has_valid_steps: bool = False) -> float:
    """Estimate planning confidence from complexity and query clarity, clamped to [0.1, 1.0]."""
    query = user_query.lower()
    confidence = 0.9 - complexity_score * 0.3

    if any(word in query for word in _CLEAR_WORDS):
        confidence += 0.05
    if any(word in query for word in _VAGUE_WORDS):
        confidence -= 0.2
    if not re.search(r"https?://", user_query) and "navigate" not in query:
        confidence -= 0.1
    if has_valid_steps:
        confidence += 0.1

    return round(_clamp(confidence, 0.1, 1.0), 4)


def build_fallback_plan(user_query: str) -> PlanningResult:
    """Deterministic single-step plan used when generation fails."""
    complexity = calculate_complexity_score(user_query)
    plan = Plan(
        objective=user_query,
        approach="Sequential execution with validation",
        steps=[
            Step(
                step=1,
                action="getPageContext",
                target="current_page",
                reasoning="Need to understand current page state before proceeding",
                expected_outcome="Page context retrieved (title, text, links, forms)",
                validation_criteria="Context object returned with title and URL",
            )
        ],
        critical_paths=[1],
        estimated_steps=1,
        complexity_score=complexity,
        potential_issues=["Planning generation failed, using fallback"],
        optimizations=[],
    )
    return PlanningResult(
        plan=plan,
        confidence=calculate_confidence(user_query, complexity, False),
        used_fallback=True,
    )


def _describe_context(current_url: Optional[str], page_context: Optional[Dict[str, Any]]) -> str:
    if not current_url:
        return "Starting from a blank page or unknown context."
    lines = [f"Current URL: {current_url}"]
    if page_context:
        lines.append(f"Page Title: {page_context.get('title') or 'Unknown'}")
        lines.append(f"Page Text Preview: {str(page_context.get('text') or '')[:500]}")
    return "\n".join(lines)


class Planner:
    """
    Produces a PlanningResult for a user query with one structured model call.

    Attributes:
        model: LanguageModel used for plan generation
        max_retries: Additional generation attempts on unusable output
    """

    def __init__(self, model: LanguageModel, max_retries: int = 2):
        self.model = model
        self.max_retries = max_retries

    def build_user_prompt(
        self,
        user_query: str,
        current_url: Optional[str] = None,
        page_context: Optional[Dict[str, Any]] = None,
    ) -> str:
        return PLANNER_USER_PROMPT.format(
            query=user_query,
            context=_describe_context(current_url, page_context),
        )

    async def plan(
        self,
        user_query: str,
        current_url: Optional[str] = None,
        page_context: Optional[Dict[str, Any]] = None,
    ) -> PlanningResult:
        """
        Generate an execution plan.

        Args:
            user_query: Natural-language request
            current_url: URL of the page the run starts from
            page_context: Context of the starting page (title, text, ...)

        Returns:
            PlanningResult; the fallback plan when generation fails
        """
        start_time = time.time()
        try:
            payload = await self.model.generate_structured(
                PlanningPayload,
                PLANNER_SYSTEM_PROMPT,
                self.build_user_prompt(user_query, current_url, page_context),
                repair=functools.partial(repair_planning_payload, user_query=user_query),
                max_retries=self.max_retries,
            )
        except Exception:
            logger.warning("Plan generation failed; using fallback plan", exc_info=True)
            return build_fallback_plan(user_query)

        result = payload.to_result()
        logger.info(
            "Generated plan with %d steps (confidence=%.2f, complexity=%.2f) in %.2fs",
            len(result.plan.steps),
            result.confidence,
            result.plan.complexity_score,
            time.time() - start_time,
        )
        return result


def format_plan_as_instructions(result: PlanningResult) -> str:
    """Render a plan as markdown instructions for the execution prompt."""
    plan = result.plan
    steps_by_number = {s.step: s for s in plan.steps}

    lines = [
        "# Execution Plan",
        "",
        f"**Objective:** {plan.objective}",
        f"**Approach:** {plan.approach}",
        f"**Complexity:** {round(plan.complexity_score * 100)}%",
        f"**Estimated Steps:** {plan.estimated_steps}",
        f"**Total Steps in Plan:** {len(plan.steps)} (execute all of them unless the objective is already achieved)",
        "",
        "## Critical Path Steps",
    ]
    for number in plan.critical_paths:
        step = steps_by_number.get(number)
        if step is not None:
            lines.append(f"- Step {number}: {step.action} - {step.target}")

    if plan.potential_issues:
        lines += ["", "## Potential Issues & Mitigations"]
        lines += [f"{i}. {issue}" for i, issue in enumerate(plan.potential_issues, start=1)]
    if plan.optimizations:
        lines += ["", "## Optimizations"]
        lines += [f"{i}. {opt}" for i, opt in enumerate(plan.optimizations, start=1)]

    lines += ["", "## Step-by-Step Instructions", ""]
    for step in plan.steps:
        lines.append(f"### Step {step.step}: {step.action.upper()}")
        lines.append(f"**Target:** {step.target}")
        lines.append(f"**Reasoning:** {step.reasoning}")
        lines.append(f"**Expected Outcome:** {step.expected_outcome}")
        if step.validation_criteria:
            lines.append(f"**Validation:** {step.validation_criteria}")
        if step.fallback_action is not None:
            fallback = step.fallback_action
            lines.append(f"**Fallback:** If this fails, {fallback.action} {fallback.target} ({fallback.reasoning})")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
