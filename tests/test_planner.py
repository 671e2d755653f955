"""
Tests for the Planner.

These tests verify plan generation, the deterministic repair rules applied to
model output, the complexity and confidence heuristics, and the fallback plan.
"""

import pytest

from browser_workflow.errors import StructuredOutputError
from browser_workflow.planner import (
    Planner,
    build_fallback_plan,
    calculate_complexity_score,
    calculate_confidence,
    format_plan_as_instructions,
    normalize_action,
    repair_planning_payload,
)
from browser_workflow.schemas import PlanningPayload

from helpers import ScriptedModel, planning_payload


# ============================================================================
# Repair rules
# ============================================================================

def test_normalize_action_synonyms_and_unknown():
    assert normalize_action("navigate") == "navigate"
    assert normalize_action("waitForElement") == "wait"
    assert normalize_action("getContext") == "getPageContext"
    assert normalize_action("hover") == "wait"
    assert normalize_action(None) == "wait"


def test_repair_hoists_nested_confidence():
    data = planning_payload()
    del data["confidence"]
    data["plan"]["confidence"] = 0.9

    repaired = repair_planning_payload(data)

    assert repaired["confidence"] == 0.9
    assert "confidence" not in repaired["plan"]


def test_repair_defaults_missing_confidence():
    data = planning_payload()
    del data["confidence"]

    assert repair_planning_payload(data)["confidence"] == 0.5


def test_repair_empty_steps_becomes_context_step():
    """Test that a plan without steps gets a single getPageContext step."""
    data = planning_payload()
    data["plan"]["steps"] = []
    data["plan"]["criticalPaths"] = [3]
    data["plan"]["estimatedSteps"] = 7

    repaired = repair_planning_payload(data)
    result = PlanningPayload.model_validate(repaired).to_result()

    assert len(result.plan.steps) == 1
    assert result.plan.steps[0].action == "getPageContext"
    assert result.plan.estimated_steps == 1
    assert result.plan.critical_paths == [1]


def test_repair_invalid_action_and_nested_fallback():
    """Test an invalid action and a two-level fallback being repaired into a valid plan."""
    steps = [
        {
            "step": 1,
            "action": "waitForElement",
            "target": "#results",
            "reasoning": "Wait for results",
            "expectedOutcome": "Results visible",
            "fallbackAction": {
                "action": "scrollPage",
                "target": "down",
                "reasoning": "Reveal results",
                "fallbackAction": {"action": "click", "target": "#more", "reasoning": "Load more"},
            },
        }
    ]
    repaired = repair_planning_payload(planning_payload(steps=steps))
    result = PlanningPayload.model_validate(repaired).to_result()

    step = result.plan.steps[0]
    assert step.action == "wait"
    assert step.fallback_action.action == "scroll"
    assert step.fallback_action.target == "down"
    assert "fallbackAction" not in repaired["plan"]["steps"][0]["fallbackAction"]


def test_repair_non_numeric_complexity():
    data = planning_payload()
    data["plan"]["complexityScore"] = "high"
    data["plan"]["estimatedSteps"] = "many"

    repaired = repair_planning_payload(data)

    assert repaired["plan"]["complexityScore"] == 0.5
    assert repaired["plan"]["estimatedSteps"] == 2


def test_repair_renumbers_steps_and_filters_critical_paths():
    steps = planning_payload()["plan"]["steps"]
    steps[0]["step"] = 5
    steps[1]["step"] = 5
    data = planning_payload(steps=steps)
    data["plan"]["criticalPaths"] = [2, 9, "x"]

    repaired = repair_planning_payload(data)

    assert [s["step"] for s in repaired["plan"]["steps"]] == [1, 2]
    assert repaired["plan"]["criticalPaths"] == [2]


def test_repair_plan_fields_at_top_level():
    data = planning_payload()["plan"]
    data["confidence"] = 0.7

    repaired = repair_planning_payload(data)

    assert repaired["confidence"] == 0.7
    assert len(repaired["plan"]["steps"]) == 2


def test_repair_leaves_non_dict_unchanged():
    assert repair_planning_payload(["not", "a", "plan"]) == ["not", "a", "plan"]


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"plan": None},
        {"steps": []},
        {"plan": {"steps": "nope"}, "confidence": "high"},
        {
            "plan": {
                "steps": [{"action": 5}, "garbage", {"action": "click", "target": ""}],
                "criticalPaths": [7, "x"],
                "estimatedSteps": 999,
                "complexityScore": 7,
                "potentialIssues": ["a"] * 20,
            },
            "confidence": 3,
        },
        {
            "plan": {
                "steps": [{"action": "navigate", "target": "https://example.com"}],
                "criticalPaths": [float("nan"), float("inf"), 1],
                "estimatedSteps": float("inf"),
                "complexityScore": float("nan"),
            },
            "confidence": float("-inf"),
        },
    ],
)
def test_repaired_payload_always_validates(raw):
    """Test that adversarial dict payloads always repair into a valid plan."""
    result = PlanningPayload.model_validate(repair_planning_payload(raw, "find shoes")).to_result()

    assert 1 <= len(result.plan.steps) <= 50
    assert 1 <= result.plan.estimated_steps <= 50
    assert 0.0 <= result.plan.complexity_score <= 1.0
    assert 0.0 <= result.confidence <= 1.0
    assert len(result.plan.potential_issues) <= 10
    assert all(i in {s.step for s in result.plan.steps} for i in result.plan.critical_paths)


# ============================================================================
# Heuristics
# ============================================================================

def test_complexity_score_keywords():
    query = "Go to https://example.com and search for shoes"

    assert calculate_complexity_score(query) == pytest.approx(0.7)


def test_complexity_score_capped():
    query = "fill the form then search and click the menu page, wait for dynamic load"

    assert calculate_complexity_score(query) == 1.0


def test_complexity_and_confidence_are_deterministic():
    query = "Navigate to https://shop.example.com?q=1 then filter by price"

    assert calculate_complexity_score(query) == calculate_complexity_score(query)
    score = calculate_complexity_score(query)
    assert calculate_confidence(query, score) == calculate_confidence(query, score)


def test_confidence_adjustments():
    query = "Go to https://example.com and search for shoes"

    assert calculate_confidence(query, 0.7) == pytest.approx(0.74)
    assert calculate_confidence(query, 0.7, has_valid_steps=True) == pytest.approx(0.84)
    # vague, no destination
    assert calculate_confidence("maybe find something", 0.2) == pytest.approx(0.54)


def test_confidence_clamped():
    assert calculate_confidence("maybe try something", 1.0) == pytest.approx(0.3)
    assert calculate_confidence("Go to https://example.com", 0.0, has_valid_steps=True) == 1.0


# ============================================================================
# Planner
# ============================================================================

@pytest.mark.asyncio
async def test_plan_returns_model_plan():
    model = ScriptedModel(structured=[planning_payload()])
    planner = Planner(model)

    result = await planner.plan("Read example.com", current_url="https://example.com")

    assert result.used_fallback is False
    assert [s.action for s in result.plan.steps] == ["navigate", "getPageContext"]
    assert result.confidence == 0.8
    assert "Current URL: https://example.com" in model.structured_calls[0]["user_prompt"]


@pytest.mark.asyncio
async def test_plan_repairs_model_output():
    steps = [{"step": 3, "action": "clickElement", "target": "#buy", "reasoning": "Buy", "expectedOutcome": "Cart"}]
    model = ScriptedModel(structured=[planning_payload(steps=steps)])

    result = await Planner(model).plan("Buy the item")

    assert result.plan.steps[0].step == 1
    assert result.plan.steps[0].action == "click"


@pytest.mark.asyncio
async def test_plan_falls_back_when_generation_fails():
    """Test that planning never raises and returns the fallback plan."""
    model = ScriptedModel(structured=[StructuredOutputError("invalid")])

    result = await Planner(model).plan("Find cheap flights")

    assert result.used_fallback is True
    assert len(result.plan.steps) == 1
    assert result.plan.steps[0].action == "getPageContext"
    assert result.plan.potential_issues == ["Planning generation failed, using fallback"]
    assert 0.1 <= result.confidence <= 1.0


def test_build_fallback_plan_is_deterministic():
    a = build_fallback_plan("search for news")
    b = build_fallback_plan("search for news")

    assert a.plan.to_dict() == b.plan.to_dict()
    assert a.confidence == b.confidence


def test_build_user_prompt_without_context():
    prompt = Planner(ScriptedModel()).build_user_prompt("find shoes")

    assert 'User Query: "find shoes"' in prompt
    assert "Starting from a blank page" in prompt


def test_format_plan_as_instructions():
    result = PlanningPayload.model_validate(planning_payload()).to_result()

    text = format_plan_as_instructions(result)

    assert text.startswith("# Execution Plan")
    assert "**Objective:** Read example.com" in text
    assert "- Step 1: navigate - https://example.com" in text
    assert "### Step 2: GETPAGECONTEXT" in text
