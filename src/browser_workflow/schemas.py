"""
Wire schemas for structured model output.

The pydantic models here are the hand-off contracts between the language model
and the workflow: their JSON schema is sent as the ``response_format`` of the
generation request, and the same models validate what comes back. Validated
payloads are converted into the dataclasses in ``browser_workflow.models``.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from browser_workflow.models import (
    EvaluationResult,
    FallbackAction,
    Plan,
    PlanningResult,
    Quality,
    RetryStrategy,
    Step,
)


PlanAction = Literal[
    "navigate",
    "click",
    "type",
    "type_text",
    "press_key",
    "scroll",
    "wait",
    "getPageContext",
]


class FallbackActionPayload(BaseModel):
    """Alternative action for a failed step. Nesting another fallback is rejected."""

    model_config = ConfigDict(extra="forbid")

    action: PlanAction
    target: str = Field(min_length=1)
    reasoning: str = Field(min_length=1)


class StepPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    step: int = Field(ge=1, description="1-based step number")
    action: PlanAction
    target: str = Field(min_length=1, description="URL, selector, text or direction")
    reasoning: str = Field(min_length=1)
    expected_outcome: str = Field(alias="expectedOutcome", min_length=1)
    validation_criteria: Optional[str] = Field(default=None, alias="validationCriteria")
    fallback_action: Optional[FallbackActionPayload] = Field(default=None, alias="fallbackAction")


class PlanPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    objective: str = Field(min_length=1)
    approach: str = Field(min_length=1)
    steps: List[StepPayload] = Field(min_length=1, max_length=50)
    critical_paths: List[int] = Field(alias="criticalPaths", description="Step numbers that must succeed")
    estimated_steps: int = Field(alias="estimatedSteps", ge=1, le=50)
    complexity_score: float = Field(alias="complexityScore", ge=0, le=1)
    potential_issues: List[str] = Field(default_factory=list, alias="potentialIssues", max_length=10)
    optimizations: List[str] = Field(default_factory=list, max_length=10)

    @model_validator(mode="after")
    def _check_step_references(self) -> "PlanPayload":
        numbers = [s.step for s in self.steps]
        if any(b <= a for a, b in zip(numbers, numbers[1:])):
            raise ValueError("step numbers must be strictly increasing")
        known = set(numbers)
        missing = [index for index in self.critical_paths if index not in known]
        if missing:
            raise ValueError(f"criticalPaths refer to unknown steps: {missing}")
        return self


class PlanningPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: PlanPayload
    optimized_query: Optional[str] = Field(default=None, alias="optimizedQuery")
    gaps: List[str] = Field(default_factory=list, max_length=5)
    confidence: float = Field(ge=0, le=1)

    def to_result(self) -> PlanningResult:
        plan = Plan(
            objective=self.plan.objective,
            approach=self.plan.approach,
            steps=[
                Step(
                    step=s.step,
                    action=s.action,
                    target=s.target,
                    reasoning=s.reasoning,
                    expected_outcome=s.expected_outcome,
                    validation_criteria=s.validation_criteria,
                    fallback_action=(
                        FallbackAction(
                            action=s.fallback_action.action,
                            target=s.fallback_action.target,
                            reasoning=s.fallback_action.reasoning,
                        )
                        if s.fallback_action is not None
                        else None
                    ),
                )
                for s in self.plan.steps
            ],
            critical_paths=list(self.plan.critical_paths),
            estimated_steps=self.plan.estimated_steps,
            complexity_score=self.plan.complexity_score,
            potential_issues=list(self.plan.potential_issues),
            optimizations=list(self.plan.optimizations),
        )
        return PlanningResult(
            plan=plan,
            confidence=self.confidence,
            optimized_query=self.optimized_query,
            gaps=list(self.gaps),
        )


class RetryStrategyPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approach: str
    focus_areas: List[str] = Field(default_factory=list, alias="focusAreas")
    modifications: List[str] = Field(default_factory=list)


class EvaluationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quality: Literal["excellent", "good", "acceptable", "poor", "failed"]
    score: float = Field(ge=0, le=1)
    completeness: float = Field(ge=0, le=1)
    correctness: float = Field(ge=0, le=1)
    issues: List[str] = Field(default_factory=list)
    successes: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    should_retry: bool = Field(alias="shouldRetry")
    should_proceed: bool = Field(alias="shouldProceed")
    retry_strategy: Optional[RetryStrategyPayload] = Field(default=None, alias="retryStrategy")

    def to_result(self, duration: float = 0.0) -> EvaluationResult:
        strategy = None
        if self.retry_strategy is not None:
            strategy = RetryStrategy(
                approach=self.retry_strategy.approach,
                focus_areas=list(self.retry_strategy.focus_areas),
                modifications=list(self.retry_strategy.modifications),
            )
        return EvaluationResult(
            quality=Quality(self.quality),
            score=self.score,
            completeness=self.completeness,
            correctness=self.correctness,
            issues=list(self.issues),
            successes=list(self.successes),
            recommendations=list(self.recommendations),
            should_retry=self.should_retry,
            should_proceed=self.should_proceed,
            retry_strategy=strategy,
            duration=duration,
        )


class ErrorAnalysisPayload(BaseModel):
    recap: str = Field(min_length=1)
    blame: str = Field(min_length=1)
    improvement: str = Field(min_length=1)
