"""Root-cause analysis for runs that ended poorly."""

import logging
from typing import List, Optional

from browser_workflow.llm import LanguageModel
from browser_workflow.models import ErrorAnalysis, EvaluationResult, ExecutionStep
from browser_workflow.prompts import ERROR_ANALYZER_SYSTEM_PROMPT, ERROR_ANALYZER_USER_PROMPT
from browser_workflow.schemas import ErrorAnalysisPayload


logger = logging.getLogger(__name__)


def describe_steps(steps: List[ExecutionStep]) -> str:
    lines = []
    for s in steps:
        target = f' on "{s.target}"' if s.target else ""
        outcome = "It succeeded." if s.success else f"It failed: {s.error or 'unknown error'}."
        lines.append(f"At step {s.step}, you took the **{s.action}** action{target}. {outcome}")
    return "\n".join(lines) or "(no steps were executed)"


def fallback_analysis(steps: List[ExecutionStep]) -> ErrorAnalysis:
    failed = sum(1 for s in steps if not s.success)
    return ErrorAnalysis(
        recap=f"Execution consisted of {len(steps)} steps. {failed} of them failed.",
        blame="Unable to analyze root cause due to analysis failure.",
        improvement="Review execution steps manually and identify patterns that led to failure.",
    )


class ErrorAnalyzer:
    """Explains a failed run as recap / blame / improvement."""

    async def analyze(
        self,
        model: LanguageModel,
        steps: List[ExecutionStep],
        objective: str,
        outcome_text: str,
        evaluation: Optional[EvaluationResult] = None,
    ) -> ErrorAnalysis:
        feedback = "; ".join(evaluation.issues) if evaluation is not None and evaluation.issues else "(none)"
        user_prompt = ERROR_ANALYZER_USER_PROMPT.format(
            objective=objective,
            trajectory=describe_steps(steps),
            outcome=outcome_text or "(no text output)",
            feedback=feedback,
        )
        try:
            payload = await model.generate_structured(
                ErrorAnalysisPayload,
                ERROR_ANALYZER_SYSTEM_PROMPT,
                user_prompt,
                max_retries=1,
            )
        except Exception:
            logger.warning("Error analysis failed; using fallback analysis", exc_info=True)
            return fallback_analysis(steps)
        return ErrorAnalysis(recap=payload.recap, blame=payload.blame, improvement=payload.improvement)
