from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .agent_client import ExternalAgentClient
from .agents import ExternalAgentGrader, FallbackLLMGrader, Grader, HeuristicGrader
from .config import GradingSettings
from .errors import GradingProviderError
from .llm_client import LLMClient
from .models import GradingContext, GradingResult
from .prompts import validate_context

logger = logging.getLogger(__name__)


def restrict_concepts(result: GradingResult, context: GradingContext) -> GradingResult:
    """Keep only identified concepts that were expected, spelled as expected."""
    expected = {concept.strip().lower(): concept for concept in context.expected_concepts if concept.strip()}
    concepts = [
        expected[concept.strip().lower()]
        for concept in result.concepts_identified
        if concept.strip().lower() in expected
    ]
    if concepts == result.concepts_identified:
        return result
    payload = result.model_dump()
    payload["concepts_identified"] = concepts
    return GradingResult.model_validate(payload)


class GradingPipeline:
    """Fallback chain: each grader is tried once, in order, until one succeeds.

    The heuristic grader always closes the chain, so grading never fails for a
    valid context.
    """

    def __init__(self, graders: Sequence[Grader] = ()):
        chain = [grader for grader in graders if not isinstance(grader, HeuristicGrader)]
        self.providers: List[Grader] = chain
        self.heuristic = HeuristicGrader()

    @property
    def graders(self) -> List[Grader]:
        return [*self.providers, self.heuristic]

    async def grade_student_response(
        self,
        context: Union[GradingContext, Mapping[str, Any]],
        milestone_id: Optional[str] = None,
    ) -> GradingResult:
        ctx = validate_context(context)

        for grader in self.providers:
            if not grader.applies_to(milestone_id):
                logger.debug("Skipping %s grader for this request", grader.name)
                continue
            try:
                result = await grader.grade(ctx, milestone_id)
            except GradingProviderError as exc:
                logger.warning("%s grading failed, falling back: %s", grader.name, exc)
                continue
            except Exception:  # noqa: BLE001
                logger.exception("%s grader raised unexpectedly, falling back", grader.name)
                continue
            logger.info("Attempt %s of %r graded by %s", ctx.attempt_number, ctx.milestone_title, grader.name)
            return restrict_concepts(result, ctx)

        result = await self.heuristic.grade(ctx, milestone_id)
        logger.info("Attempt %s of %r graded by heuristics", ctx.attempt_number, ctx.milestone_title)
        return restrict_concepts(result, ctx)


def build_pipeline(settings: GradingSettings) -> GradingPipeline:
    graders: List[Grader] = []
    if settings.external_agent_enabled:
        graders.append(
            ExternalAgentGrader(
                ExternalAgentClient(
                    api_key=settings.agent_api_key or "",
                    agent_id=settings.agent_id or "",
                    url=settings.agent_url,
                    timeout_seconds=settings.agent_timeout_seconds,
                ),
                default_user_id=settings.agent_user_id,
            )
        )
    if settings.fallback_llm_enabled:
        graders.append(FallbackLLMGrader(LLMClient(model=settings.gemini_model, api_key=settings.gemini_api_key)))
    if not graders:
        logger.info("No grading providers configured; using heuristic grading only")
    return GradingPipeline(graders)


async def grade_student_response(
    context: Union[GradingContext, Mapping[str, Any]],
    milestone_id: Optional[str] = None,
    *,
    pipeline: Optional[GradingPipeline] = None,
) -> GradingResult:
    pipeline = pipeline or build_pipeline(GradingSettings.from_env())
    return await pipeline.grade_student_response(context, milestone_id)


def save_grading_report(
    path: Path,
    context: GradingContext,
    result: GradingResult,
    *,
    milestone_id: Optional[str] = None,
    adaptive_feedback: Sequence[str] = (),
    reflection_prompts: Sequence[str] = (),
) -> None:
    payload: Dict[str, Any] = {
        "milestone_id": milestone_id,
        "assignment_title": context.assignment_title,
        "assignment_domain": context.assignment_domain,
        "milestone_title": context.milestone_title,
        "attempt_number": context.attempt_number,
        "expected_concepts": list(context.expected_concepts),
        "result": result.model_dump(mode="json"),
        "adaptive_feedback": list(adaptive_feedback),
        "reflection_prompts": list(reflection_prompts),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


SUMMARY_FIELDS = [
    "attempt_id",
    "milestone_title",
    "attempt_number",
    "context_relevance_score",
    "understanding_depth_score",
    "completeness_score",
    "final_score",
    "passed",
    "feedback_type",
    "graded_by",
]


def save_summary_csv(path: Path, rows: Iterable[Dict[str, Any]]) -> None:
    rows_list: List[Dict[str, Any]] = list(rows)
    if not rows_list:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=SUMMARY_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for row in rows_list:
            writer.writerow(row)
