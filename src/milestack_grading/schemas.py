"""Wire-level handling of grading payloads returned by LLM providers.

Providers wrap the grading JSON in different envelopes. Each envelope shape is
an ``EnvelopeStrategy``; they are tried in order and the first candidate that
validates wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .errors import GradingProviderError
from .llm_client import parse_json_payload
from .models import GradingResult, LearningIndicators, is_passing, weighted_final_score

logger = logging.getLogger(__name__)

REQUIRED_SCORE_FIELDS = (
    "context_relevance_score",
    "understanding_depth_score",
    "completeness_score",
    "final_score",
)


@dataclass(frozen=True)
class EnvelopeStrategy:
    name: str
    extract: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


def _text_field(key: str) -> Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]:
    def extract(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            return None
        return parse_json_payload(value)

    return extract


def _object_field(key: str) -> Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]:
    def extract(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        value = data.get(key)
        return value if isinstance(value, dict) else None

    return extract


def _top_level(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return data


ENVELOPE_STRATEGIES = (
    EnvelopeStrategy("response text", _text_field("response")),
    EnvelopeStrategy("response object", _object_field("response")),
    EnvelopeStrategy("message", _text_field("message")),
    EnvelopeStrategy("content", _text_field("content")),
    EnvelopeStrategy("top level", _top_level),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_grading_payload(data: Dict[str, Any]) -> List[str]:
    """Return every structural problem with ``data``; empty when usable."""
    errors: List[str] = []
    for key in REQUIRED_SCORE_FIELDS:
        if not _is_number(data.get(key)):
            errors.append(f"Missing or invalid {key}")
    if not isinstance(data.get("passed"), bool):
        errors.append("Missing or invalid passed field")
    if not data.get("feedback_type"):
        errors.append("Missing feedback_type")
    if not isinstance(data.get("concepts_identified"), list):
        errors.append("Missing or invalid concepts_identified")
    if not isinstance(data.get("detailed_feedback"), dict):
        errors.append("Missing detailed_feedback")
    return errors


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, str) for item in value)


def _valid_learning_indicators(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    try:
        LearningIndicators.model_validate(value)
    except ValidationError:
        return False
    return True


def with_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace missing or malformed optional fields with score-sensitive defaults."""
    completed = dict(data)
    final = weighted_final_score(
        data["context_relevance_score"],
        data["understanding_depth_score"],
        data["completeness_score"],
    )
    passed = is_passing(final, data["context_relevance_score"])

    if not _is_string_list(completed.get("improvement_suggestions")):
        completed["improvement_suggestions"] = [
            "Continue building on your understanding",
            "Practice implementing the concepts you've learned",
            "Consider how different components interact",
        ]
    if not _valid_learning_indicators(completed.get("learning_indicators")):
        completed["learning_indicators"] = {
            "concept_grasp": "solid" if final >= 80 else "developing",
            "application_skill": "intermediate" if final >= 80 else "beginner",
            "critical_thinking": "developing" if final >= 70 else "basic",
        }
    if not _is_string_list(completed.get("next_steps")):
        completed["next_steps"] = [
            "Great job! Move on to the next milestone." if passed else "Review the feedback and try again",
            "Apply what you've learned to practical examples",
            "Consider how this relates to real-world applications",
        ]
    return completed


def build_grading_result(data: Dict[str, Any], *, provider: str) -> GradingResult:
    errors = validate_grading_payload(data)
    if errors:
        raise GradingProviderError(provider, "Invalid grading result structure", errors)

    payload = with_defaults(data)
    payload["graded_by"] = provider
    try:
        result = GradingResult.model_validate(payload)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        ]
        raise GradingProviderError(provider, "Invalid grading result structure", problems) from exc

    if result.final_score != round(float(data["final_score"])):
        logger.debug(
            "%s reported final_score=%s; recomputed %s from dimension scores",
            provider,
            data["final_score"],
            result.final_score,
        )
    return result


def extract_grading_result(data: Dict[str, Any], *, provider: str) -> GradingResult:
    """Unwrap a provider response envelope into a ``GradingResult``."""
    failures: List[str] = []
    for strategy in ENVELOPE_STRATEGIES:
        try:
            candidate = strategy.extract(data)
        except ValueError as exc:
            failures.append(f"{strategy.name}: {exc}")
            continue
        if candidate is None:
            continue
        try:
            return build_grading_result(candidate, provider=provider)
        except GradingProviderError as exc:
            failures.append(f"{strategy.name}: {'; '.join(exc.errors) or exc}")

    raise GradingProviderError(provider, "No valid grading result in response", failures)
