from __future__ import annotations

from typing import List, Optional

from .models import GradingContext, GradingResult


FOCUS_THRESHOLD = 70

DIMENSIONS = (
    ("context_relevance_score", "Context relevance"),
    ("understanding_depth_score", "Understanding"),
    ("completeness_score", "Completeness"),
)


def trend_remarks(current: GradingResult, previous: Optional[GradingResult]) -> List[str]:
    """Per-dimension improvement/regression remarks against the previous attempt."""
    if previous is None:
        return []
    remarks: List[str] = []
    for field, label in DIMENSIONS:
        before = getattr(previous, field)
        after = getattr(current, field)
        if after > before:
            remarks.append(f"{label} improved since your last attempt ({before:g} -> {after:g}).")
        elif after < before:
            remarks.append(f"{label} regressed since your last attempt ({before:g} -> {after:g}).")
    if current.passed and not previous.passed:
        remarks.append("You cleared this milestone after your previous attempt fell short. Well done!")
    elif previous.passed and not current.passed:
        remarks.append("This attempt scored below your previous passing attempt.")
    return remarks


def adaptive_feedback(result: GradingResult, context: GradingContext) -> List[str]:
    """Trend commentary first, then the result's own suggestions, then focus areas."""
    feedback = trend_remarks(result, context.latest_feedback)
    feedback.extend(result.detailed_feedback.suggestions)

    if result.context_relevance_score < FOCUS_THRESHOLD:
        feedback.append("Focus on addressing the specific assignment requirements.")
    if result.understanding_depth_score < FOCUS_THRESHOLD:
        feedback.append("Provide more detailed explanations to show your understanding.")
    if result.completeness_score < FOCUS_THRESHOLD:
        feedback.append("Consider covering all aspects of the milestone requirements.")
    return feedback


def reflection_prompts(result: GradingResult) -> List[str]:
    prompts: List[str] = []
    if result.context_relevance_score < FOCUS_THRESHOLD:
        prompts.append("What specific aspects of the assignment do you think you might have misunderstood?")
    if result.understanding_depth_score < FOCUS_THRESHOLD:
        prompts.append("How would you explain this concept in your own words to someone who has never seen it before?")
    if result.completeness_score < FOCUS_THRESHOLD:
        prompts.append("What additional concepts or requirements do you think you missed?")

    if result.passed:
        prompts.append("What was the most challenging part of this milestone for you?")
        prompts.append("How do you plan to apply this understanding to the next milestone?")
    else:
        prompts.append("What strategies will you use to improve your understanding for the next attempt?")
    return prompts
