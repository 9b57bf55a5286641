"""Milestack milestone grading package."""

from .agents import ExternalAgentGrader, FallbackLLMGrader, HeuristicGrader
from .competency import CompetencyAssessmentService
from .errors import ContextValidationError, GradingProviderError
from .feedback import adaptive_feedback, reflection_prompts
from .models import AssessmentResult, GradingContext, GradingResult
from .pipeline import GradingPipeline, build_pipeline, grade_student_response

__all__ = [
    "AssessmentResult",
    "CompetencyAssessmentService",
    "ContextValidationError",
    "ExternalAgentGrader",
    "FallbackLLMGrader",
    "GradingContext",
    "GradingPipeline",
    "GradingProviderError",
    "GradingResult",
    "HeuristicGrader",
    "adaptive_feedback",
    "build_pipeline",
    "grade_student_response",
    "reflection_prompts",
]
