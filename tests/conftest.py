from __future__ import annotations

from typing import Any, Dict

import pytest

from milestack_grading.models import GradingContext, GradingResult


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def mobile_context() -> GradingContext:
    return GradingContext.model_validate(
        {
            "assignmentTitle": "SwiftUI Habit Tracker",
            "assignmentDomain": "mobile_development",
            "milestoneTitle": "Plan the app structure",
            "competencyRequirement": "Describe how the screens of your app connect and share state.",
            "expectedConcepts": ["navigation", "state management"],
            "studentAnswer": (
                "I need to create a SwiftUI app with navigation between screens "
                "and use @State for managing data"
            ),
            "attemptNumber": 1,
        }
    )


def make_result(relevance: float, depth: float, completeness: float, **extra: Any) -> GradingResult:
    payload: Dict[str, Any] = {
        "context_relevance_score": relevance,
        "understanding_depth_score": depth,
        "completeness_score": completeness,
    }
    payload.update(extra)
    return GradingResult.model_validate(payload)
