from __future__ import annotations

from typing import Optional

from .agent_client import ExternalAgentClient, milestone_session_id
from .heuristics import grade_heuristically
from .llm_client import LLMClient
from .models import GradedBy, GradingContext, GradingResult
from .prompts import build_grading_prompt
from .schemas import extract_grading_result


class Grader:
    """One link of the grading chain."""

    name: GradedBy = "heuristic"

    def applies_to(self, milestone_id: Optional[str]) -> bool:
        return True

    async def grade(self, context: GradingContext, milestone_id: Optional[str] = None) -> GradingResult:
        raise NotImplementedError


class ExternalAgentGrader(Grader):
    """Grades through the hosted agent, keeping one session per milestone."""

    name: GradedBy = "external_agent"

    def __init__(self, client: ExternalAgentClient, default_user_id: str = "milestack-user"):
        self.client = client
        self.default_user_id = default_user_id

    def applies_to(self, milestone_id: Optional[str]) -> bool:
        return bool(milestone_id)

    async def grade(self, context: GradingContext, milestone_id: Optional[str] = None) -> GradingResult:
        if not milestone_id:
            raise ValueError("ExternalAgentGrader requires a milestone id.")
        data = await self.client.chat(
            build_grading_prompt(context),
            session_id=milestone_session_id(milestone_id),
            user_id=context.user_id or self.default_user_id,
        )
        return extract_grading_result(data, provider=self.name)


class FallbackLLMGrader(Grader):
    name: GradedBy = "fallback_llm"

    def __init__(self, client: LLMClient):
        self.client = client

    async def grade(self, context: GradingContext, milestone_id: Optional[str] = None) -> GradingResult:
        data = await self.client.generate_json(build_grading_prompt(context))
        return extract_grading_result(data, provider=self.name)


class HeuristicGrader(Grader):
    name: GradedBy = "heuristic"

    async def grade(self, context: GradingContext, milestone_id: Optional[str] = None) -> GradingResult:
        return grade_heuristically(context)
