"""Tests for the provider fallback chain."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from milestack_grading.agents import ExternalAgentGrader, FallbackLLMGrader, Grader, HeuristicGrader
from milestack_grading.config import GradingSettings
from milestack_grading.errors import ContextValidationError, GradingProviderError
from milestack_grading.models import GradingContext, GradingResult
from milestack_grading.pipeline import (
    GradingPipeline,
    build_pipeline,
    grade_student_response,
    save_grading_report,
    save_summary_csv,
)


def _provider_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "context_relevance_score": 90,
        "understanding_depth_score": 80,
        "completeness_score": 70,
        "final_score": 83,
        "passed": True,
        "feedback_type": "good_progress",
        "concepts_identified": ["Navigation", "gestures"],
        "detailed_feedback": {"suggestions": ["Describe state management"]},
    }
    payload.update(overrides)
    return payload


class FakeLLM:
    def __init__(self, payload: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.payload = payload
        self.error = error
        self.prompts: List[str] = []

    async def generate_json(self, prompt: str) -> Dict[str, Any]:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return dict(self.payload or {})


class FakeAgent:
    def __init__(self, reply: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[Dict[str, str]] = []

    async def chat(self, message: str, *, session_id: str, user_id: str) -> Dict[str, Any]:
        self.calls.append({"session_id": session_id, "user_id": user_id})
        if self.error is not None:
            raise self.error
        return dict(self.reply or {})


class ExplodingGrader(Grader):
    name = "external_agent"

    async def grade(self, context: GradingContext, milestone_id: Optional[str] = None) -> GradingResult:
        raise KeyError("unexpected")


@pytest.mark.anyio
async def test_external_agent_result_is_used_first(mobile_context: GradingContext) -> None:
    agent = FakeAgent(reply={"response": json.dumps(_provider_payload())})
    llm = FakeLLM(payload=_provider_payload(context_relevance_score=10))
    pipeline = GradingPipeline([ExternalAgentGrader(agent, default_user_id="fallback-user"), FallbackLLMGrader(llm)])

    result = await pipeline.grade_student_response(mobile_context, "m-7")

    assert result.graded_by == "external_agent"
    assert result.final_score == 83
    assert agent.calls == [{"session_id": "milestone-m-7-session", "user_id": "fallback-user"}]
    assert llm.prompts == []


@pytest.mark.anyio
async def test_identified_concepts_are_restricted_to_expected(mobile_context: GradingContext) -> None:
    pipeline = GradingPipeline([FallbackLLMGrader(FakeLLM(payload=_provider_payload()))])

    result = await pipeline.grade_student_response(mobile_context)

    assert result.graded_by == "fallback_llm"
    assert result.concepts_identified == ["navigation"]


@pytest.mark.anyio
async def test_agent_is_skipped_without_milestone_id(mobile_context: GradingContext) -> None:
    agent = FakeAgent(reply={"response": json.dumps(_provider_payload())})
    pipeline = GradingPipeline([ExternalAgentGrader(agent), FallbackLLMGrader(FakeLLM(payload=_provider_payload()))])

    result = await pipeline.grade_student_response(mobile_context)

    assert agent.calls == []
    assert result.graded_by == "fallback_llm"


@pytest.mark.anyio
async def test_agent_failure_falls_back_to_llm(mobile_context: GradingContext) -> None:
    agent = FakeAgent(error=GradingProviderError("external_agent", "timed out"))
    pipeline = GradingPipeline([ExternalAgentGrader(agent), FallbackLLMGrader(FakeLLM(payload=_provider_payload()))])

    result = await pipeline.grade_student_response(mobile_context, "m-1")

    assert len(agent.calls) == 1
    assert result.graded_by == "fallback_llm"


@pytest.mark.anyio
async def test_all_providers_failing_yields_heuristic_result(mobile_context: GradingContext) -> None:
    agent = FakeAgent(reply={"response": "I am unable to help"})
    llm = FakeLLM(error=GradingProviderError("fallback_llm", "quota exceeded"))
    pipeline = GradingPipeline([ExternalAgentGrader(agent), ExplodingGrader(), FallbackLLMGrader(llm)])

    result = await pipeline.grade_student_response(mobile_context, "m-1")

    assert result.graded_by == "heuristic"
    assert result.final_score == 90
    assert len(llm.prompts) == 1


@pytest.mark.anyio
async def test_invalid_context_is_rejected_before_any_provider_call() -> None:
    llm = FakeLLM(payload=_provider_payload())
    pipeline = GradingPipeline([FallbackLLMGrader(llm)])

    with pytest.raises(ContextValidationError):
        await pipeline.grade_student_response({"assignmentTitle": "Only a title"})
    assert llm.prompts == []


@pytest.mark.anyio
async def test_module_level_entry_point_accepts_mappings() -> None:
    result = await grade_student_response(
        {
            "assignmentTitle": "Bank Accounts",
            "assignmentDomain": "general",
            "milestoneTitle": "Design classes",
            "competencyRequirement": "Model the account hierarchy.",
            "studentAnswer": "I will create a base Account class with deposit and withdraw methods",
        },
        pipeline=GradingPipeline(),
    )

    assert result.graded_by == "heuristic"
    assert 0 <= result.final_score <= 100


def test_heuristic_grader_always_closes_the_chain() -> None:
    llm_grader = FallbackLLMGrader(FakeLLM())
    pipeline = GradingPipeline([HeuristicGrader(), llm_grader])

    assert pipeline.providers == [llm_grader]
    assert [grader.name for grader in pipeline.graders] == ["fallback_llm", "heuristic"]


def test_build_pipeline_only_adds_configured_providers() -> None:
    assert build_pipeline(GradingSettings()).providers == []

    settings = GradingSettings(gemini_api_key="key", agent_api_key="agent-key", agent_id="agent-1")
    names = [grader.name for grader in build_pipeline(settings).graders]

    assert names == ["external_agent", "fallback_llm", "heuristic"]


@pytest.mark.anyio
async def test_reports_are_written(tmp_path: Path, mobile_context: GradingContext) -> None:
    result = await GradingPipeline().grade_student_response(mobile_context)
    report_path = tmp_path / "reports" / "a1_report.json"

    save_grading_report(report_path, mobile_context, result, milestone_id="m-1", adaptive_feedback=["Keep going."])
    save_summary_csv(tmp_path / "summary.csv", [{"attempt_id": "a1", "final_score": result.final_score}])

    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["milestone_id"] == "m-1"
    assert report["result"]["graded_by"] == "heuristic"
    assert report["adaptive_feedback"] == ["Keep going."]
    assert (tmp_path / "summary.csv").read_text(encoding="utf-8").splitlines()[0].startswith("attempt_id,")


@pytest.mark.anyio
async def test_out_of_vocabulary_indicators_keep_the_llm_grade(mobile_context: GradingContext) -> None:
    payload = _provider_payload(learning_indicators={"concept_grasp": "intermediate"})
    pipeline = GradingPipeline([FallbackLLMGrader(FakeLLM(payload=payload))])

    result = await pipeline.grade_student_response(mobile_context)

    assert result.graded_by == "fallback_llm"
    assert result.learning_indicators.concept_grasp == "solid"
