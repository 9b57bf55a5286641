#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

from milestack_grading import GradingContext, adaptive_feedback, build_pipeline, reflection_prompts
from milestack_grading.config import GradingSettings
from milestack_grading.logging_config import configure_logging
from milestack_grading.pipeline import GradingPipeline, save_grading_report, save_summary_csv
from milestack_grading.prompts import validate_context


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Grade milestone answers with the fallback grading chain.")
    parser.add_argument(
        "--input-dir",
        type=Path,
        default=Path("examples/input"),
        help="Folder containing grading context JSON files.",
    )
    parser.add_argument(
        "--glob",
        type=str,
        default="*.json",
        help="Glob pattern for input files.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Output directory for reports.",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Gemini model used by the fallback LLM grader.",
    )
    parser.add_argument(
        "--milestone-id",
        type=str,
        default=None,
        help="Milestone id for inputs that do not name one (enables the external agent).",
    )
    return parser.parse_args()


def load_input(path: Path, default_milestone_id: Optional[str]) -> Tuple[GradingContext, Optional[str]]:
    """Accept either a bare context or ``{"milestone_id": ..., "context": {...}}``."""
    payload: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload.get("context"), dict):
        milestone_id = payload.get("milestone_id") or default_milestone_id
        return validate_context(payload["context"]), milestone_id
    return validate_context(payload), default_milestone_id


async def grade_all(pipeline: GradingPipeline, inputs: List[Path], args: argparse.Namespace) -> List[Dict[str, object]]:
    summary_rows: List[Dict[str, object]] = []
    for file_path in inputs:
        attempt_id = file_path.stem
        context, milestone_id = load_input(file_path, args.milestone_id)
        result = await pipeline.grade_student_response(context, milestone_id)

        save_grading_report(
            args.output_dir / f"{attempt_id}_report.json",
            context,
            result,
            milestone_id=milestone_id,
            adaptive_feedback=adaptive_feedback(result, context),
            reflection_prompts=reflection_prompts(result),
        )
        summary_rows.append(
            {
                "attempt_id": attempt_id,
                "milestone_title": context.milestone_title,
                "attempt_number": context.attempt_number,
                "context_relevance_score": f"{result.context_relevance_score:g}",
                "understanding_depth_score": f"{result.understanding_depth_score:g}",
                "completeness_score": f"{result.completeness_score:g}",
                "final_score": result.final_score,
                "passed": result.passed,
                "feedback_type": result.feedback_type,
                "graded_by": result.graded_by,
            }
        )
        status = "PASS" if result.passed else "FAIL"
        print(f"[{status}] {attempt_id}: {result.final_score}/100 ({result.feedback_type}, graded by {result.graded_by})")
    return summary_rows


def main() -> None:
    configure_logging()
    args = parse_args()

    settings = GradingSettings.from_env()
    if args.model:
        settings = replace(settings, gemini_model=args.model)
    pipeline = build_pipeline(settings)
    print(f"Grading chain: {' -> '.join(grader.name for grader in pipeline.graders)}")

    inputs = sorted(args.input_dir.glob(args.glob))
    if not inputs:
        raise FileNotFoundError(
            f"No files matched {args.glob!r} in directory {str(args.input_dir)!r}."
        )

    summary_rows = asyncio.run(grade_all(pipeline, inputs, args))

    summary_path = args.output_dir / "grades_summary.csv"
    save_summary_csv(summary_path, summary_rows)
    print(f"[DONE] Summary written to {summary_path}")


if __name__ == "__main__":
    main()
