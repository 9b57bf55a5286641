#!/usr/bin/env python3
"""Milestone analytics: pass rates and score trends across graded attempts.

Reads grading report JSONs from the output directory and produces:
- Per-milestone statistics (attempts, average scores, pass rate, feedback types)
- Overall statistics (pass rate, grader provenance)
- Actionable instructor insights

Usage:
    python run_analytics.py --output-dir output
"""
import argparse
import json
from collections import Counter, defaultdict
from pathlib import Path
from typing import Any, Dict, List


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate milestone analytics from grading reports.")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory containing *_report.json files.",
    )
    return parser.parse_args()


def load_reports(output_dir: Path) -> List[Dict[str, Any]]:
    """Load all *_report.json files from the output directory."""
    reports = []
    for path in sorted(output_dir.glob("*_report.json")):
        data = json.loads(path.read_text(encoding="utf-8"))
        reports.append(data)
    return reports


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def compute_milestone_stats(reports: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Compute per-milestone statistics across all attempts."""
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for report in reports:
        key = report.get("milestone_id") or report.get("milestone_title") or "unknown"
        grouped[str(key)].append(report)

    stats: Dict[str, Dict[str, Any]] = {}
    for key in sorted(grouped):
        entries = grouped[key]
        results = [entry.get("result", {}) for entry in entries]
        attempts = len(results)
        passed = sum(1 for result in results if result.get("passed"))
        stats[key] = {
            "milestone_title": entries[0].get("milestone_title", ""),
            "attempts": attempts,
            "passed": passed,
            "pass_rate": round(passed / attempts * 100, 1) if attempts else 0.0,
            "avg_final_score": _mean([result.get("final_score", 0) for result in results]),
            "avg_context_relevance": _mean([result.get("context_relevance_score", 0) for result in results]),
            "avg_understanding_depth": _mean([result.get("understanding_depth_score", 0) for result in results]),
            "avg_completeness": _mean([result.get("completeness_score", 0) for result in results]),
            "max_attempt_number": max((entry.get("attempt_number", 1) for entry in entries), default=0),
            "feedback_types": dict(Counter(result.get("feedback_type", "unknown") for result in results)),
        }
    return stats


def compute_overall_stats(reports: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Compute statistics across every graded attempt."""
    if not reports:
        return {"total_attempts": 0}

    results = [report.get("result", {}) for report in reports]
    n = len(results)
    passed = sum(1 for result in results if result.get("passed"))
    finals = [result.get("final_score", 0) for result in results]

    return {
        "total_attempts": n,
        "pass_rate": round(passed / n * 100, 1),
        "avg_final_score": _mean(finals),
        "highest_score": max(finals),
        "lowest_score": min(finals),
        "graded_by": dict(Counter(result.get("graded_by", "unknown") for result in results)),
    }


def generate_insights(
    overall_stats: Dict[str, Any],
    milestone_stats: Dict[str, Dict[str, Any]],
) -> List[str]:
    """Generate actionable instructor insights."""
    insights: List[str] = []

    pass_rate = overall_stats.get("pass_rate", 0.0)
    if pass_rate < 50:
        insights.append(f"Only {pass_rate}% of attempts passed. Consider clarifying milestone questions.")
    elif pass_rate < 70:
        insights.append(f"{pass_rate}% of attempts passed. Acceptable, with room for improvement.")
    else:
        insights.append(f"{pass_rate}% of attempts passed. Solid progress overall.")

    heuristic = overall_stats.get("graded_by", {}).get("heuristic", 0)
    total = overall_stats.get("total_attempts", 0)
    if total and heuristic * 2 > total:
        insights.append(
            f"{heuristic}/{total} attempts were graded by heuristics. Check the LLM provider configuration."
        )

    for key, ms in milestone_stats.items():
        label = ms["milestone_title"] or key
        off_topic = ms["feedback_types"].get("context_mismatch", 0) + ms["feedback_types"].get(
            "completely_off_topic", 0
        )
        if ms["attempts"] and off_topic * 2 >= ms["attempts"]:
            insights.append(
                f"{label}: {off_topic}/{ms['attempts']} attempts missed the assignment context. "
                f"The question may be ambiguous."
            )
        elif ms["pass_rate"] < 50:
            insights.append(
                f"{label}: pass rate {ms['pass_rate']}% (avg final {ms['avg_final_score']}). "
                f"Consider extra material on this milestone."
            )
        elif ms["pass_rate"] == 100 and ms["avg_final_score"] >= 85:
            insights.append(f"{label}: every attempt passed with high scores. Consider raising the difficulty.")

    return insights


def print_analytics(
    overall_stats: Dict[str, Any],
    milestone_stats: Dict[str, Dict[str, Any]],
    insights: List[str],
) -> None:
    """Print a formatted analytics report to the terminal."""
    print("\n" + "=" * 60)
    print("MILESTONE ANALYTICS REPORT")
    print("=" * 60)

    print("\nSummary")
    print(f"   Attempts:         {overall_stats['total_attempts']}")
    print(f"   Pass Rate:        {overall_stats['pass_rate']}%")
    print(f"   Average Score:    {overall_stats['avg_final_score']}")
    print(f"   Graded By:        {overall_stats['graded_by']}")

    print("\nPer-Milestone Breakdown")
    print(f"   {'Milestone':<24} {'Attempts':<10} {'Pass Rate':<12} {'Avg Final':<10} {'Relevance':<10}")
    print(f"   {'-' * 24} {'-' * 10} {'-' * 12} {'-' * 10} {'-' * 10}")
    for key, ms in milestone_stats.items():
        label = (ms["milestone_title"] or key)[:24]
        print(
            f"   {label:<24} "
            f"{ms['attempts']:<10} "
            f"{ms['pass_rate']:>5}%      "
            f"{ms['avg_final_score']:<10} "
            f"{ms['avg_context_relevance']:<10}"
        )

    print("\nInsights")
    for i, insight in enumerate(insights, 1):
        print(f"   {i}. {insight}")

    print("\n" + "=" * 60)


def save_analytics_json(
    path: Path,
    overall_stats: Dict[str, Any],
    milestone_stats: Dict[str, Dict[str, Any]],
    insights: List[str],
) -> None:
    """Save analytics to a JSON file."""
    payload = {
        "summary": overall_stats,
        "milestone_stats": milestone_stats,
        "insights": insights,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def main() -> None:
    args = parse_args()
    reports = load_reports(args.output_dir)

    if not reports:
        print(f"[ERROR] No *_report.json files found in {args.output_dir}")
        return

    overall_stats = compute_overall_stats(reports)
    milestone_stats = compute_milestone_stats(reports)
    insights = generate_insights(overall_stats, milestone_stats)

    print_analytics(overall_stats, milestone_stats, insights)

    analytics_path = args.output_dir / "analytics_report.json"
    save_analytics_json(analytics_path, overall_stats, milestone_stats, insights)
    print(f"[DONE] Analytics saved to {analytics_path}")


if __name__ == "__main__":
    main()
