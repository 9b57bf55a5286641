"""Rule-based milestone grading.

Used as the last link of the grading chain and whenever no LLM provider is
configured. Everything here is a pure function of its inputs: the same context
always yields the same result.

Keyword matching is case-insensitive substring containment, so the heuristics
are permissive by nature ("tree" matches "street"). Length thresholds are strict
``>`` comparisons.
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from .models import (
    GradingContext,
    GradingResult,
    classify_feedback,
    is_passing,
    round_half_up,
    weighted_final_score,
)


OFF_TOPIC_SCORE = 5
OFF_TOPIC_MIN_MATCHES = 3
PLAGIARISM_THRESHOLD = 30.0

DOMAIN_ALIASES: Dict[str, str] = {
    "swift": "ios",
    "swiftui": "ios",
    "ios": "ios",
    "ios_development": "ios",
    "xcode": "ios",
    "mobile": "mobile",
    "mobile_development": "mobile",
    "android": "mobile",
    "android_development": "mobile",
    "kotlin": "mobile",
    "flutter": "mobile",
    "react_native": "mobile",
    "web": "web",
    "web_development": "web",
    "frontend": "web",
    "front_end": "web",
    "full_stack": "web",
    "react": "web",
    "javascript": "web",
    "html": "web",
    "backend": "backend",
    "backend_development": "backend",
    "back_end": "backend",
    "server": "backend",
    "databases": "backend",
    "api": "backend",
    "algorithms": "algorithms",
    "data_structures": "algorithms",
    "data_structures_and_algorithms": "algorithms",
    "dsa": "algorithms",
    "computer_science": "algorithms",
    "ml": "ml",
    "ai": "ml",
    "machine_learning": "ml",
    "deep_learning": "ml",
    "artificial_intelligence": "ml",
    "data_science": "ml",
    "general": "general",
    "programming": "general",
    "software_engineering": "general",
}

# Topics each domain category legitimately covers.
CATEGORY_TOPICS: Dict[str, FrozenSet[str]] = {
    "mobile": frozenset({"android"}),
    "ios": frozenset(),
    "web": frozenset({"web", "backend"}),
    "backend": frozenset({"backend", "web"}),
    "algorithms": frozenset({"algorithms"}),
    "ml": frozenset({"ml"}),
    "general": frozenset(),
}

WRONG_TOPIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "android": (
        "android",
        "kotlin",
        "jetpack compose",
        "gradle",
        "android studio",
        "activity lifecycle",
        "fragment",
        "recyclerview",
    ),
    "algorithms": (
        "binary search",
        "search tree",
        "avl",
        "red-black",
        "linked list",
        "depth-first",
        "breadth-first",
        "traversal",
        "dijkstra",
        "quicksort",
        "merge sort",
        "heap",
        "hash table",
        "dynamic programming",
        "balancing",
    ),
    "web": (
        "html",
        "css",
        "javascript",
        "react",
        "browser",
        "frontend",
        "vue",
        "angular",
        "webpack",
        "next.js",
    ),
    "backend": (
        "database",
        "sql",
        "rest api",
        "endpoint",
        "express",
        "django",
        "flask",
        "node.js",
        "middleware",
    ),
    "ml": (
        "machine learning",
        "neural network",
        "tensorflow",
        "pytorch",
        "training data",
        "gradient descent",
        "classifier",
        "regression",
        "dataset",
        "overfitting",
    ),
}

PROGRAMMING_VOCABULARY: Tuple[str, ...] = (
    "function",
    "variable",
    "class",
    "object",
    "method",
    "loop",
    "code",
    "program",
    "data",
    "implement",
    "create",
    "build",
    "app",
    "logic",
    "algorithm",
    "input",
    "output",
    "array",
    "string",
)

DOMAIN_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "mobile": (
        "swiftui",
        "swift",
        "ios",
        "xcode",
        "mobile",
        "app",
        "screen",
        "view",
        "navigation",
        "@state",
        "@binding",
        "android",
        "kotlin",
        "gesture",
    ),
    "ios": (
        "swiftui",
        "swift",
        "ios",
        "xcode",
        "iphone",
        "mobile",
        "app",
        "screen",
        "view",
        "navigation",
        "@state",
        "@binding",
        "gesture",
    ),
    "web": (
        "html",
        "css",
        "javascript",
        "react",
        "component",
        "browser",
        "frontend",
        "page",
        "http",
        "api",
        "responsive",
        "form",
    ),
    "backend": (
        "server",
        "database",
        "sql",
        "api",
        "endpoint",
        "request",
        "response",
        "authentication",
        "rest",
        "query",
        "cache",
    ),
    "algorithms": (
        "array",
        "list",
        "tree",
        "graph",
        "stack",
        "queue",
        "algorithm",
        "complexity",
        "sort",
        "search",
        "hash",
        "node",
        "recursion",
    ),
    "ml": (
        "model",
        "training",
        "dataset",
        "feature",
        "prediction",
        "accuracy",
        "neural",
        "regression",
        "classification",
        "learning",
    ),
    "general": PROGRAMMING_VOCABULARY,
}


def normalize_domain(domain: Optional[str]) -> str:
    key = re.sub(r"[\s\-]+", "_", (domain or "").strip().lower())
    return DOMAIN_ALIASES.get(key, "general")


def count_matches(text: str, keywords: Sequence[str]) -> int:
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword in lowered)


def has_programming_vocabulary(text: str) -> bool:
    return count_matches(text, PROGRAMMING_VOCABULARY) > 0


def detect_off_topic(answer: str, category: str) -> Optional[str]:
    """Return the foreign topic an answer is about, if it clearly is one."""
    if category == "general" and len(answer) > 50 and has_programming_vocabulary(answer):
        return None
    allowed = CATEGORY_TOPICS.get(category, frozenset())
    for topic, keywords in WRONG_TOPIC_KEYWORDS.items():
        if topic in allowed:
            continue
        if count_matches(answer, keywords) >= OFF_TOPIC_MIN_MATCHES:
            return topic
    return None


def context_relevance_score(answer: str, category: str) -> int:
    matches = count_matches(answer, DOMAIN_KEYWORDS.get(category, PROGRAMMING_VOCABULARY))
    score = 15 if matches == 0 else min(100, 40 + matches * 15)
    if len(answer) > 50 and has_programming_vocabulary(answer):
        score = max(score, 80)
    return score


def identify_concepts(answer: str, expected_concepts: Sequence[str]) -> List[str]:
    lowered = answer.lower()
    return [concept for concept in expected_concepts if concept.strip() and concept.lower() in lowered]


def completeness_score(answer: str, expected_concepts: Sequence[str], found: Sequence[str]) -> int:
    if not expected_concepts:
        if len(answer) > 100:
            return 90
        if len(answer) > 50:
            return 80
        return 60
    coverage = len(found) / len(expected_concepts)
    score = round_half_up(coverage * 100)
    if coverage >= 0.5:
        score = min(100, score + 20)
    return score


def understanding_depth_score(answer: str, attempt_number: int) -> int:
    length = len(answer)
    if length > 100:
        score = 85
    elif length > 50:
        score = 75
    elif length > 20:
        score = 60
    else:
        score = 40
    if attempt_number > 1:
        score += 5
    if has_programming_vocabulary(answer):
        score += 10
    return min(100, score)


def phrase_overlap_score(answer: str, source: str) -> float:
    """Share of the answer's 3-word phrases that appear verbatim in ``source``."""
    words = answer.lower().split()
    source_text = source.lower()
    matched = sum(
        1 for index in range(len(words) - 2) if " ".join(words[index:index + 3]) in source_text
    )
    total = max(1, len(words) - 2)
    return min(100.0, matched / total * 100)


def learning_indicators_for(final_score: float) -> Dict[str, str]:
    return {
        "concept_grasp": "solid" if final_score >= 80 else "developing",
        "application_skill": "intermediate" if final_score >= 75 else "beginner",
        "critical_thinking": "developing" if final_score >= 70 else "basic",
    }


def _off_topic_result(context: GradingContext, topic: str) -> GradingResult:
    title = context.assignment_title or "this assignment"
    return GradingResult.model_validate(
        {
            "context_relevance_score": OFF_TOPIC_SCORE,
            "understanding_depth_score": OFF_TOPIC_SCORE,
            "completeness_score": OFF_TOPIC_SCORE,
            "feedback_type": "completely_off_topic",
            "concepts_identified": [],
            "detailed_feedback": {
                "context_feedback": (
                    f"Your answer is about {topic} topics, which is not what \"{title}\" asks about."
                ),
                "understanding_feedback": "We could not assess your understanding because the answer is off topic.",
                "completeness_feedback": "None of the milestone requirements were addressed.",
                "suggestions": [
                    "Re-read the milestone question before answering.",
                    f"Describe what \"{context.milestone_title or title}\" requires in your own words.",
                ],
                "encouragement": "Take another look at the assignment and try again.",
            },
            "improvement_suggestions": [
                "Review the assignment brief and identify its main technology.",
                "Answer using the concepts this milestone is about.",
            ],
            "next_steps": [
                "Review the assignment materials",
                "Try the milestone again focusing on the assignment topic",
            ],
            "learning_indicators": learning_indicators_for(OFF_TOPIC_SCORE),
            "graded_by": "heuristic",
        }
    )


def grade_heuristically(context: GradingContext) -> GradingResult:
    """Score ``context`` without any external call. Never raises for a valid context."""
    answer = context.student_answer or ""
    category = normalize_domain(context.assignment_domain)

    topic = detect_off_topic(answer, category)
    if topic is not None:
        return _off_topic_result(context, topic)

    relevance = context_relevance_score(answer, category)
    concepts = identify_concepts(answer, context.expected_concepts)
    completeness = completeness_score(answer, context.expected_concepts, concepts)
    depth = understanding_depth_score(answer, context.attempt_number)
    final = weighted_final_score(relevance, depth, completeness)
    passed = is_passing(final, relevance)
    missing = [concept for concept in context.expected_concepts if concept not in concepts]

    if relevance >= 60:
        context_feedback = "Your answer addresses the assignment context and its technology."
    else:
        context_feedback = "Please make sure your answer addresses this assignment's specific requirements."

    if depth >= 75:
        understanding_feedback = "Your response shows a good understanding of what needs to be done."
    else:
        understanding_feedback = "Explain your reasoning in more detail to demonstrate your understanding."

    if missing:
        completeness_feedback = "Consider also covering: " + ", ".join(missing) + "."
    elif completeness >= 70:
        completeness_feedback = "Your response covers the key points well."
    else:
        completeness_feedback = "Expand your response to address all aspects of the milestone."

    suggestions: List[str] = []
    if relevance < 60:
        suggestions.append("Connect your answer to the technology named in the assignment.")
    if depth < 70:
        suggestions.append("Explain your approach step by step.")
    for concept in missing:
        suggestions.append(f"Mention how {concept} fits into your solution.")
    if not suggestions:
        suggestions.append("Great work! You're ready for the next milestone.")

    if passed:
        improvement = ["Continue building on this understanding for the next milestone."]
        next_steps = ["Move on to the next milestone", "Apply this understanding to practice problems"]
        encouragement = "Excellent progress! Keep up the great work."
    else:
        improvement = [
            "Review the assignment requirements more carefully.",
            "Try to connect your answer to the specific concepts mentioned.",
        ]
        next_steps = ["Review the assignment materials", "Try the milestone again with more detail"]
        encouragement = "Don't give up! Learning takes time and practice."

    return GradingResult.model_validate(
        {
            "context_relevance_score": relevance,
            "understanding_depth_score": depth,
            "completeness_score": completeness,
            "feedback_type": classify_feedback(final, relevance),
            "concepts_identified": concepts,
            "detailed_feedback": {
                "context_feedback": context_feedback,
                "understanding_feedback": understanding_feedback,
                "completeness_feedback": completeness_feedback,
                "suggestions": suggestions,
                "encouragement": encouragement,
            },
            "improvement_suggestions": improvement,
            "next_steps": next_steps,
            "learning_indicators": learning_indicators_for(final),
            "graded_by": "heuristic",
        }
    )
