"""E-DNA seven-layer scoring engine.

Turns a flat answer map into a structured QuizResult. Every function here is
pure and total: a missing or malformed answer only ever produces a neutral,
default or omitted value, never an exception.
"""

from __future__ import annotations

import math
from typing import Mapping, Optional

from .models import (
    AnswerMap,
    DecisionIdentity,
    DimensionScore,
    ExecutionSubtype,
    LearningStyle,
    MetaBeliefs,
    Mindset,
    MindsetPersonality,
    MirrorAwareness,
    NeuroPerformance,
    Personality,
    QuizResult,
)

LAYER1_QUESTIONS = [f"L1_Q{i}" for i in range(1, 9)]

# (architect, alchemist) -> type. Exact matches only; anything else is Blurred.
LAYER1_TYPES: dict[tuple[int, int], str] = {
    (8, 0): "Strong Architect",
    (7, 1): "Medium Architect",
    (6, 2): "Weak Architect",
    (0, 8): "Strong Alchemist",
    (1, 7): "Medium Alchemist",
    (2, 6): "Weak Alchemist",
}
BLURRED = "Blurred"

LAYER2_QUESTION_RANGE = range(9, 17)
LAYER2_SUBTYPES: dict[str, dict[str, str]] = {
    "architect": {"a": "planner", "b": "operator", "c": "analyst", "d": "ultimate"},
    "alchemist": {"a": "oracle", "b": "perfectionist", "c": "empath", "d": "ultimate"},
    "mixed": {},
}

LAYER3_DIMENSIONS: dict[str, tuple[str, tuple[str, str, str]]] = {
    "L3_Q17": ("Validator Awareness", ("Opposite", "Partial", "Full")),
    "L3_Q18": ("Emotional Regulation", ("Reactive", "Aware", "Integrated")),
    "L3_Q19": ("Feedback Processing", ("Defensive", "Selective", "Open")),
    "L3_Q20": ("Blind Spot Recognition", ("Unaware", "Emerging", "Aware")),
    "L3_Q21": ("Self-Correction Speed", ("Slow", "Moderate", "Fast")),
    "L3_Q22": ("Growth Orientation", ("Fixed", "Mixed", "Growth")),
}
LAYER3_POINTS = {"a": 0, "b": 1, "c": 2}
LAYER3_MAX_SCORE = 12

LAYER4_QUESTIONS = [f"L4_Q{i}" for i in range(23, 28)]
LAYER4_MODALITIES = ("visual", "auditory", "readWrite", "kinesthetic")
LAYER4_MAPPING = dict(zip("abcd", LAYER4_MODALITIES))

LAYER5_DIMENSIONS: dict[str, str] = {
    "L5_Q28": "Focus Pattern",
    "L5_Q29": "Processing Speed",
    "L5_Q30": "Energy Pattern",
    "L5_Q31": "Task Switching",
    "L5_Q32": "Stress Response",
    "L5_Q33": "Recovery Pattern",
}

LAYER6_CORE_TYPES: dict[tuple[str, str], str] = {
    ("a", "a"): "Confident & Steady",
    ("a", "b"): "Confident & Driven",
    ("b", "a"): "Considerate & Steady",
    ("b", "b"): "Fast-Moving & Adaptive",
}

LAYER7_DIMENSIONS: dict[str, tuple[str, tuple[str, str, str]]] = {
    "L7_Q40": ("Grounding Source", ("Self-Reliant", "Faith-Reliant", "Dual-Reliant")),
    "L7_Q41": ("Control Belief", ("I'm In Control", "Life Influences Me", "Shared Control")),
    "L7_Q42": ("Fairness View", ("Responsibility View", "Compassion View", "Balanced View")),
    "L7_Q43": ("Honesty Style", ("Direct Honesty", "Gentle Honesty", "Balanced Honesty")),
    "L7_Q44": ("Growth Approach", ("Growth Focused", "Comfort Focused", "Steady Growth")),
    "L7_Q45": ("Impact Motivation", ("Self-Focused Impact", "Others-Focused Impact", "Shared Impact")),
}


def _answer(answers: Mapping, question_id: str) -> Optional[str]:
    """Return the answer code for a question, or None if it is unanswered or malformed."""
    value = answers.get(question_id) if isinstance(answers, Mapping) else None
    if isinstance(value, str) and value:
        return value
    return None


def score_layer1(answers: AnswerMap) -> DecisionIdentity:
    """Layer 1: count architect ('a') and alchemist ('b') answers across 8 questions."""
    architect = alchemist = 0
    for qid in LAYER1_QUESTIONS:
        answer = _answer(answers, qid)
        if answer == "a":
            architect += 1
        elif answer == "b":
            alchemist += 1

    return DecisionIdentity(
        type=LAYER1_TYPES.get((architect, alchemist), BLURRED),
        architect_count=architect,
        alchemist_count=alchemist,
    )


def _layer2_path(layer1: DecisionIdentity) -> str:
    if "Architect" in layer1.type:
        return "architect"
    if "Alchemist" in layer1.type:
        return "alchemist"
    return "mixed"


def _layer2_question_id(path: str, number: int) -> str:
    if path == "alchemist":
        return f"L2_Q{number}a"
    if path == "mixed":
        return f"L2_Qm{number}"
    return f"L2_Q{number}"


def score_layer2(answers: AnswerMap, layer1: DecisionIdentity) -> ExecutionSubtype:
    """Layer 2: tally subtypes along the path chosen by layer 1.

    The dominant subtype is the highest tally; ties go to the lexicographically
    first subtype name so the outcome never depends on answer order.
    """
    path = _layer2_path(layer1)
    mapping = LAYER2_SUBTYPES[path]

    scores: dict[str, int] = {}
    for number in LAYER2_QUESTION_RANGE:
        answer = _answer(answers, _layer2_question_id(path, number))
        subtype = mapping.get(answer) if answer else None
        if subtype:
            scores[subtype] = scores.get(subtype, 0) + 1

    dominant = ""
    if scores:
        dominant = min(scores, key=lambda name: (-scores[name], name))

    return ExecutionSubtype(subtype=dominant.capitalize(), path=path, scores=scores)


def score_layer3(answers: AnswerMap) -> MirrorAwareness:
    """Layer 3: mirror awareness, 0/1/2 points per dimension out of 12."""
    dimensions: dict[str, DimensionScore] = {}
    total = 0
    for qid, (name, labels) in LAYER3_DIMENSIONS.items():
        answer = _answer(answers, qid)
        if answer in LAYER3_POINTS:
            points = LAYER3_POINTS[answer]
            dimensions[name] = DimensionScore(score=points, label=labels[points])
            total += points
        else:
            dimensions[name] = DimensionScore(score=0, label="")

    return MirrorAwareness(total_score=total, max_score=LAYER3_MAX_SCORE, dimensions=dimensions)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_layer4(answers: AnswerMap) -> LearningStyle:
    """Layer 4: VARK histogram with integer percentages and a dominant modality."""
    scores = {modality: 0 for modality in LAYER4_MODALITIES}
    for qid in LAYER4_QUESTIONS:
        modality = LAYER4_MAPPING.get(_answer(answers, qid) or "")
        if modality:
            scores[modality] += 1

    total = sum(scores.values())
    if total:
        percentages = {m: _round_half_up(count * 100 / total) for m, count in scores.items()}
    else:
        percentages = {m: 0 for m in LAYER4_MODALITIES}

    dominant = "visual"
    best = scores[dominant]
    for modality in LAYER4_MODALITIES:
        if scores[modality] > best:
            dominant, best = modality, scores[modality]

    return LearningStyle(dominant_modality=dominant, scores=scores, percentages=percentages)


def score_layer5(answers: AnswerMap) -> NeuroPerformance:
    """Layer 5: raw answer codes, unanswered dimensions omitted."""
    profile = {}
    for qid, name in LAYER5_DIMENSIONS.items():
        answer = _answer(answers, qid)
        if answer:
            profile[name] = answer
    return NeuroPerformance(profile=profile)


def score_layer6(answers: AnswerMap) -> MindsetPersonality:
    """Layer 6: three mindset axes, a 2x2 personality core type, and communication style."""
    mindset = Mindset(
        growth_fixed="Growth" if _answer(answers, "L6_Q34") == "a" else "Fixed",
        abundance_scarcity="Abundance" if _answer(answers, "L6_Q35") == "a" else "Scarcity",
        challenge_comfort="Challenge" if _answer(answers, "L6_Q36") == "a" else "Comfort",
    )
    pair = (_answer(answers, "L6_Q37"), _answer(answers, "L6_Q38"))
    personality = Personality(
        core_type=LAYER6_CORE_TYPES.get(pair, ""),
        communication_style=(
            "Direct Communicator" if _answer(answers, "L6_Q39") == "a" else "Diplomatic Communicator"
        ),
    )
    return MindsetPersonality(mindset=mindset, personality=personality)


def score_layer7(answers: AnswerMap) -> MetaBeliefs:
    """Layer 7: map answer letters onto each dimension's three labels."""
    beliefs = {}
    for qid, (name, labels) in LAYER7_DIMENSIONS.items():
        answer = _answer(answers, qid)
        if not answer:
            continue
        index = ord(answer[0]) - ord("a")
        beliefs[name] = labels[index] if 0 <= index < len(labels) else ""
    return MetaBeliefs(beliefs=beliefs)


def score_answers(answers: AnswerMap) -> QuizResult:
    """Score a complete submission. Deterministic, side-effect free, never raises."""
    if not isinstance(answers, Mapping):
        answers = {}

    layer1 = score_layer1(answers)
    return QuizResult(
        layer1=layer1,
        layer2=score_layer2(answers, layer1),
        layer3=score_layer3(answers),
        layer4=score_layer4(answers),
        layer5=score_layer5(answers),
        layer6=score_layer6(answers),
        layer7=score_layer7(answers),
    )
