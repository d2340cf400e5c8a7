"""
Completeness scoring for generated rounds (0-100).

Rubric: persona specificity 35, topic coverage 35, prep-guide presence 30.
The prep guide splits into expected questions 15, talking points 5, answer
signals 4 and research-backed reverse questions 6.
Deficiencies are short sentences fed back into the next generation prompt.
"""
from typing import List, Sequence, Tuple

from prepgen.schemas.curriculum import Round, UnifiedContext
from prepgen.services.pipeline.generation import MIN_REVERSE_QUESTIONS

PERSONA_WEIGHT = 35.0
TOPIC_WEIGHT = 35.0
PREP_WEIGHT = 30.0

QUALITY_BELOW_THRESHOLD = "QUALITY_BELOW_THRESHOLD"

GENERIC_NAMES = {"", "interviewer", "the interviewer", "first last", "name", "tbd"}
GENERIC_ROLES = {"", "interviewer", "recruiter", "manager", "hiring manager", "employee", "job title at company"}


def _persona_score(round_: Round) -> Tuple[float, List[str]]:
    persona = round_.interviewer_persona
    points = 0.0
    problems = []

    if persona.name.strip().lower() not in GENERIC_NAMES:
        points += 10
    else:
        problems.append(f"Round {round_.round_number}: give the interviewer a realistic full name")

    if persona.role.strip().lower() not in GENERIC_ROLES:
        points += 10
    else:
        problems.append(f"Round {round_.round_number}: give the interviewer a specific role at the company")

    if len(persona.personality_traits) >= 2:
        points += 10
    else:
        problems.append(f"Round {round_.round_number}: list at least two interviewer personality traits")

    if persona.communication_style.strip():
        points += 5
    else:
        problems.append(f"Round {round_.round_number}: describe the interviewer's communication style")

    return points, problems


def _prep_score(round_: Round) -> Tuple[float, List[str]]:
    guide = round_.candidate_prep_guide
    points = 0.0
    problems = []

    if len(guide.expected_questions) >= 3:
        points += 15
    else:
        points += 5 * len(guide.expected_questions)
        problems.append(f"Round {round_.round_number}: include at least three expected questions")

    if guide.talking_points:
        points += 5
    else:
        problems.append(f"Round {round_.round_number}: add talking points for the candidate")

    if guide.great_answer_signals:
        points += 4
    else:
        problems.append(f"Round {round_.round_number}: describe what a great answer sounds like")

    grounded = [question for question in guide.reverse_questions if question.ci_fact_used.strip()]
    if len(grounded) >= MIN_REVERSE_QUESTIONS:
        points += 6
    else:
        points += 2 * len(grounded)
        problems.append(
            f"Round {round_.round_number}: add at least {MIN_REVERSE_QUESTIONS} reverse questions, "
            "each built on a company research fact"
        )

    return points, problems


def _focus_coverage(rounds: Sequence[Round], focus_areas: Sequence[str]) -> float:
    """Share of focus areas mentioned anywhere in the rounds' topics."""
    if not focus_areas:
        return 1.0
    corpus = " ".join(
        " ".join([topic.topic, *topic.subtopics])
        for round_ in rounds
        for topic in round_.topics_to_cover
    ).lower()
    covered = sum(1 for area in focus_areas if area.strip() and area.strip().lower() in corpus)
    return covered / len(focus_areas)


def evaluate_rounds(rounds: Sequence[Round], context: UnifiedContext) -> Tuple[float, List[str]]:
    """
    Score a round sequence against the rubric.

    Returns the score rounded to one decimal and the list of deficiencies.
    """
    if not rounds:
        return 0.0, ["No rounds were generated"]

    deficiencies: List[str] = []
    persona_total = 0.0
    prep_total = 0.0
    rounds_with_topics = 0

    for round_ in rounds:
        points, problems = _persona_score(round_)
        persona_total += points
        deficiencies.extend(problems)

        points, problems = _prep_score(round_)
        prep_total += points
        deficiencies.extend(problems)

        if len(round_.topics_to_cover) >= 2:
            rounds_with_topics += 1
        else:
            deficiencies.append(f"Round {round_.round_number}: cover at least two topics")

    count = len(rounds)
    coverage = _focus_coverage(rounds, context.focus_areas)
    if coverage < 1.0:
        missing = [
            area for area in context.focus_areas
            if _focus_coverage(rounds, [area]) == 0.0
        ]
        if missing:
            deficiencies.append(f"Cover these focus areas in round topics: {', '.join(missing)}")

    persona_score = persona_total / count
    prep_score = prep_total / count
    topic_score = 20.0 * rounds_with_topics / count + 15.0 * coverage

    score = round(persona_score + topic_score + prep_score, 1)
    return min(score, 100.0), deficiencies
