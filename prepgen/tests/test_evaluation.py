from prepgen.schemas.curriculum import (
    CandidatePrepGuide,
    InterviewerPersona,
    JobRecord,
    ReverseQuestion,
    Round,
    RoundTopic,
    RoundType,
)
from prepgen.services.pipeline.context import synthesize_context
from prepgen.services.pipeline.evaluation import evaluate_rounds
from prepgen.services.pipeline.generation import template_round
from prepgen.tests.fakes import NETFLIX_JOB

JOB = JobRecord(**{**NETFLIX_JOB, "level": "senior", "work_arrangement": "hybrid"})
CONTEXT = synthesize_context(JOB)


def _full_round(number: int, topics) -> Round:
    return Round(
        round_number=number,
        round_type=RoundType.BEHAVIORAL_DEEP_DIVE,
        title="Deep Dive",
        duration_minutes=30,
        interviewer_persona=InterviewerPersona(
            name="Jamie Rivera",
            role="Data Science Manager at Netflix",
            personality_traits=["direct", "curious"],
            communication_style="Socratic",
        ),
        topics_to_cover=[RoundTopic(topic=topic) for topic in topics],
        candidate_prep_guide=CandidatePrepGuide(
            expected_questions=["Q1", "Q2", "Q3"],
            talking_points=["Impact"],
            great_answer_signals=["Quantifies impact"],
            reverse_questions=[
                ReverseQuestion(question_text=f"Reverse question {index}", ci_fact_used=f"Fact {index}")
                for index in range(3)
            ],
        ),
    )


def test_complete_rounds_score_full_marks():
    rounds = [
        _full_round(1, ["Python", "Experimentation"]),
        _full_round(2, ["Machine Learning", "Product Sense"]),
    ]

    score, deficiencies = evaluate_rounds(rounds, CONTEXT)

    assert score == 100.0
    assert deficiencies == []


def test_missing_focus_area_is_reported():
    rounds = [_full_round(1, ["Python", "Experimentation"])]

    score, deficiencies = evaluate_rounds(rounds, CONTEXT)

    assert score == 95.0
    assert deficiencies == ["Cover these focus areas in round topics: Machine Learning"]


def test_generic_round_scores_low():
    generic = Round(
        round_number=1,
        round_type=RoundType.RECRUITER_SCREEN,
        title="Round",
        duration_minutes=15,
        interviewer_persona=InterviewerPersona(name="Interviewer", role="Recruiter", communication_style=""),
    )

    score, deficiencies = evaluate_rounds([generic], CONTEXT)

    assert score == 0.0
    assert "Round 1: give the interviewer a realistic full name" in deficiencies
    assert "Round 1: include at least three expected questions" in deficiencies
    assert "Round 1: cover at least two topics" in deficiencies


def test_partial_questions_earn_partial_credit():
    round_ = _full_round(1, ["Python", "Experimentation", "Machine Learning"])
    round_.candidate_prep_guide.expected_questions = ["Only one"]

    score, _ = evaluate_rounds([round_], CONTEXT)

    assert score == 90.0


def test_no_rounds():
    assert evaluate_rounds([], CONTEXT) == (0.0, ["No rounds were generated"])


def test_template_rounds_pass_default_threshold():
    rounds = [template_round(number, RoundType.BEHAVIORAL_DEEP_DIVE, CONTEXT, None, None, seed=0) for number in (1, 2, 3)]

    score, _ = evaluate_rounds(rounds, CONTEXT)

    assert score >= 70


def test_reverse_questions_need_research_facts():
    round_ = _full_round(1, ["Python", "Experimentation", "Machine Learning"])
    round_.candidate_prep_guide.reverse_questions[0].ci_fact_used = " "

    score, deficiencies = evaluate_rounds([round_], CONTEXT)

    assert score == 98.0
    assert deficiencies == [
        "Round 1: add at least 3 reverse questions, each built on a company research fact"
    ]
