"""
Round generation.

Rounds follow a fixed archetype sequence truncated or extended to the target
count. Each round is one structured provider call; calls run concurrently and
the result is ordered by round number. A failed call yields a deterministic
template round seeded from the generation seed, including reverse questions
built from the research facts.
"""
import asyncio
import logging
import random
from typing import List, Optional, Sequence, Tuple

from prepgen.core.exceptions import AppError
from prepgen.core.prompts import round_generation_prompt
from prepgen.schemas.curriculum import (
    CandidatePrepGuide,
    CompetitiveIntelligence,
    InterviewerPersona,
    ResumeRecord,
    ReverseQuestion,
    ReverseQuestionTiming,
    RolePattern,
    Round,
    RoundTopic,
    RoundType,
    StandardQuestionPrep,
    UnifiedContext,
)
from prepgen.schemas.llm import ReverseQuestionContent, RoundContent
from prepgen.schemas.state import GenerationMode

logger = logging.getLogger(__name__)

ARCHETYPE_SEQUENCE = [
    RoundType.RECRUITER_SCREEN,
    RoundType.BEHAVIORAL_DEEP_DIVE,
    RoundType.STRATEGIC_ROLE_DISCUSSION,
    RoundType.CULTURE_VALUES_ALIGNMENT,
    RoundType.EXECUTIVE_FINAL,
]
EXTENSION_CYCLE = [RoundType.BEHAVIORAL_DEEP_DIVE, RoundType.STRATEGIC_ROLE_DISCUSSION]

DEFAULT_DURATIONS = {
    RoundType.RECRUITER_SCREEN: 15,
    RoundType.BEHAVIORAL_DEEP_DIVE: 30,
    RoundType.STRATEGIC_ROLE_DISCUSSION: 30,
    RoundType.CULTURE_VALUES_ALIGNMENT: 25,
    RoundType.EXECUTIVE_FINAL: 20,
}

ROUND_TITLES = {
    RoundType.RECRUITER_SCREEN: "Recruiter Screen",
    RoundType.BEHAVIORAL_DEEP_DIVE: "Behavioral Deep Dive",
    RoundType.STRATEGIC_ROLE_DISCUSSION: "Strategic Role Discussion",
    RoundType.CULTURE_VALUES_ALIGNMENT: "Culture & Values Alignment",
    RoundType.EXECUTIVE_FINAL: "Executive Final",
}

PERSONA_NAMES = {
    RoundType.RECRUITER_SCREEN: ["Sarah Chen", "Priya Patel", "Jordan Blake"],
    RoundType.BEHAVIORAL_DEEP_DIVE: ["Michael Rodriguez", "Aisha Okafor", "Tom Becker"],
    RoundType.STRATEGIC_ROLE_DISCUSSION: ["David Kim", "Elena Rossi", "Marcus Green"],
    RoundType.CULTURE_VALUES_ALIGNMENT: ["Emma Thompson", "Lucas Martin", "Nadia Haddad"],
    RoundType.EXECUTIVE_FINAL: ["Lisa Johnson", "Robert Alvarez", "Mei Tanaka"],
}

PERSONA_ROLES = {
    RoundType.RECRUITER_SCREEN: "Global Talent Recruiter",
    RoundType.BEHAVIORAL_DEEP_DIVE: "Senior Manager",
    RoundType.STRATEGIC_ROLE_DISCUSSION: "Director",
    RoundType.CULTURE_VALUES_ALIGNMENT: "Team Lead",
    RoundType.EXECUTIVE_FINAL: "VP",
}

PERSONA_TRAITS = {
    RoundType.RECRUITER_SCREEN: ["friendly", "thorough", "efficient"],
    RoundType.BEHAVIORAL_DEEP_DIVE: ["analytical", "detail-oriented", "patient"],
    RoundType.STRATEGIC_ROLE_DISCUSSION: ["strategic", "business-focused", "forward-thinking"],
    RoundType.CULTURE_VALUES_ALIGNMENT: ["collaborative", "values-driven", "perceptive"],
    RoundType.EXECUTIVE_FINAL: ["decisive", "visionary", "leadership-focused"],
}

COMMUNICATION_STYLES = {
    RoundType.RECRUITER_SCREEN: "warm and direct",
    RoundType.BEHAVIORAL_DEEP_DIVE: "probing, asks for concrete examples and outcomes",
    RoundType.STRATEGIC_ROLE_DISCUSSION: "big-picture, challenges assumptions",
    RoundType.CULTURE_VALUES_ALIGNMENT: "conversational and curious",
    RoundType.EXECUTIVE_FINAL: "concise, focused on judgement and impact",
}

TEMPLATE_TOPICS = {
    RoundType.RECRUITER_SCREEN: ["Career Background", "Motivation for the Role"],
    RoundType.BEHAVIORAL_DEEP_DIVE: ["Past Projects", "Collaboration and Conflict"],
    RoundType.STRATEGIC_ROLE_DISCUSSION: ["Role Strategy", "Prioritisation"],
    RoundType.CULTURE_VALUES_ALIGNMENT: ["Company Values", "Ways of Working"],
    RoundType.EXECUTIVE_FINAL: ["Leadership", "Long-term Impact"],
}

TEMPLATE_QUESTIONS = {
    RoundType.RECRUITER_SCREEN: [
        "Why are you interested in this role?",
        "What do you know about our company?",
        "Tell me about your background.",
    ],
    RoundType.BEHAVIORAL_DEEP_DIVE: [
        "Tell me about a challenging project you worked on.",
        "Describe a time you had to work with a difficult team member.",
        "Tell me about a decision you made with incomplete information.",
    ],
    RoundType.STRATEGIC_ROLE_DISCUSSION: [
        "How would you approach your first 90 days in this role?",
        "Which problems would you prioritise first, and why?",
        "How do you measure success in a role like this?",
    ],
    RoundType.CULTURE_VALUES_ALIGNMENT: [
        "Which of our values resonates most with you, and why?",
        "Describe a team culture where you did your best work.",
        "Tell me about a time you disagreed with a team decision.",
    ],
    RoundType.EXECUTIVE_FINAL: [
        "Where do you see this role contributing to the company in two years?",
        "Tell me about a time you influenced a senior stakeholder.",
        "What would make you say this move was a success?",
    ],
}

GREAT_ANSWER_SIGNALS = [
    "Uses a specific example with a measurable outcome",
    "Connects personal experience to the company's current priorities",
]

WHY_ASKED = {
    RoundType.RECRUITER_SCREEN: "Screens for motivation, logistics and a coherent career story",
    RoundType.BEHAVIORAL_DEEP_DIVE: "Looks for evidence of how you actually behave under pressure",
    RoundType.STRATEGIC_ROLE_DISCUSSION: "Tests whether you understand what the role is for",
    RoundType.CULTURE_VALUES_ALIGNMENT: "Checks how you would work day to day with this team",
    RoundType.EXECUTIVE_FINAL: "Gauges judgement and the impact you would have at scale",
}

APPROACHES = {
    RoundType.RECRUITER_SCREEN: "Two-minute narrative ending on why this company and role",
    RoundType.BEHAVIORAL_DEEP_DIVE: "STAR structure with one measurable result",
    RoundType.STRATEGIC_ROLE_DISCUSSION: "State your assumptions, then prioritise out loud",
    RoundType.CULTURE_VALUES_ALIGNMENT: "Tie a real example to one named company value",
    RoundType.EXECUTIVE_FINAL: "Lead with the outcome, then the trade-off you made",
}

MIN_REVERSE_QUESTIONS = 3
MAX_REVERSE_QUESTIONS = 5

# (question template, green flags, red flags) per research fact type
REVERSE_QUESTION_TEMPLATES = {
    "strategic_advantage": (
        "I read that {fact} is a real edge for {company}. How does this team contribute to it day to day?",
        ["Names concrete projects tied to the advantage", "Talks about the team's ownership"],
        ["Cannot connect the team's work to it"],
    ),
    "recent_development": (
        "How has {fact} changed the priorities for the people in this role?",
        ["Describes a specific shift in roadmap or goals", "Sounds energised by the change"],
        ["Priorities are unclear or keep changing"],
    ),
    "competitive_comparison": (
        "Given that {fact}, what does this team do differently to stay ahead?",
        ["Gives a clear point of differentiation", "Mentions how success is measured"],
        ["Dismisses the competition without specifics"],
    ),
    "company_value": (
        "Where do you see {fact} show up most in how this team makes decisions?",
        ["Shares a recent, concrete example", "Describes how the value is rewarded"],
        ["Only repeats the value statement"],
    ),
    "growth_area": (
        "{fact}",
        ["Describes specific milestones", "Mentions support for ramping up"],
        ["Expectations are vague or unrealistic"],
    ),
}

# (question, fact) pairs that pad the list when research is thin
GROWTH_QUESTIONS = [
    (
        "What would a great first six months look like for the person who joins as {role}?",
        "The {role} role is open at {company}",
    ),
    (
        "Which problem would you most want the new {role} to take off the team's plate?",
        "{company} is adding a {role} to the team",
    ),
    (
        "How will you know a year from now that this hire was a success?",
        "{company} is investing in the {role} role",
    ),
]

DEMO_ROUND_MINUTES = 3
DEMO_OPENING = "Hi! Thanks for taking the time to chat today."


def archetype_sequence(count: int) -> List[RoundType]:
    """Archetype per round: the base sequence, then alternating behavioral/strategic rounds."""
    sequence = ARCHETYPE_SEQUENCE[:count]
    index = 0
    while len(sequence) < count:
        sequence.append(EXTENSION_CYCLE[index % len(EXTENSION_CYCLE)])
        index += 1
    return sequence


def target_round_count(
    mode: GenerationMode,
    pattern: Optional[RolePattern],
    min_rounds: int = 3,
    max_rounds: int = 5,
) -> int:
    if mode == GenerationMode.CV_ROUND_ONLY:
        return 1
    typical = pattern.typical_rounds if pattern else max_rounds
    return max(min_rounds, min(max_rounds, typical))


def _topic_allocation(duration: int, topic_count: int) -> int:
    return max(1, duration // max(topic_count, 1))


def _research_facts(context: UnifiedContext, competitive: Optional[CompetitiveIntelligence]) -> List[Tuple[str, str, str]]:
    """(fact type, question, fact as recorded) for every research fact, in preference order."""
    company = context.company_name
    facts = []

    def add(source_type: str, phrase: str, recorded: str) -> None:
        template = REVERSE_QUESTION_TEMPLATES[source_type][0]
        facts.append((source_type, template.format(fact=phrase, company=company), recorded))

    if competitive:
        for item in competitive.strategic_advantages:
            add("strategic_advantage", item, item)
        for item in competitive.recent_developments:
            add("recent_development", item, item)
        for name in competitive.primary_competitors[:2]:
            add("competitive_comparison", f"{company} competes with {name}", f"{company} competes with {name}")
    for value in context.company_values:
        add("company_value", value, f"{company} lists '{value}' among its values")
    return facts


def template_reverse_questions(
    context: UnifiedContext,
    competitive: Optional[CompetitiveIntelligence],
    round_number: int = 1,
) -> List[ReverseQuestion]:
    """
    Deterministic reverse questions built from research facts.

    Facts are rotated by round number so consecutive rounds lead with
    different facts. Thin research is padded with generic growth questions.
    """
    facts = _research_facts(context, competitive)
    if facts:
        offset = (round_number - 1) % len(facts)
        facts = facts[offset:] + facts[:offset]
    names = {"role": context.role_title, "company": context.company_name}
    facts.extend(
        ("growth_area", question.format(**names), fact.format(**names))
        for question, fact in GROWTH_QUESTIONS
    )
    chosen = facts[:MIN_REVERSE_QUESTIONS]

    questions = []
    for index, (source_type, question_text, recorded) in enumerate(chosen):
        _, green_flags, red_flags = REVERSE_QUESTION_TEMPLATES[source_type]
        last = index == len(chosen) - 1
        questions.append(ReverseQuestion(
            question_text=question_text,
            ci_fact_used=recorded,
            ci_source_type=source_type,
            why_this_works="Shows you researched the company and invites a concrete answer",
            green_flags=list(green_flags),
            red_flags=list(red_flags),
            best_timing=ReverseQuestionTiming.CLOSING if last else ReverseQuestionTiming.MID_CONVERSATION,
        ))
    return questions


def _reverse_from_content(items: Sequence[ReverseQuestionContent]) -> List[ReverseQuestion]:
    questions = []
    for item in items:
        if not item.question_text.strip() or not item.ci_fact_used.strip():
            continue
        timing_name = (item.best_timing or "").strip().lower().replace("-", "_").replace(" ", "_")
        try:
            timing = ReverseQuestionTiming(timing_name)
        except ValueError:
            timing = ReverseQuestionTiming.CLOSING
        questions.append(ReverseQuestion(
            question_text=item.question_text.strip(),
            ci_fact_used=item.ci_fact_used.strip(),
            ci_source_type=(item.ci_source_type or "strategic_advantage").strip(),
            why_this_works=item.why_this_works or "",
            green_flags=list(item.green_flags),
            red_flags=list(item.red_flags),
            best_timing=timing,
        ))
    return questions[:MAX_REVERSE_QUESTIONS]


def template_round(
    round_number: int,
    round_type: RoundType,
    context: UnifiedContext,
    pattern: Optional[RolePattern],
    competitive: Optional[CompetitiveIntelligence],
    seed: int,
) -> Round:
    """Deterministic round used when the provider call for a round fails."""
    rng = random.Random(seed * 1009 + round_number)
    duration = DEFAULT_DURATIONS[round_type]

    focus = list(context.focus_areas or (pattern.focus_areas if pattern else []))
    if focus:
        offset = (round_number - 1) % len(focus)
        rotated = focus[offset:] + focus[:offset]
        topic_names = rotated[:2] if len(rotated) >= 2 else rotated + TEMPLATE_TOPICS[round_type][:1]
    else:
        topic_names = list(TEMPLATE_TOPICS[round_type])

    topics = [
        RoundTopic(
            topic=name,
            subtopics=[f"{name} in the context of {context.company_name}"],
            time_allocation=_topic_allocation(duration, len(topic_names)),
        )
        for name in topic_names
    ]

    talking_points = []
    if competitive and competitive.strategic_advantages:
        talking_points.extend(
            f"Reference {advantage} when discussing your interest in the company"
            for advantage in competitive.strategic_advantages[:2]
        )
    talking_points.extend(context.strength_amplifiers[:2])
    if not talking_points:
        talking_points.append(f"Why {context.company_name}, and why this {context.role_title} role now")

    return Round(
        round_number=round_number,
        round_type=round_type,
        title=ROUND_TITLES[round_type],
        duration_minutes=duration,
        interviewer_persona=InterviewerPersona(
            name=rng.choice(PERSONA_NAMES[round_type]),
            role=f"{PERSONA_ROLES[round_type]} at {context.company_name}",
            tenure=f"{rng.randint(2, 8)} years",
            personality_traits=list(PERSONA_TRAITS[round_type]),
            communication_style=COMMUNICATION_STYLES[round_type],
        ),
        topics_to_cover=topics,
        candidate_prep_guide=CandidatePrepGuide(
            expected_questions=list(TEMPLATE_QUESTIONS[round_type]),
            talking_points=talking_points,
            great_answer_signals=list(GREAT_ANSWER_SIGNALS),
            standard_questions_prep=[
                StandardQuestionPrep(
                    question=question,
                    why_asked=WHY_ASKED[round_type],
                    approach=APPROACHES[round_type],
                )
                for question in TEMPLATE_QUESTIONS[round_type][:2]
            ],
            reverse_questions=template_reverse_questions(context, competitive, round_number),
        ),
    )


def round_from_content(
    content: RoundContent,
    round_number: int,
    round_type: RoundType,
    context: UnifiedContext,
) -> Round:
    duration = DEFAULT_DURATIONS[round_type]
    persona = content.interviewer_persona
    topics = [topic for topic in content.topics if topic.topic.strip()]

    return Round(
        round_number=round_number,
        round_type=round_type,
        title=(content.title or "").strip() or ROUND_TITLES[round_type],
        duration_minutes=duration,
        interviewer_persona=InterviewerPersona(
            name=persona.name.strip(),
            role=persona.role.strip() or f"{PERSONA_ROLES[round_type]} at {context.company_name}",
            tenure=persona.tenure or "3 years",
            personality_traits=[trait for trait in persona.personality_traits if trait.strip()],
            communication_style=persona.communication_style or "conversational",
        ),
        topics_to_cover=[
            RoundTopic(
                topic=topic.topic.strip(),
                subtopics=list(topic.subtopics),
                time_allocation=_topic_allocation(duration, len(topics)),
            )
            for topic in topics
        ],
        candidate_prep_guide=CandidatePrepGuide(
            expected_questions=list(content.expected_questions),
            talking_points=list(content.talking_points),
            great_answer_signals=list(content.great_answer_signals),
            standard_questions_prep=[
                StandardQuestionPrep(
                    question=item.question.strip(),
                    why_asked=item.why_asked or "",
                    approach=item.approach or "",
                    key_points=list(item.key_points),
                )
                for item in content.standard_questions_prep
                if item.question.strip()
            ],
            reverse_questions=_reverse_from_content(content.reverse_questions),
        ),
    )


async def generate_rounds(
    context: UnifiedContext,
    pattern: Optional[RolePattern],
    count: int,
    gateway,
    seed: int = 0,
    competitive: Optional[CompetitiveIntelligence] = None,
    deficiencies: Sequence[str] = (),
) -> Tuple[List[Round], List[str]]:
    """
    Generate ``count`` rounds concurrently.

    Returns rounds ordered by round number and a warning per templated round.
    """
    pattern = pattern or RolePattern()
    archetypes = archetype_sequence(count)

    async def _generate_one(round_number: int, round_type: RoundType) -> Tuple[Round, Optional[str]]:
        prompt = round_generation_prompt(
            context,
            pattern,
            round_type,
            round_number,
            count,
            DEFAULT_DURATIONS[round_type],
            competitive=competitive,
            deficiencies=deficiencies,
        )
        try:
            content = await gateway.generate_structured(
                RoundContent, "round_generation", prompt, temperature=0.4
            )
            return round_from_content(content, round_number, round_type, context), None
        except AppError as e:
            logger.warning(f"Round {round_number} ({round_type.value}) failed, using template: {e.message}")
            fallback = template_round(round_number, round_type, context, pattern, competitive, seed)
            return fallback, f"Round {round_number} generated from template: {e.message}"

    results = await asyncio.gather(
        *(_generate_one(number, round_type) for number, round_type in enumerate(archetypes, start=1))
    )

    rounds = sorted((round_ for round_, _ in results), key=lambda r: r.round_number)
    warnings = [warning for _, warning in results if warning]
    logger.info(f"Generated {len(rounds)} round(s), {len(warnings)} from template")
    return rounds, warnings


def build_demo_round(resume: Optional[ResumeRecord] = None, company_name: Optional[str] = None) -> Round:
    """Three-minute CV walkthrough written by the fast pass; no provider call."""
    subtopics = ["Current role", "Experience"]
    questions = [
        "Walk me through your CV.",
        "What are you looking for in your next role?",
        "Which project are you most proud of?",
    ]
    if resume and resume.current_role:
        subtopics[0] = f"Current role: {resume.current_role}"
        questions.insert(1, f"What does a typical week look like as {resume.current_role}?")

    role = "Technical Recruiter"
    if company_name:
        role = f"{role} at {company_name}"

    return Round(
        round_number=1,
        round_type=RoundType.RECRUITER_SCREEN,
        title="CV Walkthrough (Demo)",
        duration_minutes=DEMO_ROUND_MINUTES,
        interviewer_persona=InterviewerPersona(
            name="Sarah Chen",
            role=role,
            personality_traits=["friendly", "conversational"],
            communication_style="warm, direct",
        ),
        topics_to_cover=[
            RoundTopic(topic="Career Background", subtopics=subtopics, time_allocation=DEMO_ROUND_MINUTES),
        ],
        candidate_prep_guide=CandidatePrepGuide(
            expected_questions=questions,
            talking_points=[f"Expect the opener: '{DEMO_OPENING}'", "Keep each answer under a minute and end on why this role"],
            great_answer_signals=["A clear two-minute story from past roles to this one"],
        ),
    )
