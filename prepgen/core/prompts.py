import json
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from prepgen.schemas.curriculum import (
    CompanyContext,
    CompetitiveIntelligence,
    JobRecord,
    RolePattern,
    RoundType,
    UnifiedContext,
)


def _bullets(items: Sequence[str], empty: str = "None listed") -> str:
    if not items:
        return f"- {empty}"
    return "\n".join(f"- {item}" for item in items)


def job_grounding_prompt(url: str) -> str:
    """
    Generate the prompt for reading a job posting through URL grounding.

    The answer is plain prose: structuring happens in a second call.
    """
    return (
        "You are a precise recruiting analyst. Read the job posting at the URL below and "
        "describe it faithfully in plain prose.\n\n"
        f"Job posting URL: {url}\n\n"
        "Cover: the exact job title, the hiring company, seniority level, key responsibilities, "
        "must-have skills, nice-to-have skills, location and work arrangement "
        "(onsite, remote or hybrid). Do not invent details that are not on the page."
    )


def job_extraction_prompt(
    grounded_text: Optional[str] = None,
    source_data: Optional[dict] = None,
    url: Optional[str] = None,
) -> str:
    """
    Generate the prompt for structuring job details into the job schema.

    Args:
        grounded_text: Citation-backed prose from the grounding step.
        source_data: Prefetched structured data from discovery.
        url: Posting URL, named directly when grounding was unavailable.

    Returns:
        The formatted prompt string.
    """
    if grounded_text:
        material = f"Job posting summary:\n{grounded_text}"
    elif source_data:
        material = f"Structured data: {json.dumps(source_data, ensure_ascii=False)}"
    else:
        material = f"Job posting URL to analyze: {url}"

    return (
        "You are a precise recruiting analyst. Extract the canonical job details from the "
        "material below.\n\n"
        f"{material}\n\n"
        "Return ONLY a valid JSON object (no markdown, no explanation) with these exact fields:\n"
        "{\n"
        '  "title": "exact job title",\n'
        '  "company_name": "hiring company",\n'
        '  "level": "one of: intern/entry/junior/mid/senior/lead/principal/staff/executive",\n'
        '  "responsibilities": ["key responsibilities"],\n'
        '  "required_skills": ["must-have skills"],\n'
        '  "preferred_skills": ["nice-to-have skills"],\n'
        '  "location": "primary job location",\n'
        '  "work_arrangement": "one of: onsite/remote/hybrid"\n'
        "}"
    )


def research_queries(job: JobRecord, now: Optional[datetime] = None) -> List[str]:
    """Build the batch of research queries issued in one grounded search call."""
    current_year = (now or datetime.now(timezone.utc)).year
    recent_period = f"{current_year - 1} {current_year}"
    company, title = job.company_name, job.title
    location = job.location or ""

    queries = [
        f"{company} {title} interview process experience",
        f"{company} company culture employee reviews {recent_period}",
        f"{company} interview questions {job.level} level",
        f"{title} salary range {location} {current_year}",
        f"{company} recent news changes hiring {recent_period}",
        f"{title} interview preparation {company}",
        f"{company} vs main competitors {title} responsibilities comparison {recent_period}",
        f"{company} {current_year} strategy changes acquisitions affecting {title} role scope",
        f"{company} market position vs competitors impact on {title} career growth {current_year}",
        f"{title} salary ranges {company} vs competitors {location} {recent_period}",
        f"{title} industry trends affecting {company} {recent_period}",
        f"{company} {title} interview process difficulty comparison {current_year}",
    ]
    return [" ".join(query.split()) for query in queries]


def research_prompt(job: JobRecord, queries: Sequence[str], company: Optional[CompanyContext] = None) -> str:
    known_company = ""
    if company and company.values:
        known_company = f"- Known company values: {', '.join(company.values)}\n"

    return (
        f"Research and analyze interview intelligence for a {job.level} {job.title} role at "
        f"{job.company_name}.\n\n"
        "Use these research queries to gather current information:\n"
        f"{_bullets(queries)}\n\n"
        "Current job context:\n"
        f"- Location: {job.location or 'unspecified'}\n"
        f"- Work arrangement: {job.work_arrangement}\n"
        f"- Key requirements: {', '.join(job.required_skills) or 'None listed'}\n"
        f"{known_company}\n"
        "Based on your research findings, return ONLY a valid JSON object:\n"
        "{\n"
        '  "typical_rounds": 4,\n'
        '  "focus_areas": ["areas interviewers focus on"],\n'
        '  "interview_formats": ["formats found in research"],\n'
        '  "similar_roles": ["related titles"],\n'
        '  "company_values": ["stated or observed company values"],\n'
        '  "company_insights": ["recent company developments affecting the role"],\n'
        '  "salary_intelligence": "market range and negotiation insights",\n'
        '  "interview_difficulty": "difficulty on a 1-10 scale, e.g. 7/10",\n'
        '  "preparation_recommendations": ["specific prep advice"],\n'
        '  "competitive_intelligence": {\n'
        '    "primary_competitors": ["company names with why they compete"],\n'
        '    "role_comparison": "how this role differs from the same role at competitors",\n'
        '    "strategic_advantages": ["specific advantages with context"],\n'
        '    "recent_developments": ["changes in the last 12 months affecting this role"],\n'
        '    "competitive_positioning": "where the company stands for this role type",\n'
        '    "market_context": {\n'
        '      "competitive_salary_context": "salary positioning with numbers",\n'
        '      "market_trends": ["trends with context"]\n'
        "    }\n"
        "  }\n"
        "}"
    )


ROUND_GOALS = {
    RoundType.RECRUITER_SCREEN: "screen motivation, background fit and logistics",
    RoundType.BEHAVIORAL_DEEP_DIVE: "probe past behaviour and core role competencies with STAR-style questions",
    RoundType.STRATEGIC_ROLE_DISCUSSION: "discuss how the candidate would approach the role's strategic challenges",
    RoundType.CULTURE_VALUES_ALIGNMENT: "test alignment with the company's values and ways of working",
    RoundType.EXECUTIVE_FINAL: "assess leadership potential, judgement and long-term fit",
}


def round_generation_prompt(
    context: UnifiedContext,
    pattern: RolePattern,
    round_type: RoundType,
    round_number: int,
    total_rounds: int,
    duration_minutes: int,
    competitive: Optional[CompetitiveIntelligence] = None,
    deficiencies: Sequence[str] = (),
) -> str:
    """
    Generate the prompt for one interview round.

    Args:
        context: Unified personalization context.
        pattern: Researched role pattern.
        round_type: Archetype of the round.
        round_number: 1-based position of the round.
        total_rounds: Number of rounds in the curriculum.
        duration_minutes: Planned round length.
        competitive: Competitive intelligence, when research succeeded.
        deficiencies: Evaluator feedback from a previous attempt.

    Returns:
        The formatted prompt string.
    """
    label = round_type.value.replace("_", " ")
    competitive_block = ""
    if competitive and (competitive.strategic_advantages or competitive.recent_developments):
        competitive_block = (
            "COMPETITIVE INTELLIGENCE:\n"
            f"- Strategic advantages: {', '.join(competitive.strategic_advantages[:3]) or 'n/a'}\n"
            f"- Recent developments: {', '.join(competitive.recent_developments[:3]) or 'n/a'}\n"
            f"- Positioning: {competitive.competitive_positioning}\n\n"
        )

    feedback_block = ""
    if deficiencies:
        feedback_block = (
            "A previous draft of this curriculum was rejected. Fix these problems:\n"
            f"{_bullets(deficiencies)}\n\n"
        )

    return (
        f"Design round {round_number} of {total_rounds} of a mock interview for a "
        f"{context.seniority} {context.role_title} role at {context.company_name}.\n"
        f"Round type: {label} ({duration_minutes} minutes). Goal: {ROUND_GOALS[round_type]}.\n\n"
        "ROLE CONTEXT:\n"
        f"- Key requirements: {', '.join(context.key_requirements) or 'None listed'}\n"
        f"- Focus areas: {', '.join(context.focus_areas or pattern.focus_areas) or 'None listed'}\n"
        f"- Interview formats seen: {', '.join(pattern.interview_formats) or 'None listed'}\n"
        f"- Company values: {', '.join(context.company_values) or 'None listed'}\n\n"
        "CANDIDATE:\n"
        f"- Summary: {context.candidate_summary}\n"
        f"- Strengths to amplify: {', '.join(context.strength_amplifiers) or 'None listed'}\n"
        f"- Gaps to bridge: {', '.join(context.gap_bridges) or 'None listed'}\n"
        f"- Approach: {context.personalized_approach}\n"
        f"- Company research usage: {context.ci_integration_strategy}\n\n"
        f"{competitive_block}"
        f"{feedback_block}"
        "Create a realistic interviewer who works at the company, at a seniority that suits "
        "this round, and the material a candidate needs to prepare. Include 3-5 reverse "
        "questions the candidate can ask the interviewer; each must build on one specific "
        "fact from the company research above and say what to listen for in the answer.\n\n"
        "Return ONLY a JSON object with this structure:\n"
        "{\n"
        '  "title": "short round title",\n'
        '  "interviewer_persona": {\n'
        '    "name": "First Last",\n'
        f'    "role": "Job Title at {context.company_name}",\n'
        '    "tenure": "e.g. 4 years",\n'
        '    "personality_traits": ["trait1", "trait2", "trait3"],\n'
        '    "communication_style": "one sentence"\n'
        "  },\n"
        '  "topics": [{"topic": "...", "subtopics": ["...", "..."]}],\n'
        '  "expected_questions": ["at least three questions"],\n'
        '  "talking_points": ["points the candidate should land"],\n'
        '  "great_answer_signals": ["what a great answer sounds like"],\n'
        '  "standard_questions_prep": [{"question": "...", "why_asked": "...", "approach": "...", "key_points": ["..."]}],\n'
        '  "reverse_questions": [{\n'
        '    "question_text": "natural, conversational question",\n'
        '    "ci_fact_used": "the research fact it builds on",\n'
        '    "ci_source_type": "strategic_advantage|recent_development|competitive_comparison|growth_area",\n'
        '    "why_this_works": "one sentence",\n'
        '    "green_flags": ["..."],\n'
        '    "red_flags": ["..."],\n'
        '    "best_timing": "opening|mid_conversation|closing"\n'
        "  }]\n"
        "}"
    )
