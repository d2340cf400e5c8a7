"""
Research & intelligence.

One grounded search call carries the whole query batch; the answer is parsed
into RoleResearch with the tolerant JSON parser. Any failure degrades to
``basic_role_analysis``, a deterministic function of the JobRecord.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from prepgen.core.exceptions import AppError
from prepgen.core.prompts import research_prompt, research_queries
from prepgen.schemas.curriculum import (
    CompanyContext,
    CompetitiveIntelligence,
    InterviewProcess,
    JobRecord,
    MarketIntelligence,
    RolePattern,
)
from prepgen.schemas.llm import RoleResearch
from prepgen.services.pipeline.llm_parser import parse_llm_response

logger = logging.getLogger(__name__)

MIN_TYPICAL_ROUNDS = 1
MAX_TYPICAL_ROUNDS = 8
DEFAULT_TYPICAL_ROUNDS = 4
BASIC_INTERVIEW_FORMATS = ["behavioral", "technical", "case study"]


@dataclass
class ResearchResult:
    role_patterns: RolePattern
    company_context: CompanyContext
    market_intelligence: MarketIntelligence
    competitive_intelligence: CompetitiveIntelligence
    citations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _clamp_rounds(value: Optional[int]) -> int:
    if value is None:
        return DEFAULT_TYPICAL_ROUNDS
    return max(MIN_TYPICAL_ROUNDS, min(MAX_TYPICAL_ROUNDS, value))


def basic_role_analysis(
    job: JobRecord,
    company: Optional[CompanyContext] = None,
    reason: str = "",
) -> ResearchResult:
    """Deterministic research fallback derived purely from the job record."""
    title = job.title or "Professional"
    company_context = company or CompanyContext(name=job.company_name)

    warnings = []
    if reason:
        warnings.append(f"Research failed, using basic analysis: {reason}")

    return ResearchResult(
        role_patterns=RolePattern(
            similar_roles=[f"Senior {title}", f"{title} Lead", f"{title} Manager"],
            typical_rounds=DEFAULT_TYPICAL_ROUNDS,
            focus_areas=list(job.required_skills[:5]),
            interview_formats=list(BASIC_INTERVIEW_FORMATS),
        ),
        company_context=company_context,
        market_intelligence=MarketIntelligence(key_insights=["Standard interview preparation"]),
        competitive_intelligence=CompetitiveIntelligence(),
        warnings=warnings,
    )


def build_research_result(job: JobRecord, research: RoleResearch, company: Optional[CompanyContext]) -> ResearchResult:
    """Map the parsed research answer onto the stage records."""
    typical_rounds = _clamp_rounds(research.typical_rounds)
    competitive = research.competitive_intelligence
    prior_values = company.values if company else []

    company_context = CompanyContext(
        name=job.company_name,
        values=(research.company_values or research.company_insights)[:5] or list(prior_values),
        recent_developments=list(research.company_insights),
        interview_process=InterviewProcess(
            typical_rounds=typical_rounds,
            difficulty_rating=research.interview_difficulty or "7/10",
            green_flags=research.preparation_recommendations[:3],
        ),
        confidence_score=0.9,
    )

    return ResearchResult(
        role_patterns=RolePattern(
            similar_roles=list(research.similar_roles),
            typical_rounds=typical_rounds,
            focus_areas=list(research.focus_areas) or list(job.required_skills[:5]),
            interview_formats=list(research.interview_formats),
        ),
        company_context=company_context,
        market_intelligence=MarketIntelligence(
            salary_range=research.salary_intelligence or "Market competitive",
            difficulty_rating=research.interview_difficulty or "7/10",
            key_insights=research.preparation_recommendations[:5],
            competitive_context=(
                competitive.market_context.competitive_salary_context
                or f"{job.company_name} positioning in current market"
            ),
            market_trends=list(competitive.market_context.market_trends),
        ),
        competitive_intelligence=CompetitiveIntelligence(
            primary_competitors=list(competitive.primary_competitors),
            role_comparison=competitive.role_comparison or f"{job.title} at {job.company_name} compared to market",
            strategic_advantages=list(competitive.strategic_advantages),
            recent_developments=list(competitive.recent_developments),
            competitive_positioning=(
                competitive.competitive_positioning
                or f"{job.company_name} market positioning for {job.title} roles"
            ),
        ),
    )


async def research_role(
    job: JobRecord,
    gateway,
    company: Optional[CompanyContext] = None,
    now: Optional[datetime] = None,
) -> ResearchResult:
    """
    Run the combined research call.

    Never raises for provider or parse failures: those return the basic
    analysis with a warning.
    """
    queries = research_queries(job, now=now)
    prompt = research_prompt(job, queries, company)

    try:
        grounded = await gateway.generate_grounded("company_research", prompt, search=True)
        research = parse_llm_response(grounded.text, RoleResearch)
    except AppError as e:
        logger.warning(f"Research failed for {job.company_name}, falling back to basic analysis: {e.message}")
        return basic_role_analysis(job, company, reason=e.message)

    result = build_research_result(job, research, company)
    result.citations = list(grounded.citations)
    logger.info(
        f"Research complete for {job.company_name}: {result.role_patterns.typical_rounds} typical rounds, "
        f"{len(result.citations)} citation(s)"
    )
    return result
