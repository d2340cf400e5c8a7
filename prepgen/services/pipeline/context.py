"""
Context synthesis: merge job, company research, résumé and user answers.

Pure and deterministic. Every field of UnifiedContext has a default, so a
missing résumé, profile or research result never leaves the context half-built.
"""
from typing import Iterable, List, Optional

from prepgen.schemas.curriculum import (
    CompanyContext,
    CompetitiveIntelligence,
    JobRecord,
    ResumeRecord,
    RolePattern,
    UnifiedContext,
    UserProfile,
)

DEFAULT_STRENGTH = "Connect previous experience to the role's key requirements"
DEFAULT_GAP_BRIDGE = "Connect previous experience to new role requirements"
DEFAULT_CONFIDENCE_BUILDER = "Frame career transition as strategic growth opportunity"
RESUME_APPROACH = "Supportive coaching approach focusing on transferable skills and growth mindset"

MAX_ITEMS = 5


def _normalize(value: str) -> str:
    return " ".join(value.lower().split())


def _dedupe(items: Iterable[str], limit: int = MAX_ITEMS) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if not item or not item.strip():
            continue
        key = _normalize(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item.strip())
        if len(result) == limit:
            break
    return result


def _skill_overlap(candidate_skills: List[str], required: List[str]) -> List[str]:
    """Required skills the candidate covers, matched case-insensitively in either direction."""
    candidate = [_normalize(skill) for skill in candidate_skills]
    matched = []
    for skill in required:
        needle = _normalize(skill)
        if any(needle == have or needle in have or have in needle for have in candidate if have):
            matched.append(skill)
    return matched


def _candidate_summary(resume: ResumeRecord) -> str:
    parts = []
    if resume.current_role:
        parts.append(resume.current_role)
    if resume.years_of_experience is not None:
        parts.append(f"{resume.years_of_experience:g} years of experience")
    if resume.technical_skills:
        parts.append(f"skills: {', '.join(resume.technical_skills[:5])}")
    return "; ".join(parts) or "Résumé provided"


def synthesize_context(
    job: JobRecord,
    company: Optional[CompanyContext] = None,
    resume: Optional[ResumeRecord] = None,
    profile: Optional[UserProfile] = None,
    competitive: Optional[CompetitiveIntelligence] = None,
    role_patterns: Optional[RolePattern] = None,
) -> UnifiedContext:
    """Build the UnifiedContext for round generation."""
    required = list(job.required_skills)
    focus_areas = _dedupe([
        *(role_patterns.focus_areas if role_patterns else []),
        *required,
        *(profile.weak_areas if profile else []),
    ])

    company_values = list(company.values) if company else []
    ci_strategy = UnifiedContext.model_fields["ci_integration_strategy"].default
    if competitive and competitive.strategic_advantages:
        ci_strategy = (
            f"Reference {job.company_name}'s edge ({competitive.strategic_advantages[0]}) "
            "when explaining motivation and fit"
        )

    if resume is None:
        strengths = [DEFAULT_STRENGTH]
        gaps = _dedupe([DEFAULT_GAP_BRIDGE, *(f"Prepare an example for {area}" for area in (profile.weak_areas if profile else []))])
        return UnifiedContext(
            role_title=job.title,
            company_name=job.company_name,
            seniority=job.level,
            key_requirements=required,
            company_values=company_values,
            strength_amplifiers=strengths,
            gap_bridges=gaps,
            confidence_builders=[DEFAULT_CONFIDENCE_BUILDER],
            focus_areas=focus_areas,
            ci_integration_strategy=ci_strategy,
            excitement=profile.excitement if profile else None,
            concerns=profile.concerns if profile else None,
            weak_areas=list(profile.weak_areas) if profile else [],
            preparation_goals=profile.preparation_goals if profile else None,
            has_resume=False,
        )

    candidate_skills = [*resume.technical_skills, *resume.soft_skills]
    matched = _skill_overlap(candidate_skills, required)
    missing = [skill for skill in required if skill not in matched]

    strengths = _dedupe([
        *(f"Lead with your {skill} experience" for skill in matched),
        *resume.strengths,
    ]) or [DEFAULT_STRENGTH]
    gaps = _dedupe([
        *(f"Show how transferable experience covers {skill}" for skill in missing),
        *(f"Address {gap} with a learning plan" for gap in resume.skill_gaps),
    ]) or [DEFAULT_GAP_BRIDGE]

    confidence = []
    if resume.experience:
        latest = resume.experience[0]
        confidence.append(f"Use your time as {latest.position} at {latest.company} as proof of impact")
    if profile and profile.concerns:
        confidence.append(f"Reframe '{profile.concerns}' as an area of active growth")
    confidence.extend(f"Turn {area} into a growth story" for area in resume.areas_for_improvement)

    return UnifiedContext(
        role_title=job.title,
        company_name=job.company_name,
        seniority=job.level,
        key_requirements=required,
        company_values=company_values,
        candidate_summary=_candidate_summary(resume),
        strength_amplifiers=strengths,
        gap_bridges=gaps,
        confidence_builders=_dedupe(confidence) or [DEFAULT_CONFIDENCE_BUILDER],
        focus_areas=focus_areas,
        ci_integration_strategy=ci_strategy,
        personalized_approach=RESUME_APPROACH,
        excitement=profile.excitement if profile else None,
        concerns=profile.concerns if profile else None,
        weak_areas=list(profile.weak_areas) if profile else [],
        preparation_goals=profile.preparation_goals if profile else None,
        has_resume=True,
    )
