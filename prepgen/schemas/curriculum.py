from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# --- Discovery ---

class SourcePriority(str, Enum):
    CORE = "core"
    DYNAMIC = "dynamic"


class SourceValidation(BaseModel):
    is_useful: bool = Field(..., description="Whether the source can feed job extraction.")
    confidence: float = Field(..., ge=0.0, le=1.0)


class Source(BaseModel):
    """A candidate job source. Frozen once validated."""
    model_config = {"frozen": True}

    url: Optional[str] = None
    source_type: str = Field(..., description="'official' for a posted URL, 'description' for free text.")
    trust_score: float = Field(..., ge=0.0, le=1.0)
    priority: SourcePriority = SourcePriority.CORE
    data: Optional[dict[str, Any]] = Field(default=None, description="Prefetched structured payload, if any.")
    validation: Optional[SourceValidation] = None

    @property
    def has_url(self) -> bool:
        return bool(self.url and self.url.startswith(("http://", "https://")))


# --- Job / company intelligence ---

class JobRecord(BaseModel):
    """Canonical extracted job. Created once per run and never mutated."""
    model_config = {"frozen": True}

    title: str
    company_name: str
    level: str = "mid"
    responsibilities: list[str] = Field(default_factory=list)
    required_skills: list[str] = Field(default_factory=list)
    preferred_skills: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    work_arrangement: str = "unspecified"
    parsing_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    source_url: Optional[str] = None
    extraction_timestamp: datetime = Field(default_factory=utc_now)


class InterviewProcess(BaseModel):
    typical_rounds: Optional[int] = None
    difficulty_rating: Optional[str] = None
    green_flags: list[str] = Field(default_factory=list)


class CompanyContext(BaseModel):
    name: str
    values: list[str] = Field(default_factory=list)
    recent_developments: list[str] = Field(default_factory=list)
    interview_process: InterviewProcess = Field(default_factory=InterviewProcess)
    confidence_score: float = Field(default=0.3, ge=0.0, le=1.0)


class RolePattern(BaseModel):
    similar_roles: list[str] = Field(default_factory=list)
    typical_rounds: int = 4
    focus_areas: list[str] = Field(default_factory=list)
    interview_formats: list[str] = Field(default_factory=list)


class MarketIntelligence(BaseModel):
    salary_range: str = "Market competitive"
    difficulty_rating: str = "7/10"
    preparation_time: str = "2-3 weeks recommended"
    key_insights: list[str] = Field(default_factory=list)
    competitive_context: Optional[str] = None
    market_trends: list[str] = Field(default_factory=list)


class CompetitiveIntelligence(BaseModel):
    primary_competitors: list[str] = Field(default_factory=list)
    role_comparison: str = "Limited competitive data available"
    strategic_advantages: list[str] = Field(default_factory=list)
    recent_developments: list[str] = Field(default_factory=list)
    competitive_positioning: str = "Standard market positioning"


# --- Candidate inputs (supplied by upstream collaborators) ---

class WorkExperience(BaseModel):
    company: str
    position: str
    duration: Optional[str] = None
    responsibilities: list[str] = Field(default_factory=list)


class ResumeRecord(BaseModel):
    """Structured résumé produced by the upstream OCR / résumé analysis service."""
    full_name: Optional[str] = None
    current_role: Optional[str] = None
    years_of_experience: Optional[float] = None
    experience_level: Optional[str] = None
    technical_skills: list[str] = Field(default_factory=list)
    soft_skills: list[str] = Field(default_factory=list)
    experience: list[WorkExperience] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    skill_gaps: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list)
    match_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class UserProfile(BaseModel):
    """Free-text answers from the personalization form."""
    excitement: Optional[str] = None
    concerns: Optional[str] = None
    weak_areas: list[str] = Field(default_factory=list)
    background_context: Optional[str] = None
    preparation_goals: Optional[str] = None


# --- Personalization ---

class UnifiedContext(BaseModel):
    """
    Merged personalization object consumed by round generation.

    Every field has a default so that a context built from nothing but a job
    record is still complete.
    """
    role_title: str
    company_name: str
    seniority: str = "mid"
    key_requirements: list[str] = Field(default_factory=list)
    company_values: list[str] = Field(default_factory=list)
    candidate_summary: str = "No résumé provided"
    strength_amplifiers: list[str] = Field(default_factory=list)
    gap_bridges: list[str] = Field(default_factory=list)
    confidence_builders: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)
    ci_integration_strategy: str = "Weave company research naturally into answers about motivation and fit"
    personalized_approach: str = "Professional and supportive guidance"
    excitement: Optional[str] = None
    concerns: Optional[str] = None
    weak_areas: list[str] = Field(default_factory=list)
    preparation_goals: Optional[str] = None
    has_resume: bool = False


# --- Rounds ---

class RoundType(str, Enum):
    RECRUITER_SCREEN = "recruiter_screen"
    BEHAVIORAL_DEEP_DIVE = "behavioral_deep_dive"
    STRATEGIC_ROLE_DISCUSSION = "strategic_role_discussion"
    CULTURE_VALUES_ALIGNMENT = "culture_values_alignment"
    EXECUTIVE_FINAL = "executive_final"


class InterviewerPersona(BaseModel):
    name: str
    role: str
    tenure: str = "3 years"
    personality_traits: list[str] = Field(default_factory=list)
    communication_style: str = "conversational"


class RoundTopic(BaseModel):
    topic: str
    subtopics: list[str] = Field(default_factory=list)
    time_allocation: int = Field(default=5, description="Minutes.")


class ReverseQuestionTiming(str, Enum):
    OPENING = "opening"
    MID_CONVERSATION = "mid_conversation"
    CLOSING = "closing"


class ReverseQuestion(BaseModel):
    """A question the candidate asks the interviewer, anchored on one researched fact."""
    question_text: str
    ci_fact_used: str = Field(..., description="Company research fact the question builds on.")
    ci_source_type: str = Field(
        default="strategic_advantage",
        description="strategic_advantage, recent_development, competitive_comparison, company_value or growth_area.",
    )
    why_this_works: str = ""
    green_flags: list[str] = Field(default_factory=list, description="Signals worth hearing in the answer.")
    red_flags: list[str] = Field(default_factory=list, description="Signals that warrant a follow-up.")
    best_timing: ReverseQuestionTiming = ReverseQuestionTiming.CLOSING


class StandardQuestionPrep(BaseModel):
    question: str
    why_asked: str = ""
    approach: str = ""
    key_points: list[str] = Field(default_factory=list)


class CandidatePrepGuide(BaseModel):
    expected_questions: list[str] = Field(default_factory=list)
    talking_points: list[str] = Field(default_factory=list)
    great_answer_signals: list[str] = Field(default_factory=list, description="What a great answer sounds like.")
    standard_questions_prep: list[StandardQuestionPrep] = Field(default_factory=list)
    reverse_questions: list[ReverseQuestion] = Field(default_factory=list, description="Three to five per round.")


class Round(BaseModel):
    round_number: int = Field(..., ge=1)
    round_type: RoundType
    title: str
    duration_minutes: int
    interviewer_persona: InterviewerPersona
    topics_to_cover: list[RoundTopic] = Field(default_factory=list)
    candidate_prep_guide: CandidatePrepGuide = Field(default_factory=CandidatePrepGuide)


# --- Persisted aggregate ---

class GenerationStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [GenerationStatus.PENDING, GenerationStatus.PARTIAL, GenerationStatus.COMPLETE]


class CurriculumFields(BaseModel):
    """
    Field set written by one persistence call.

    Unset fields are left untouched in storage, so the slow pass never has to
    resend what the fast pass already wrote.
    """
    title: Optional[str] = None
    overview: Optional[str] = None
    total_rounds: Optional[int] = None
    difficulty: Optional[str] = None
    completeness_score: Optional[float] = None
    generation_status: Optional[GenerationStatus] = None
    unified_context: Optional[dict[str, Any]] = None
    role_intelligence: Optional[dict[str, Any]] = None
    discovery_metadata: Optional[dict[str, Any]] = None
    errors: Optional[list[str]] = None
    warnings: Optional[list[str]] = None


class CurriculumRecord(BaseModel):
    id: str
    title: str = ""
    overview: str = ""
    total_rounds: int = 0
    difficulty: str = "intermediate"
    completeness_score: float = 0.0
    generation_status: GenerationStatus = GenerationStatus.PENDING
    unified_context: Optional[dict[str, Any]] = None
    role_intelligence: Optional[dict[str, Any]] = None
    discovery_metadata: Optional[dict[str, Any]] = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    rounds: list[Round] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
