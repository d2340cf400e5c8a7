"""Schemas validated at the provider boundary (raw model JSON -> typed record)."""
from typing import Optional

from pydantic import BaseModel, Field


# --- Grounded extraction ---

class JobExtraction(BaseModel):
    """Schema for structuring grounded job text into a job record."""
    title: str = Field(..., description="Exact job title from the posting.")
    company_name: str = Field(..., description="Hiring company.")
    level: Optional[str] = Field(
        default=None,
        description="One of: intern/entry/junior/mid/senior/lead/principal/staff/executive.",
    )
    responsibilities: list[str] = Field(default_factory=list)
    required_skills: list[str] = Field(default_factory=list)
    preferred_skills: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    work_arrangement: Optional[str] = Field(default=None, description="One of: onsite/remote/hybrid.")


# --- Research ---

class MarketContext(BaseModel):
    competitive_salary_context: Optional[str] = None
    market_trends: list[str] = Field(default_factory=list)


class CompetitiveFindings(BaseModel):
    primary_competitors: list[str] = Field(default_factory=list)
    role_comparison: Optional[str] = None
    strategic_advantages: list[str] = Field(default_factory=list)
    recent_developments: list[str] = Field(default_factory=list)
    competitive_positioning: Optional[str] = None
    market_context: MarketContext = Field(default_factory=MarketContext)


class RoleResearch(BaseModel):
    """Schema for the combined company / role / market research answer."""
    typical_rounds: Optional[int] = None
    focus_areas: list[str] = Field(default_factory=list)
    interview_formats: list[str] = Field(default_factory=list)
    similar_roles: list[str] = Field(default_factory=list)
    company_values: list[str] = Field(default_factory=list)
    company_insights: list[str] = Field(default_factory=list)
    salary_intelligence: Optional[str] = None
    interview_difficulty: Optional[str] = None
    preparation_recommendations: list[str] = Field(default_factory=list)
    competitive_intelligence: CompetitiveFindings = Field(default_factory=CompetitiveFindings)


# --- Round generation ---

class PersonaContent(BaseModel):
    name: str
    role: str
    tenure: Optional[str] = None
    personality_traits: list[str] = Field(default_factory=list)
    communication_style: Optional[str] = None


class TopicContent(BaseModel):
    topic: str
    subtopics: list[str] = Field(default_factory=list)


class StandardQuestionContent(BaseModel):
    question: str
    why_asked: Optional[str] = None
    approach: Optional[str] = None
    key_points: list[str] = Field(default_factory=list)


class ReverseQuestionContent(BaseModel):
    question_text: str
    ci_fact_used: str
    ci_source_type: Optional[str] = None
    why_this_works: Optional[str] = None
    green_flags: list[str] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)
    best_timing: Optional[str] = Field(default=None, description="One of: opening/mid_conversation/closing.")


class RoundContent(BaseModel):
    """Schema for one generated interview round."""
    title: Optional[str] = None
    interviewer_persona: PersonaContent
    topics: list[TopicContent] = Field(default_factory=list)
    expected_questions: list[str] = Field(default_factory=list)
    talking_points: list[str] = Field(default_factory=list)
    great_answer_signals: list[str] = Field(default_factory=list)
    standard_questions_prep: list[StandardQuestionContent] = Field(default_factory=list)
    reverse_questions: list[ReverseQuestionContent] = Field(default_factory=list)
