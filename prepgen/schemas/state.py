"""
Pipeline working memory.

One PipelineState is owned by a single orchestrator invocation. Stages never
mutate it in place: they return an update mapping that the orchestrator
applies with ``PipelineState.apply``.
"""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from prepgen.schemas.curriculum import (
    CompanyContext,
    CompetitiveIntelligence,
    JobRecord,
    MarketIntelligence,
    ResumeRecord,
    RolePattern,
    Round,
    Source,
    UnifiedContext,
    UserProfile,
)


class InputType(str, Enum):
    URL = "url"
    TEXT = "text"


class GenerationMode(str, Enum):
    FULL = "full"
    CV_ROUND_ONLY = "cv-round-only"


class Stage(str, Enum):
    DISCOVER = "discover"
    EXTRACT = "extract"
    RESEARCH = "research"
    SYNTHESIZE = "synthesize"
    GENERATE = "generate"
    EVALUATE = "evaluate"
    REFINE = "refine"
    PERSIST = "persist"
    DONE = "done"


class PipelineState(BaseModel):
    user_input: str
    mode: GenerationMode = GenerationMode.FULL
    input_type: Optional[InputType] = None
    discovered_sources: list[Source] = Field(default_factory=list)
    job_record: Optional[JobRecord] = None
    company_context: Optional[CompanyContext] = None
    role_patterns: Optional[RolePattern] = None
    market_intelligence: Optional[MarketIntelligence] = None
    competitive_intelligence: Optional[CompetitiveIntelligence] = None
    user_profile: Optional[UserProfile] = None
    resume: Optional[ResumeRecord] = None
    unified_context: Optional[UnifiedContext] = None
    rounds: list[Round] = Field(default_factory=list)
    quality_score: Optional[float] = None
    deficiencies: list[str] = Field(default_factory=list)
    best_rounds: list[Round] = Field(default_factory=list)
    best_score: Optional[float] = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    research_citations: list[str] = Field(default_factory=list)
    refinement_attempts: int = 0
    stage: Stage = Stage.DISCOVER

    def apply(self, updates: dict[str, Any]) -> "PipelineState":
        """Return a new state with ``updates`` applied; list-valued errors/warnings are appended."""
        merged = dict(updates)
        for key in ("errors", "warnings"):
            if key in merged:
                merged[key] = [*getattr(self, key), *merged[key]]
        return self.model_copy(update=merged)

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe view of the last good state, attached to halting errors."""
        job = self.job_record
        return {
            "stage": self.stage.value,
            "input_type": self.input_type.value if self.input_type else None,
            "job_title": job.title if job else None,
            "company_name": job.company_name if job else None,
            "research_complete": self.role_patterns is not None,
            "rounds_generated": len(self.rounds),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }
