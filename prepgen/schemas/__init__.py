from .curriculum import (
    CandidatePrepGuide,
    CompanyContext,
    CompetitiveIntelligence,
    CurriculumFields,
    CurriculumRecord,
    GenerationStatus,
    InterviewerPersona,
    JobRecord,
    MarketIntelligence,
    ResumeRecord,
    ReverseQuestion,
    ReverseQuestionTiming,
    RolePattern,
    Round,
    RoundTopic,
    RoundType,
    Source,
    SourcePriority,
    SourceValidation,
    StandardQuestionPrep,
    UnifiedContext,
    UserProfile,
)
from .state import GenerationMode, InputType, PipelineState, Stage

__all__ = [
    "CandidatePrepGuide",
    "CompanyContext",
    "CompetitiveIntelligence",
    "CurriculumFields",
    "CurriculumRecord",
    "GenerationStatus",
    "InterviewerPersona",
    "JobRecord",
    "MarketIntelligence",
    "ResumeRecord",
    "ReverseQuestion",
    "ReverseQuestionTiming",
    "RolePattern",
    "Round",
    "RoundTopic",
    "RoundType",
    "Source",
    "SourcePriority",
    "SourceValidation",
    "StandardQuestionPrep",
    "UnifiedContext",
    "UserProfile",
    "GenerationMode",
    "InputType",
    "PipelineState",
    "Stage",
]
