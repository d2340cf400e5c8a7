"""Request/response bodies of the HTTP surface."""
from typing import Optional

from pydantic import BaseModel, Field

from prepgen.schemas.curriculum import GenerationStatus, ResumeRecord, UserProfile
from prepgen.schemas.state import GenerationMode


class GenerateCurriculumRequest(BaseModel):
    input: str = Field(..., description="Job posting URL or a 'Role at Company' description.")
    mode: GenerationMode = GenerationMode.FULL
    user_profile: Optional[UserProfile] = None
    resume: Optional[ResumeRecord] = Field(default=None, description="Structured résumé from the CV analysis service.")
    existing_curriculum_id: Optional[str] = None


class GenerateCurriculumResponse(BaseModel):
    curriculum_id: str
    generation_status: GenerationStatus
