import logging

from fastapi import APIRouter, Depends, status

from prepgen.api.deps import get_orchestrator
from prepgen.schemas.api import GenerateCurriculumRequest, GenerateCurriculumResponse
from prepgen.schemas.curriculum import CurriculumRecord, GenerationStatus
from prepgen.services.pipeline.orchestrator import CurriculumOrchestrator

# Configure logging
logger = logging.getLogger(__name__)

curriculum_router = APIRouter()


@curriculum_router.post(
    "/curricula",
    response_model=GenerateCurriculumResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_curriculum(
    request: GenerateCurriculumRequest,
    orchestrator: CurriculumOrchestrator = Depends(get_orchestrator),
):
    """
    Start curriculum generation.

    Returns once the fast pass has stored a partial curriculum with a demo
    round; the full curriculum is generated in the background. Poll
    ``GET /curricula/{id}`` until ``generation_status`` is ``complete``.
    """
    curriculum_id = await orchestrator.generate(
        request.input,
        mode=request.mode,
        user_profile=request.user_profile,
        resume=request.resume,
        existing_curriculum_id=request.existing_curriculum_id,
    )
    logger.info(f"Accepted curriculum request {curriculum_id} ({request.mode.value})")
    return GenerateCurriculumResponse(curriculum_id=curriculum_id, generation_status=GenerationStatus.PARTIAL)


@curriculum_router.get("/curricula/{curriculum_id}", response_model=CurriculumRecord)
async def get_curriculum(
    curriculum_id: str,
    orchestrator: CurriculumOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_curriculum(curriculum_id)


@curriculum_router.get("/providers/stats")
async def provider_stats(orchestrator: CurriculumOrchestrator = Depends(get_orchestrator)):
    """Provider routing and health counters."""
    return orchestrator.gateway.stats()
