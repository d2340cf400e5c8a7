from fastapi import Request

from prepgen.services.pipeline.orchestrator import CurriculumOrchestrator


def get_orchestrator(request: Request) -> CurriculumOrchestrator:
    """
    Dependency for the orchestrator built in the application lifespan.
    """
    return request.app.state.orchestrator
