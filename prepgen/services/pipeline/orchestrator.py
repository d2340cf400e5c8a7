"""
Curriculum pipeline orchestrator.

Stages form an explicit state machine: each handler returns an update mapping
for PipelineState and a pure routing function picks the next Stage. The only
cycle is EVALUATE -> REFINE -> GENERATE, bounded by the refinement cap.

``generate`` runs the two-pass model: a deterministic fast pass that persists
a partial curriculum with a demo round before the id is returned, then a
background slow pass that upserts the full curriculum under the same id.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Set

from prepgen.core.config import Settings
from prepgen.core.exceptions import (
    AppError,
    ConfigurationError,
    NoValidSource,
    PersistenceConflict,
    PersistenceError,
    PipelineError,
    ProviderError,
    error_code,
)
from prepgen.core.logger import correlation_scope, log_async_execution_time, stage_scope
from prepgen.schemas.curriculum import (
    CompanyContext,
    CurriculumFields,
    CurriculumRecord,
    GenerationStatus,
    JobRecord,
    ResumeRecord,
    UserProfile,
)
from prepgen.schemas.state import GenerationMode, PipelineState, Stage
from prepgen.services.persistence.base import CurriculumRepository
from prepgen.services.pipeline.context import synthesize_context
from prepgen.services.pipeline.discovery import discover_sources
from prepgen.services.pipeline.evaluation import QUALITY_BELOW_THRESHOLD, evaluate_rounds
from prepgen.services.pipeline.extraction import extract_job
from prepgen.services.pipeline.generation import build_demo_round, generate_rounds, target_round_count
from prepgen.services.pipeline.research import basic_role_analysis, research_role

logger = logging.getLogger(__name__)

DIFFICULTY_BY_LEVEL = {
    "intern": "beginner",
    "entry": "beginner",
    "junior": "beginner",
    "mid": "intermediate",
    "senior": "advanced",
    "lead": "advanced",
    "staff": "advanced",
    "principal": "advanced",
    "executive": "advanced",
}


@dataclass
class PipelineRun:
    """One slow-pass invocation: the curriculum it writes to and its latest state."""
    curriculum_id: str
    state: PipelineState


StageHandler = Callable[[PipelineRun], Awaitable[dict]]
Router = Callable[[PipelineState], Stage]


def _job_title(job: JobRecord) -> str:
    return f"{job.title} at {job.company_name}"


class CurriculumOrchestrator:
    def __init__(
        self,
        gateway,
        repository: CurriculumRepository,
        quality_threshold: float = 70,
        max_refinement_attempts: int = 2,
        min_rounds: int = 3,
        max_rounds: int = 5,
        seed: int = 0,
        fast_pass_timeout: float = 2.0,
        slow_pass_budget: float = 300.0,
    ):
        if min_rounds < 1 or min_rounds > max_rounds:
            raise ConfigurationError(f"Invalid round bounds: min={min_rounds}, max={max_rounds}")
        if max_refinement_attempts < 0:
            raise ConfigurationError("max_refinement_attempts must not be negative")

        self.gateway = gateway
        self.repository = repository
        self.quality_threshold = quality_threshold
        self.max_refinement_attempts = max_refinement_attempts
        self.min_rounds = min_rounds
        self.max_rounds = max_rounds
        self.seed = seed
        self.fast_pass_timeout = fast_pass_timeout
        self.slow_pass_budget = slow_pass_budget

        self._background: Set[asyncio.Task] = set()

        self._handlers: Dict[Stage, StageHandler] = {
            Stage.DISCOVER: self._discover,
            Stage.EXTRACT: self._extract,
            Stage.RESEARCH: self._research,
            Stage.SYNTHESIZE: self._synthesize,
            Stage.GENERATE: self._generate,
            Stage.EVALUATE: self._evaluate,
            Stage.REFINE: self._refine,
            Stage.PERSIST: self._persist,
        }
        self._transitions: Dict[Stage, Router] = {
            Stage.DISCOVER: lambda state: Stage.EXTRACT,
            Stage.EXTRACT: lambda state: Stage.RESEARCH,
            Stage.RESEARCH: lambda state: Stage.SYNTHESIZE,
            Stage.SYNTHESIZE: lambda state: Stage.GENERATE,
            Stage.GENERATE: lambda state: Stage.EVALUATE,
            Stage.EVALUATE: self._route_after_evaluation,
            Stage.REFINE: lambda state: Stage.GENERATE,
            Stage.PERSIST: lambda state: Stage.DONE,
        }

    @classmethod
    def from_settings(cls, gateway, repository: CurriculumRepository, settings: Settings) -> "CurriculumOrchestrator":
        return cls(
            gateway,
            repository,
            quality_threshold=settings.QUALITY_THRESHOLD,
            max_refinement_attempts=settings.MAX_REFINEMENT_ATTEMPTS,
            min_rounds=settings.MIN_ROUNDS,
            max_rounds=settings.MAX_ROUNDS,
            seed=settings.GENERATION_SEED,
            fast_pass_timeout=settings.FAST_PASS_TIMEOUT_SECONDS,
            slow_pass_budget=settings.SLOW_PASS_BUDGET_SECONDS,
        )

    # ------------------------------------------------------------------
    # Inbound trigger / status contract
    # ------------------------------------------------------------------

    async def generate(
        self,
        user_input: str,
        mode: GenerationMode = GenerationMode.FULL,
        user_profile: Optional[UserProfile] = None,
        resume: Optional[ResumeRecord] = None,
        existing_curriculum_id: Optional[str] = None,
    ) -> str:
        """
        Run the fast pass, schedule the slow pass, and return the curriculum id.

        Raises PipelineError if the fast pass fails; no id is issued then.
        """
        curriculum_id = existing_curriculum_id or str(uuid.uuid4())

        with correlation_scope(curriculum_id):
            await self._run_fast_pass(
                curriculum_id, user_input, resume, create_only=existing_curriculum_id is None
            )
            task = asyncio.create_task(
                self._slow_pass(curriculum_id, user_input, mode, user_profile, resume),
                name=f"slow-pass-{curriculum_id}",
            )
        self._background.add(task)
        task.add_done_callback(self._on_slow_pass_done)
        return curriculum_id

    async def run(
        self,
        user_input: str,
        mode: GenerationMode = GenerationMode.FULL,
        user_profile: Optional[UserProfile] = None,
        resume: Optional[ResumeRecord] = None,
        existing_curriculum_id: Optional[str] = None,
    ) -> PipelineRun:
        """Both passes in the foreground; returns the finished run."""
        curriculum_id = existing_curriculum_id or str(uuid.uuid4())
        with correlation_scope(curriculum_id):
            await self._run_fast_pass(
                curriculum_id, user_input, resume, create_only=existing_curriculum_id is None
            )
            return await self._slow_pass(curriculum_id, user_input, mode, user_profile, resume)

    def _on_slow_pass_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"{task.get_name()} ended with an unhandled error: {task.exception()!r}")

    async def get_curriculum(self, curriculum_id: str) -> CurriculumRecord:
        return await self.repository.get_curriculum(curriculum_id)

    async def drain(self) -> None:
        """Wait for every scheduled slow pass to finish."""
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.drain()

    # ------------------------------------------------------------------
    # Fast pass
    # ------------------------------------------------------------------

    async def _run_fast_pass(
        self,
        curriculum_id: str,
        user_input: str,
        resume: Optional[ResumeRecord],
        create_only: bool,
    ) -> None:
        try:
            await asyncio.wait_for(
                self._fast_pass(curriculum_id, user_input, resume, create_only),
                timeout=self.fast_pass_timeout,
            )
        except asyncio.TimeoutError as e:
            raise PipelineError(
                f"Fast pass exceeded {self.fast_pass_timeout}s",
                stage="fast_pass",
                code="PIPELINE_TIMEOUT",
                retryable=True,
            ) from e
        except NoValidSource as e:
            raise PipelineError(e.message, stage=Stage.DISCOVER.value, code=error_code(e)) from e
        except PersistenceConflict as e:
            raise PipelineError(e.message, stage=Stage.PERSIST.value, code=error_code(e)) from e
        except AppError as e:
            raise PipelineError(e.message, stage="fast_pass", code=error_code(e), retryable=True) from e

    @log_async_execution_time
    async def _fast_pass(
        self,
        curriculum_id: str,
        user_input: str,
        resume: Optional[ResumeRecord],
        create_only: bool,
    ) -> None:
        """Deterministic: discovery plus a demo round, no provider calls."""
        input_type, sources = discover_sources(user_input)
        data = sources[0].data or {}
        title, company = data.get("title"), data.get("company")

        if title and company:
            curriculum_title = f"{title} at {company}"
        elif title:
            curriculum_title = title
        else:
            curriculum_title = "Interview preparation"

        await self.repository.upsert_curriculum(
            curriculum_id,
            CurriculumFields(
                title=curriculum_title,
                overview="Your CV walkthrough is ready; the full curriculum is being prepared.",
                generation_status=GenerationStatus.PARTIAL,
                discovery_metadata={
                    "input_type": input_type.value,
                    "sources": [source.model_dump(mode="json") for source in sources],
                },
            ),
            create_only=create_only,
        )
        await self.repository.upsert_rounds(
            curriculum_id, [build_demo_round(resume, company)], status=GenerationStatus.PARTIAL
        )
        logger.info(f"Fast pass stored partial curriculum {curriculum_id}")

    # ------------------------------------------------------------------
    # Slow pass
    # ------------------------------------------------------------------

    @log_async_execution_time
    async def _slow_pass(
        self,
        curriculum_id: str,
        user_input: str,
        mode: GenerationMode,
        user_profile: Optional[UserProfile],
        resume: Optional[ResumeRecord],
    ) -> PipelineRun:
        run = PipelineRun(
            curriculum_id=curriculum_id,
            state=PipelineState(user_input=user_input, mode=mode, user_profile=user_profile, resume=resume),
        )
        with correlation_scope(curriculum_id):
            try:
                await asyncio.wait_for(self._execute(run), timeout=self.slow_pass_budget)
                logger.info(f"Slow pass completed curriculum {curriculum_id}")
            except asyncio.TimeoutError:
                logger.warning(f"Slow pass for {curriculum_id} exceeded {self.slow_pass_budget}s; leaving it partial")
                run.state = run.state.apply({
                    "warnings": [f"PIPELINE_TIMEOUT: slow pass exceeded {self.slow_pass_budget}s at {run.state.stage.value}"],
                })
                await self._record_incomplete(run)
            except PipelineError as e:
                logger.error(f"Slow pass halted at {e.stage} ({e.code}): {e.message}")
                await self._record_incomplete(run)
            except Exception as e:
                logger.error(
                    f"Slow pass for {curriculum_id} failed at {run.state.stage.value}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                run.state = run.state.apply({"errors": [f"INTERNAL_ERROR: {type(e).__name__}: {e}"]})
                await self._record_incomplete(run)
        return run

    async def _record_incomplete(self, run: PipelineRun) -> None:
        """Persist errors/warnings while keeping the fast-pass curriculum usable."""
        try:
            await self.repository.upsert_curriculum(
                run.curriculum_id,
                CurriculumFields(
                    generation_status=GenerationStatus.PARTIAL,
                    errors=run.state.errors,
                    warnings=run.state.warnings,
                ),
            )
        except Exception as e:
            logger.error(f"Could not record slow-pass failure for {run.curriculum_id}: {type(e).__name__}: {e}")

    async def _execute(self, run: PipelineRun) -> PipelineState:
        stage = run.state.stage
        while stage != Stage.DONE:
            handler = self._handlers[stage]
            try:
                with stage_scope(stage.value):
                    updates = await handler(run)
            except AppError as e:
                code = error_code(e)
                run.state = run.state.apply({"errors": [f"{code}: {e.message}"]})
                raise PipelineError(
                    e.message,
                    stage=stage.value,
                    code=code,
                    retryable=isinstance(e, (ProviderError, PersistenceError)),
                    partial_state=run.state.snapshot(),
                ) from e

            run.state = run.state.apply(updates)
            next_stage = self._transitions[stage](run.state)
            logger.debug(f"Transition {stage.value} -> {next_stage.value}")
            run.state = run.state.apply({"stage": next_stage})
            stage = next_stage
        return run.state

    # ------------------------------------------------------------------
    # Stage handlers
    # ------------------------------------------------------------------

    @log_async_execution_time
    async def _discover(self, run: PipelineRun) -> dict:
        input_type, sources = discover_sources(run.state.user_input)
        return {"input_type": input_type, "discovered_sources": sources}

    @log_async_execution_time
    async def _extract(self, run: PipelineRun) -> dict:
        job, warnings = await extract_job(run.state.discovered_sources, self.gateway)
        return {
            "job_record": job,
            "company_context": CompanyContext(name=job.company_name),
            "warnings": warnings,
        }

    @log_async_execution_time
    async def _research(self, run: PipelineRun) -> dict:
        state = run.state
        if state.mode == GenerationMode.CV_ROUND_ONLY:
            result = basic_role_analysis(state.job_record, state.company_context)
        else:
            result = await research_role(state.job_record, self.gateway, state.company_context)
        return {
            "role_patterns": result.role_patterns,
            "company_context": result.company_context,
            "market_intelligence": result.market_intelligence,
            "competitive_intelligence": result.competitive_intelligence,
            "research_citations": result.citations,
            "warnings": result.warnings,
        }

    @log_async_execution_time
    async def _synthesize(self, run: PipelineRun) -> dict:
        state = run.state
        context = synthesize_context(
            state.job_record,
            company=state.company_context,
            resume=state.resume,
            profile=state.user_profile,
            competitive=state.competitive_intelligence,
            role_patterns=state.role_patterns,
        )
        return {"unified_context": context}

    @log_async_execution_time
    async def _generate(self, run: PipelineRun) -> dict:
        state = run.state
        count = target_round_count(state.mode, state.role_patterns, self.min_rounds, self.max_rounds)
        rounds, warnings = await generate_rounds(
            state.unified_context,
            state.role_patterns,
            count,
            self.gateway,
            seed=self.seed,
            competitive=state.competitive_intelligence,
            deficiencies=state.deficiencies if state.refinement_attempts else (),
        )
        return {"rounds": rounds, "warnings": warnings}

    @log_async_execution_time
    async def _evaluate(self, run: PipelineRun) -> dict:
        state = run.state
        score, deficiencies = evaluate_rounds(state.rounds, state.unified_context)
        logger.info(f"Quality score {score} (attempt {state.refinement_attempts})")

        updates = {"quality_score": score, "deficiencies": deficiencies}
        if state.best_score is None or score > state.best_score:
            updates.update(best_rounds=state.rounds, best_score=score)
        return updates

    def _route_after_evaluation(self, state: PipelineState) -> Stage:
        if state.quality_score is not None and state.quality_score >= self.quality_threshold:
            return Stage.PERSIST
        if state.refinement_attempts < self.max_refinement_attempts:
            return Stage.REFINE
        return Stage.PERSIST

    @log_async_execution_time
    async def _refine(self, run: PipelineRun) -> dict:
        attempts = run.state.refinement_attempts + 1
        logger.info(f"Refining rounds (attempt {attempts}/{self.max_refinement_attempts})")
        return {"refinement_attempts": attempts}

    @log_async_execution_time
    async def _persist(self, run: PipelineRun) -> dict:
        state = run.state
        job = state.job_record
        rounds = state.best_rounds or state.rounds
        score = state.best_score if state.best_score is not None else (state.quality_score or 0.0)

        warnings = []
        if score < self.quality_threshold:
            warnings.append(
                f"{QUALITY_BELOW_THRESHOLD}: best score {score} after "
                f"{state.refinement_attempts} refinement attempt(s)"
            )

        await self.repository.upsert_rounds(
            run.curriculum_id, rounds, replace=True, status=GenerationStatus.COMPLETE
        )
        await self.repository.upsert_curriculum(
            run.curriculum_id,
            CurriculumFields(
                title=_job_title(job),
                overview=(
                    f"{len(rounds)}-round interview preparation for the {job.level} "
                    f"{job.title} role at {job.company_name}."
                ),
                total_rounds=len(rounds),
                difficulty=DIFFICULTY_BY_LEVEL.get(job.level, "intermediate"),
                completeness_score=score,
                generation_status=GenerationStatus.COMPLETE,
                unified_context=state.unified_context.model_dump(mode="json"),
                role_intelligence={
                    "job": job.model_dump(mode="json"),
                    "company_context": state.company_context.model_dump(mode="json"),
                    "role_patterns": state.role_patterns.model_dump(mode="json"),
                    "market_intelligence": state.market_intelligence.model_dump(mode="json"),
                    "competitive_intelligence": state.competitive_intelligence.model_dump(mode="json"),
                    "citations": list(state.research_citations),
                },
                discovery_metadata={
                    "input_type": state.input_type.value,
                    "sources": [source.model_dump(mode="json") for source in state.discovered_sources],
                },
                errors=list(state.errors),
                warnings=[*state.warnings, *warnings],
            ),
        )
        return {"rounds": rounds, "quality_score": score, "warnings": warnings}
