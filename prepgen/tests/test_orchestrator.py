import asyncio
import logging

import pytest

from prepgen.core.config import Settings
from prepgen.core.exceptions import ConfigurationError, PipelineError
from prepgen.schemas.curriculum import CurriculumFields, GenerationStatus, JobRecord, ResumeRecord, RoundType
from prepgen.schemas.state import GenerationMode, Stage
from prepgen.services.persistence.memory import InMemoryCurriculumRepository
from prepgen.services.pipeline.context import synthesize_context
from prepgen.services.pipeline.evaluation import QUALITY_BELOW_THRESHOLD
from prepgen.services.pipeline.generation import template_round
from prepgen.services.pipeline.orchestrator import CurriculumOrchestrator
from prepgen.tests.fakes import NETFLIX_JOB, POOR_ROUND, FakeProvider, make_gateway, netflix_provider

logger = logging.getLogger(__name__)

NETFLIX_INPUT = "Senior Data Scientist at Netflix"


class FlakyRepository(InMemoryCurriculumRepository):
    """Loses its connection on the n-th round write."""

    def __init__(self, fail_on_call: int):
        super().__init__()
        self.fail_on_call = fail_on_call
        self.round_writes = 0

    async def upsert_rounds(self, curriculum_id, rounds, replace=False, status=None):
        self.round_writes += 1
        if self.round_writes == self.fail_on_call:
            raise RuntimeError("database connection lost")
        await super().upsert_rounds(curriculum_id, rounds, replace=replace, status=status)


def _orchestrator(provider, **kwargs):
    repository = InMemoryCurriculumRepository()
    return CurriculumOrchestrator(make_gateway([provider]), repository, **kwargs), repository


def test_fast_pass_then_slow_pass_completes_curriculum():
    provider = netflix_provider()
    orchestrator, repository = _orchestrator(provider)

    async def scenario():
        curriculum_id = await orchestrator.generate(NETFLIX_INPUT)
        partial = await orchestrator.get_curriculum(curriculum_id)
        await orchestrator.drain()
        complete = await orchestrator.get_curriculum(curriculum_id)
        return curriculum_id, partial, complete

    curriculum_id, partial, complete = asyncio.run(scenario())
    logger.info(f"Generated curriculum {curriculum_id}: score {complete.completeness_score}")

    assert partial.generation_status == GenerationStatus.PARTIAL
    assert partial.title == "Senior Data Scientist at Netflix"
    assert [round_.title for round_ in partial.rounds] == ["CV Walkthrough (Demo)"]
    assert partial.discovery_metadata["input_type"] == "text"

    assert complete.id == curriculum_id
    assert complete.generation_status == GenerationStatus.COMPLETE
    assert 3 <= len(complete.rounds) <= 5
    assert complete.total_rounds == len(complete.rounds) == 4
    assert [round_.round_number for round_ in complete.rounds] == [1, 2, 3, 4]
    assert complete.completeness_score >= 70
    assert complete.difficulty == "advanced"
    assert complete.errors == []
    assert complete.role_intelligence["citations"] == ["https://jobs.netflix.com/culture"]
    assert complete.role_intelligence["role_patterns"]["typical_rounds"] == 4
    assert complete.unified_context["company_name"] == "Netflix"
    assert complete.created_at == partial.created_at


def test_run_returns_final_state():
    orchestrator, _ = _orchestrator(netflix_provider())

    run = asyncio.run(orchestrator.run(NETFLIX_INPUT))

    assert run.state.stage == Stage.DONE
    assert run.state.refinement_attempts == 0
    assert run.state.job_record.company_name == "Netflix"
    assert len(run.state.rounds) == 4


def test_refinement_is_bounded_and_flags_low_quality():
    provider = netflix_provider(round_answer=POOR_ROUND)
    orchestrator, repository = _orchestrator(provider, max_refinement_attempts=2)

    async def scenario():
        run = await orchestrator.run(NETFLIX_INPUT)
        return run, await repository.get_curriculum(run.curriculum_id)

    run, record = asyncio.run(scenario())

    assert run.state.refinement_attempts == 2
    assert provider.calls["complete_json"] == 1 + 3 * 4
    assert record.generation_status == GenerationStatus.COMPLETE
    assert record.completeness_score < 70
    assert any(warning.startswith(QUALITY_BELOW_THRESHOLD) for warning in record.warnings)
    refined_prompts = [prompt for prompt in provider.prompts if "A previous draft" in prompt]
    assert len(refined_prompts) == 2 * 4


def test_refinement_disabled():
    provider = netflix_provider(round_answer=POOR_ROUND)
    orchestrator, _ = _orchestrator(provider, max_refinement_attempts=0)

    run = asyncio.run(orchestrator.run(NETFLIX_INPUT))

    assert run.state.refinement_attempts == 0
    assert provider.calls["complete_json"] == 1 + 4


def test_every_provider_failing_still_completes_with_fallbacks():
    provider = FakeProvider("primary", always_fail=ValueError("upstream exploded"))
    orchestrator, repository = _orchestrator(provider)

    async def scenario():
        run = await orchestrator.run(NETFLIX_INPUT)
        return await repository.get_curriculum(run.curriculum_id)

    record = asyncio.run(scenario())

    assert record.generation_status == GenerationStatus.COMPLETE
    assert len(record.rounds) == 4
    assert record.role_intelligence["job"]["parsing_confidence"] == 0.3
    assert "Using fallback job parsing due to provider failure" in record.warnings
    assert any(warning.startswith("Research failed, using basic analysis") for warning in record.warnings)
    assert sum(warning.startswith("Round ") for warning in record.warnings) == 4


def test_invalid_input_halts_before_an_id_is_issued():
    orchestrator, repository = _orchestrator(netflix_provider())

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(orchestrator.generate("   "))

    error = excinfo.value
    assert error.stage == "discover"
    assert error.code == "NO_VALID_SOURCE"
    assert error.retryable is False
    assert orchestrator._background == set()


def test_regenerating_a_completed_curriculum_conflicts():
    orchestrator, repository = _orchestrator(netflix_provider())

    async def scenario():
        curriculum_id = await orchestrator.generate(NETFLIX_INPUT)
        await orchestrator.drain()
        return curriculum_id

    curriculum_id = asyncio.run(scenario())

    async def regenerate():
        await orchestrator.generate(NETFLIX_INPUT, existing_curriculum_id=curriculum_id)
        await orchestrator.drain()

    # partial fast-pass write over a complete curriculum
    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(regenerate())
    assert excinfo.value.code == "PERSISTENCE_CONFLICT"


def test_slow_pass_timeout_leaves_curriculum_partial():
    provider = netflix_provider(delay=0.5)
    orchestrator, repository = _orchestrator(provider, slow_pass_budget=0.1)

    async def scenario():
        run = await orchestrator.run(NETFLIX_INPUT)
        return run, await repository.get_curriculum(run.curriculum_id)

    run, record = asyncio.run(scenario())

    assert record.generation_status == GenerationStatus.PARTIAL
    assert [round_.title for round_ in record.rounds] == ["CV Walkthrough (Demo)"]
    assert any(warning.startswith("PIPELINE_TIMEOUT") for warning in record.warnings)


def test_datastore_failure_in_slow_pass_is_recorded():
    repository = FlakyRepository(fail_on_call=2)
    orchestrator = CurriculumOrchestrator(make_gateway([netflix_provider()]), repository)

    async def scenario():
        curriculum_id = await orchestrator.generate(NETFLIX_INPUT)
        await orchestrator.drain()
        return await repository.get_curriculum(curriculum_id)

    record = asyncio.run(scenario())

    assert record.generation_status == GenerationStatus.PARTIAL
    assert record.errors == ["INTERNAL_ERROR: RuntimeError: database connection lost"]
    assert [round_.title for round_ in record.rounds] == ["CV Walkthrough (Demo)"]
    assert orchestrator._background == set()


def test_regenerating_replaces_rounds_from_an_unfinished_run():
    context = synthesize_context(JobRecord(**NETFLIX_JOB))
    orchestrator, repository = _orchestrator(netflix_provider())

    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(generation_status=GenerationStatus.PARTIAL))
        await repository.upsert_rounds("c1", [
            template_round(number, RoundType.BEHAVIORAL_DEEP_DIVE, context, None, None, seed=0)
            for number in range(1, 6)
        ])
        await orchestrator.run(NETFLIX_INPUT, mode=GenerationMode.CV_ROUND_ONLY, existing_curriculum_id="c1")
        return await repository.get_curriculum("c1")

    record = asyncio.run(scenario())

    assert record.generation_status == GenerationStatus.COMPLETE
    assert record.total_rounds == 1
    assert [round_.round_number for round_ in record.rounds] == [1]
    assert record.rounds[0].round_type == RoundType.RECRUITER_SCREEN


def test_cv_round_only_generates_single_round_without_research():
    provider = netflix_provider()
    orchestrator, repository = _orchestrator(provider)
    resume = ResumeRecord(current_role="Data Analyst", technical_skills=["Python"])

    async def scenario():
        run = await orchestrator.run(NETFLIX_INPUT, mode=GenerationMode.CV_ROUND_ONLY, resume=resume)
        return await repository.get_curriculum(run.curriculum_id)

    record = asyncio.run(scenario())

    assert record.generation_status == GenerationStatus.COMPLETE
    assert len(record.rounds) == 1
    assert record.rounds[0].round_type == RoundType.RECRUITER_SCREEN
    assert record.total_rounds == 1
    assert provider.calls["ground"] == 0
    assert record.unified_context["has_resume"] is True


def test_concurrent_requests_share_the_gateway():
    orchestrator, _ = _orchestrator(netflix_provider())

    async def scenario():
        ids = await asyncio.gather(
            orchestrator.generate(NETFLIX_INPUT),
            orchestrator.generate("Backend Engineer @ Stripe"),
        )
        await orchestrator.drain()
        return [await orchestrator.get_curriculum(curriculum_id) for curriculum_id in ids]

    records = asyncio.run(scenario())

    assert records[0].id != records[1].id
    assert all(record.generation_status == GenerationStatus.COMPLETE for record in records)


@pytest.mark.parametrize("kwargs", [
    {"min_rounds": 0},
    {"min_rounds": 6, "max_rounds": 5},
    {"max_refinement_attempts": -1},
])
def test_invalid_policy_is_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        CurriculumOrchestrator(make_gateway([netflix_provider()]), InMemoryCurriculumRepository(), **kwargs)


def test_from_settings():
    settings = Settings(QUALITY_THRESHOLD=80, MAX_ROUNDS=4, GENERATION_SEED=3)

    orchestrator = CurriculumOrchestrator.from_settings(
        make_gateway([netflix_provider()]), InMemoryCurriculumRepository(), settings
    )

    assert orchestrator.quality_threshold == 80
    assert orchestrator.max_rounds == 4
    assert orchestrator.seed == 3
