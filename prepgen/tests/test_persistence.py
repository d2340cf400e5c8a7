import asyncio

import pytest

from prepgen.core.exceptions import CurriculumNotFound, PersistenceConflict, PersistenceError
from prepgen.schemas.curriculum import CurriculumFields, GenerationStatus, JobRecord, RoundType
from prepgen.services.persistence import (
    InMemoryCurriculumRepository,
    SqlCurriculumRepository,
    build_repository,
)
from prepgen.services.persistence.sql import Base
from prepgen.services.pipeline.context import synthesize_context
from prepgen.services.pipeline.generation import build_demo_round, template_round
from prepgen.tests.fakes import NETFLIX_JOB

CONTEXT = synthesize_context(JobRecord(**{**NETFLIX_JOB, "level": "senior", "work_arrangement": "hybrid"}))


def _round(number: int, round_type: RoundType = RoundType.BEHAVIORAL_DEEP_DIVE):
    return template_round(number, round_type, CONTEXT, None, None, seed=0)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        repo = InMemoryCurriculumRepository()
    else:
        repo = SqlCurriculumRepository(f"sqlite:///{tmp_path / 'prepgen.db'}")
    yield repo
    asyncio.run(repo.close())


def test_fast_then_slow_writes_merge(repository):
    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(
            title="Senior Data Scientist at Netflix",
            generation_status=GenerationStatus.PARTIAL,
            discovery_metadata={"input_type": "text"},
        ), create_only=True)
        await repository.upsert_rounds("c1", [build_demo_round()])
        partial = await repository.get_curriculum("c1")

        await repository.upsert_rounds("c1", [_round(3), _round(1, RoundType.RECRUITER_SCREEN), _round(2)])
        await repository.upsert_curriculum("c1", CurriculumFields(
            overview="3-round preparation",
            total_rounds=3,
            completeness_score=91.5,
            generation_status=GenerationStatus.COMPLETE,
            warnings=["Round 2 generated from template: boom"],
        ))
        return partial, await repository.get_curriculum("c1")

    partial, complete = asyncio.run(scenario())

    assert partial.generation_status == GenerationStatus.PARTIAL
    assert partial.total_rounds == 1
    assert partial.rounds[0].title == "CV Walkthrough (Demo)"

    assert complete.generation_status == GenerationStatus.COMPLETE
    assert complete.title == "Senior Data Scientist at Netflix"
    assert complete.discovery_metadata == {"input_type": "text"}
    assert complete.overview == "3-round preparation"
    assert complete.completeness_score == 91.5
    assert complete.warnings == ["Round 2 generated from template: boom"]
    assert [round_.round_number for round_ in complete.rounds] == [1, 2, 3]
    assert complete.rounds[0].round_type == RoundType.RECRUITER_SCREEN
    assert complete.rounds[0].title == "Recruiter Screen"


def test_rewriting_rounds_is_idempotent(repository):
    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(generation_status=GenerationStatus.PARTIAL))
        await repository.upsert_rounds("c1", [_round(1), _round(2)])
        await repository.upsert_rounds("c1", [_round(1), _round(2)])
        return await repository.get_curriculum("c1")

    record = asyncio.run(scenario())

    assert len(record.rounds) == 2


def test_status_never_moves_backward(repository):
    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(generation_status=GenerationStatus.COMPLETE))
        await repository.upsert_curriculum("c1", CurriculumFields(generation_status=GenerationStatus.PARTIAL))

    with pytest.raises(PersistenceConflict):
        asyncio.run(scenario())


def test_same_status_rewrite_is_allowed(repository):
    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(generation_status=GenerationStatus.PARTIAL))
        await repository.upsert_curriculum("c1", CurriculumFields(
            generation_status=GenerationStatus.PARTIAL, errors=["PIPELINE_TIMEOUT: slow pass"]
        ))
        return await repository.get_curriculum("c1")

    record = asyncio.run(scenario())

    assert record.errors == ["PIPELINE_TIMEOUT: slow pass"]


def test_create_only_rejects_id_collision(repository):
    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(title="first"), create_only=True)
        await repository.upsert_curriculum("c1", CurriculumFields(title="second"), create_only=True)

    with pytest.raises(PersistenceConflict):
        asyncio.run(scenario())


def test_unknown_curriculum(repository):
    async def scenario():
        assert not await repository.exists("missing")
        await repository.get_curriculum("missing")

    with pytest.raises(CurriculumNotFound):
        asyncio.run(scenario())


def test_rounds_require_a_curriculum(repository):
    with pytest.raises(CurriculumNotFound):
        asyncio.run(repository.upsert_rounds("missing", [_round(1)]))


def test_replace_drops_rounds_missing_from_the_new_set(repository):
    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(generation_status=GenerationStatus.PARTIAL))
        await repository.upsert_rounds("c1", [_round(number) for number in range(1, 6)])
        await repository.upsert_rounds("c1", [_round(2), _round(1, RoundType.RECRUITER_SCREEN)], replace=True)
        return await repository.get_curriculum("c1")

    record = asyncio.run(scenario())

    assert [round_.round_number for round_ in record.rounds] == [1, 2]
    assert record.rounds[0].round_type == RoundType.RECRUITER_SCREEN


def test_partial_round_write_cannot_land_on_complete_curriculum(repository):
    async def seed():
        await repository.upsert_curriculum("c1", CurriculumFields(generation_status=GenerationStatus.COMPLETE))
        await repository.upsert_rounds("c1", [_round(1), _round(2)], status=GenerationStatus.COMPLETE)

    asyncio.run(seed())

    with pytest.raises(PersistenceConflict):
        asyncio.run(repository.upsert_rounds("c1", [build_demo_round()], status=GenerationStatus.PARTIAL))

    record = asyncio.run(repository.get_curriculum("c1"))
    assert [round_.title for round_ in record.rounds] == ["Behavioral Deep Dive", "Behavioral Deep Dive"]


def test_database_errors_surface_as_persistence_error(tmp_path):
    repository = SqlCurriculumRepository(f"sqlite:///{tmp_path / 'prepgen.db'}")
    Base.metadata.drop_all(repository.engine)

    async def scenario():
        await repository.upsert_curriculum("c1", CurriculumFields(title="lost"))

    with pytest.raises(PersistenceError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.details == {"operation": "upsert_curriculum"}
    asyncio.run(repository.close())


def test_build_repository_selects_adapter(tmp_path):
    assert isinstance(build_repository(""), InMemoryCurriculumRepository)

    sql_repository = build_repository(f"sqlite:///{tmp_path / 'prepgen.db'}")
    assert isinstance(sql_repository, SqlCurriculumRepository)
    asyncio.run(sql_repository.close())
