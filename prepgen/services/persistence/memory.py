import asyncio
import logging
from typing import Dict, List, Optional

from prepgen.core.exceptions import CurriculumNotFound, PersistenceConflict
from prepgen.schemas.curriculum import CurriculumFields, CurriculumRecord, GenerationStatus, Round
from prepgen.services.persistence.base import (
    CurriculumRepository,
    check_status_transition,
    merge_curriculum,
    merge_rounds,
    with_round_count,
)

logger = logging.getLogger(__name__)


class InMemoryCurriculumRepository(CurriculumRepository):
    """
    In-process store.

    Every write builds the new row first and swaps it in under one lock, so
    readers never observe a half-applied field set.
    """

    def __init__(self):
        self._curricula: Dict[str, CurriculumRecord] = {}
        self._rounds: Dict[str, List[Round]] = {}
        self._lock = asyncio.Lock()

    async def upsert_curriculum(
        self,
        curriculum_id: str,
        fields: CurriculumFields,
        create_only: bool = False,
    ) -> CurriculumRecord:
        async with self._lock:
            existing = self._curricula.get(curriculum_id)
            if existing is not None and create_only:
                raise PersistenceConflict(
                    f"Curriculum {curriculum_id} already exists",
                    details={"curriculum_id": curriculum_id},
                )
            record = merge_curriculum(curriculum_id, existing, fields)
            self._curricula[curriculum_id] = record
            self._rounds.setdefault(curriculum_id, [])

        logger.debug(f"Upserted curriculum {curriculum_id} ({record.generation_status.value})")
        return record

    async def upsert_rounds(
        self,
        curriculum_id: str,
        rounds: List[Round],
        replace: bool = False,
        status: Optional[GenerationStatus] = None,
    ) -> None:
        async with self._lock:
            record = self._curricula.get(curriculum_id)
            if record is None:
                raise CurriculumNotFound(f"Curriculum {curriculum_id} not found")
            check_status_transition(curriculum_id, record.generation_status, status)
            self._rounds[curriculum_id] = merge_rounds(self._rounds[curriculum_id], rounds, replace=replace)

        logger.debug(f"Upserted {len(rounds)} round(s) for {curriculum_id}")

    async def get_curriculum(self, curriculum_id: str) -> CurriculumRecord:
        async with self._lock:
            record = self._curricula.get(curriculum_id)
            if record is None:
                raise CurriculumNotFound(f"Curriculum {curriculum_id} not found")
            rounds = list(self._rounds.get(curriculum_id, []))
        return with_round_count(record, rounds)
