"""
Persistence adapter contract and the merge rules every store shares.

Each call applies one complete field set: fields present in the call replace
stored values, absent fields are preserved, and generation_status only moves
forward (pending < partial < complete). Round writes may state the status
they belong to, which is checked against the stored status the same way.
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from prepgen.core.exceptions import CurriculumNotFound, PersistenceConflict
from prepgen.schemas.curriculum import CurriculumFields, CurriculumRecord, GenerationStatus, Round, utc_now


def check_status_transition(
    curriculum_id: str,
    current: GenerationStatus,
    incoming: Optional[GenerationStatus],
) -> None:
    """Raise PersistenceConflict on a backward status transition."""
    if incoming is None:
        return
    if incoming.rank < current.rank:
        raise PersistenceConflict(
            f"Refusing to move curriculum {curriculum_id} from {current.value} back to {incoming.value}",
            details={"curriculum_id": curriculum_id, "current": current.value, "incoming": incoming.value},
        )


def merge_curriculum(
    curriculum_id: str,
    existing: Optional[CurriculumRecord],
    fields: CurriculumFields,
) -> CurriculumRecord:
    """
    Build the full row that replaces ``existing``.

    ``None`` in ``fields`` means "not supplied"; rounds are merged separately.
    """
    updates = fields.model_dump(exclude_none=True)
    now = utc_now()

    if existing is None:
        return CurriculumRecord(id=curriculum_id, created_at=now, updated_at=now, **updates)

    check_status_transition(curriculum_id, existing.generation_status, fields.generation_status)
    return existing.model_copy(update={**updates, "updated_at": now})


def merge_rounds(existing: Iterable[Round], incoming: Iterable[Round], replace: bool = False) -> List[Round]:
    """
    Replace same-numbered rounds and return them in round-number order.

    Other stored rounds are kept, unless ``replace`` is set: then the incoming
    rounds become the complete set.
    """
    by_number = {} if replace else {round_.round_number: round_ for round_ in existing}
    for round_ in incoming:
        by_number[round_.round_number] = round_
    return [by_number[number] for number in sorted(by_number)]


def with_round_count(record: CurriculumRecord, rounds: List[Round]) -> CurriculumRecord:
    """Attach ordered rounds to a record read back from a store."""
    return record.model_copy(update={
        "rounds": rounds,
        "total_rounds": record.total_rounds or len(rounds),
    })


class CurriculumRepository(ABC):
    """Idempotent store for the curriculum aggregate and its rounds."""

    @abstractmethod
    async def upsert_curriculum(
        self,
        curriculum_id: str,
        fields: CurriculumFields,
        create_only: bool = False,
    ) -> CurriculumRecord:
        """
        Insert or update a curriculum row.

        With ``create_only`` an existing id is an id collision and raises
        ``PersistenceConflict``.
        """

    @abstractmethod
    async def upsert_rounds(
        self,
        curriculum_id: str,
        rounds: List[Round],
        replace: bool = False,
        status: Optional[GenerationStatus] = None,
    ) -> None:
        """
        Upsert rounds keyed by (curriculum_id, round_number).

        With ``replace`` stored rounds missing from ``rounds`` are deleted.
        ``status`` is the generation status the writer produces; a write for an
        earlier status than the stored one raises ``PersistenceConflict``.
        """

    @abstractmethod
    async def get_curriculum(self, curriculum_id: str) -> CurriculumRecord:
        """Read a curriculum with its rounds in round-number order; raises CurriculumNotFound."""

    async def exists(self, curriculum_id: str) -> bool:
        try:
            await self.get_curriculum(curriculum_id)
        except CurriculumNotFound:
            return False
        return True

    async def close(self) -> None:
        return None
