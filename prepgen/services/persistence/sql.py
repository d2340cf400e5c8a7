"""
SQLAlchemy store: ``curricula`` + ``curriculum_rounds``.

Blocking I/O runs in a worker thread via ``asyncio.to_thread``; each call is
one transaction, so a field set is either fully applied or not at all.
Driver errors surface as ``PersistenceError``.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, TypeVar

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from prepgen.core.exceptions import CurriculumNotFound, PersistenceConflict, PersistenceError
from prepgen.schemas.curriculum import CurriculumFields, CurriculumRecord, GenerationStatus, Round
from prepgen.services.persistence.base import (
    CurriculumRepository,
    check_status_transition,
    merge_curriculum,
    merge_rounds,
    with_round_count,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class CurriculumRow(Base):
    __tablename__ = "curricula"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    overview: Mapped[str] = mapped_column(Text, default="", nullable=False)
    total_rounds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(32), default="intermediate", nullable=False)
    completeness_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    generation_status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    unified_context: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    role_intelligence: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    discovery_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    errors: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    warnings: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    rounds: Mapped[List["RoundRow"]] = relationship(
        back_populates="curriculum",
        cascade="all, delete-orphan",
        order_by="RoundRow.round_number",
    )


class RoundRow(Base):
    __tablename__ = "curriculum_rounds"
    __table_args__ = (UniqueConstraint("curriculum_id", "round_number", name="uq_curriculum_round_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    curriculum_id: Mapped[str] = mapped_column(ForeignKey("curricula.id", ondelete="CASCADE"), index=True)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    round_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    curriculum: Mapped[CurriculumRow] = relationship(back_populates="rounds")


def _to_record(row: CurriculumRow) -> CurriculumRecord:
    return CurriculumRecord(
        id=row.id,
        title=row.title,
        overview=row.overview,
        total_rounds=row.total_rounds,
        difficulty=row.difficulty,
        completeness_score=row.completeness_score,
        generation_status=GenerationStatus(row.generation_status),
        unified_context=row.unified_context,
        role_intelligence=row.role_intelligence,
        discovery_metadata=row.discovery_metadata,
        errors=list(row.errors or []),
        warnings=list(row.warnings or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _apply_record(row: CurriculumRow, record: CurriculumRecord) -> None:
    """Write every column of ``record`` onto ``row``: a full-row replacement."""
    data = record.model_dump(mode="json", exclude={"id", "rounds", "created_at", "updated_at"})
    for key, value in data.items():
        setattr(row, key, value)
    row.created_at = record.created_at
    row.updated_at = record.updated_at


class SqlCurriculumRepository(CurriculumRepository):
    def __init__(self, database_url: str, echo: bool = False):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    # --- sync implementations, run in a worker thread ---

    def _upsert_curriculum(self, curriculum_id: str, fields: CurriculumFields, create_only: bool) -> CurriculumRecord:
        with self._session_factory() as session, session.begin():
            row = session.get(CurriculumRow, curriculum_id, with_for_update=True)
            if row is not None and create_only:
                raise PersistenceConflict(
                    f"Curriculum {curriculum_id} already exists",
                    details={"curriculum_id": curriculum_id},
                )
            existing = _to_record(row) if row is not None else None
            record = merge_curriculum(curriculum_id, existing, fields)
            if row is None:
                row = CurriculumRow(id=curriculum_id)
                session.add(row)
            _apply_record(row, record)
        return record

    def _upsert_rounds(
        self,
        curriculum_id: str,
        rounds: List[Round],
        replace: bool,
        status: Optional[GenerationStatus],
    ) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(CurriculumRow, curriculum_id, with_for_update=True)
            if row is None:
                raise CurriculumNotFound(f"Curriculum {curriculum_id} not found")
            check_status_transition(curriculum_id, GenerationStatus(row.generation_status), status)

            incoming = merge_rounds([], rounds)
            if replace:
                keep = {round_.round_number for round_ in incoming}
                for round_row in [r for r in row.rounds if r.round_number not in keep]:
                    row.rounds.remove(round_row)
                session.flush()

            existing = {round_row.round_number: round_row for round_row in row.rounds}
            for round_ in incoming:
                payload = round_.model_dump(mode="json")
                round_row = existing.get(round_.round_number)
                if round_row is None:
                    row.rounds.append(RoundRow(
                        round_number=round_.round_number,
                        round_type=round_.round_type.value,
                        payload=payload,
                    ))
                else:
                    round_row.round_type = round_.round_type.value
                    round_row.payload = payload

    def _get_curriculum(self, curriculum_id: str) -> CurriculumRecord:
        with self._session_factory() as session:
            row = session.get(CurriculumRow, curriculum_id)
            if row is None:
                raise CurriculumNotFound(f"Curriculum {curriculum_id} not found")
            round_rows = session.scalars(
                select(RoundRow)
                .where(RoundRow.curriculum_id == curriculum_id)
                .order_by(RoundRow.round_number)
            ).all()
            rounds = [Round.model_validate(round_row.payload) for round_row in round_rows]
            return with_round_count(_to_record(row), rounds)

    # --- async contract ---

    async def _run(self, operation: Callable[..., T], *args) -> T:
        """Run one transaction in a worker thread; driver errors become PersistenceError."""
        try:
            return await asyncio.to_thread(operation, *args)
        except SQLAlchemyError as e:
            reason = str(e).splitlines()[0] if str(e) else type(e).__name__
            logger.error(f"Database error in {operation.__name__}: {reason}")
            raise PersistenceError(
                f"Curriculum store failed: {reason}",
                details={"operation": operation.__name__.lstrip("_")},
            ) from e

    async def upsert_curriculum(
        self,
        curriculum_id: str,
        fields: CurriculumFields,
        create_only: bool = False,
    ) -> CurriculumRecord:
        record = await self._run(self._upsert_curriculum, curriculum_id, fields, create_only)
        logger.debug(f"Upserted curriculum {curriculum_id} ({record.generation_status.value})")
        return record

    async def upsert_rounds(
        self,
        curriculum_id: str,
        rounds: List[Round],
        replace: bool = False,
        status: Optional[GenerationStatus] = None,
    ) -> None:
        await self._run(self._upsert_rounds, curriculum_id, rounds, replace, status)
        logger.debug(f"Upserted {len(rounds)} round(s) for {curriculum_id}")

    async def get_curriculum(self, curriculum_id: str) -> CurriculumRecord:
        return await self._run(self._get_curriculum, curriculum_id)

    async def close(self) -> None:
        self.engine.dispose()
