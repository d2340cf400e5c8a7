"""Persistence adapters for the curriculum aggregate."""
from .base import CurriculumRepository
from .memory import InMemoryCurriculumRepository
from .sql import SqlCurriculumRepository


def build_repository(database_url: str) -> CurriculumRepository:
    """In-memory store when no database URL is configured, SQLAlchemy otherwise."""
    if not database_url:
        return InMemoryCurriculumRepository()
    return SqlCurriculumRepository(database_url)


__all__ = [
    "CurriculumRepository",
    "InMemoryCurriculumRepository",
    "SqlCurriculumRepository",
    "build_repository",
]
