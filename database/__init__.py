"""Database package public API."""

from .connection import OptimizedSQLitePool, close_db_pool, get_db_pool, init_db_pool
from .migrations import run_migrations
from .base_repository import BaseRepository, is_transient
from .repositories import (
    CapCounterRepository,
    ParticipationRepository,
    PhotoContestRepository,
    PromotionRepository,
    RewardCodeRepository,
)

__all__ = [
    "OptimizedSQLitePool",
    "close_db_pool",
    "get_db_pool",
    "init_db_pool",
    "run_migrations",
    "BaseRepository",
    "is_transient",
    "CapCounterRepository",
    "ParticipationRepository",
    "PhotoContestRepository",
    "PromotionRepository",
    "RewardCodeRepository",
]
