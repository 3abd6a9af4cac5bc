"""
kudos.api.deps — FastAPI dependency injection
==============================================
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Engine

from kudos.config import KudosConfig, load_config
from kudos.database.engine import create_db_engine
from kudos.database.store import PointsStore


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> KudosConfig:
    return load_config()


def get_store(engine: Annotated[Engine, Depends(get_engine)]) -> PointsStore:
    return PointsStore(engine)
