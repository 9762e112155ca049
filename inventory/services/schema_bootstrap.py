import asyncio
import logging

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

import inventory.models.registry  # noqa: F401
from inventory.core.database import Base, engine as default_engine

logger = logging.getLogger(__name__)

_SCHEMA_INIT_LOCK = asyncio.Lock()
_SCHEMA_READY = False


def _create_missing_tables_sync(connection) -> None:
    Base.metadata.create_all(bind=connection, checkfirst=True)


def _get_existing_tables(connection) -> set[str]:
    return set(inspect(connection).get_table_names())


async def ensure_base_schema_ready(force: bool = False, *, engine: AsyncEngine | None = None) -> bool:
    """Create any missing ORM tables.

    Returns True when the schema is complete afterwards.
    """
    global _SCHEMA_READY
    if _SCHEMA_READY and not force:
        return True

    engine = engine or default_engine
    async with _SCHEMA_INIT_LOCK:
        if _SCHEMA_READY and not force:
            return True

        try:
            async with engine.begin() as conn:
                await conn.run_sync(_create_missing_tables_sync)
                existing = await conn.run_sync(_get_existing_tables)
        except SQLAlchemyError:
            logger.exception("schema bootstrap failed")
            return False

        missing = sorted(set(Base.metadata.tables) - existing)
        if missing:
            logger.warning("schema bootstrap incomplete, missing tables: %s", ",".join(missing))
            _SCHEMA_READY = False
            return False

        _SCHEMA_READY = True
        return True


def reset_schema_bootstrap_state() -> None:
    global _SCHEMA_READY
    _SCHEMA_READY = False
