"""Storage operations used by the device upsert flow.

Every function takes the caller's ``AsyncSession`` and never commits; the
transaction boundary belongs to ``run_in_transaction``. SQLAlchemy failures
are re-raised as ``StorageError`` with the failing operation as context.
"""
from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import exists, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory.core.config import settings
from inventory.core.errors import StorageError
from inventory.models.column_definition import ColumnDefinition
from inventory.models.device import DeviceKeyInfo
from inventory.models.device_attachment import DeviceAttachment
from inventory.models.device_change_log import DeviceChange
from inventory.models.device_component import DeviceComponent
from inventory.models.device_data import DeviceData
from inventory.models.location import Location
from inventory.models.user import User
from inventory.schemas.diff import DeviceDiff
from inventory.services.diff_engine import AttachmentState, ColumnValue, ComponentState, DeviceState
from inventory.services.id_gen import BASE64_BCRYPT, NUMERIC_ASCII, generate_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class DeviceSnapshot:
    device_key_info_id: int
    device_id: str
    deleted: bool
    state: DeviceState


@contextmanager
def _storage_errors(context: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError.wrap(exc, context) from exc


def _insert_for(db: AsyncSession, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise StorageError(f"upserts are not supported on the {dialect} dialect")


async def run_in_transaction(db: AsyncSession, work: Callable[[], Awaitable[T]]) -> T:
    """Run ``work`` as one unit: committed if it returns, rolled back if it raises.

    When the session already has a transaction open (a request-scoped session
    that has been queried), the unit runs inside a savepoint and the outer
    transaction decides the final commit.
    """
    if db.in_transaction():
        async with db.begin_nested():
            return await work()
    async with db.begin():
        return await work()


# Lookups

async def get_device_key_info(db: AsyncSession, device_id: str) -> DeviceKeyInfo | None:
    with _storage_errors("unable to load device_key_info"):
        result = await db.execute(select(DeviceKeyInfo).where(DeviceKeyInfo.device_id == device_id))
        return result.scalar_one_or_none()


async def get_device_snapshot(db: AsyncSession, device_id: str) -> DeviceSnapshot | None:
    key_info = await get_device_key_info(db, device_id)
    if key_info is None:
        return None

    with _storage_errors("unable to load the device snapshot"):
        data_rows = (
            await db.execute(
                select(DeviceData.column_definition_id, DeviceData.data_value)
                .where(DeviceData.device_key_info_id == key_info.id)
                .order_by(DeviceData.column_definition_id)
            )
        ).all()
        component_rows = (
            await db.execute(
                select(DeviceComponent.component_id, DeviceComponent.component_type, DeviceComponent.deleted)
                .where(DeviceComponent.device_key_info_id == key_info.id)
                .order_by(DeviceComponent.id)
            )
        ).all()
        attachment_rows = (
            await db.execute(
                select(
                    DeviceAttachment.attachment_id,
                    DeviceAttachment.description,
                    DeviceAttachment.file_name,
                    DeviceAttachment.deleted,
                )
                .where(DeviceAttachment.device_key_info_id == key_info.id)
                .order_by(DeviceAttachment.id)
            )
        ).all()

    return DeviceSnapshot(
        device_key_info_id=key_info.id,
        device_id=key_info.device_id,
        deleted=bool(key_info.deleted),
        state=DeviceState(
            location_id=key_info.location_id,
            column_data=[ColumnValue(column_id, value) for column_id, value in data_rows],
            components=[ComponentState(cid, ctype, bool(deleted)) for cid, ctype, deleted in component_rows],
            attachments=[
                AttachmentState(aid, description, file_name, bool(deleted))
                for aid, description, file_name, deleted in attachment_rows
            ],
        ),
    )


async def location_exists(db: AsyncSession, location_id: int) -> bool:
    with _storage_errors("unable to query the database for location existence"):
        return bool(await db.scalar(select(exists().where(Location.id == location_id))))


async def missing_column_definitions(db: AsyncSession, column_ids: Iterable[int]) -> set[int]:
    wanted = set(column_ids)
    if not wanted:
        return set()
    with _storage_errors("unable to query the database for column definitions"):
        found = (
            await db.execute(select(ColumnDefinition.id).where(ColumnDefinition.id.in_(wanted)))
        ).scalars().all()
    return wanted - set(found)


# Identifier generation

async def generate_device_id(db: AsyncSession, *, rng: random.Random | None = None) -> str:
    async def _exists(candidate: str) -> bool:
        with _storage_errors("unable to query the database for a device ID"):
            return bool(await db.scalar(select(exists().where(DeviceKeyInfo.device_id == candidate))))

    return await generate_id(NUMERIC_ASCII, settings.DEVICE_ID_LENGTH, _exists, rng=rng)


async def generate_component_id(
    db: AsyncSession,
    device_key_info_id: int,
    *,
    reserved: set[str] | None = None,
    rng: random.Random | None = None,
) -> str:
    """Generate a component ID unused on this device and absent from ``reserved``."""
    reserved = reserved if reserved is not None else set()

    async def _exists(candidate: str) -> bool:
        if candidate in reserved:
            return True
        with _storage_errors("unable to query the database for a component ID"):
            return bool(
                await db.scalar(
                    select(
                        exists().where(
                            DeviceComponent.device_key_info_id == device_key_info_id,
                            DeviceComponent.component_id == candidate,
                        )
                    )
                )
            )

    return await generate_id(NUMERIC_ASCII, settings.COMPONENT_ID_LENGTH, _exists, rng=rng)


async def generate_attachment_id(
    db: AsyncSession,
    device_key_info_id: int,
    *,
    reserved: set[str] | None = None,
    rng: random.Random | None = None,
) -> str:
    reserved = reserved if reserved is not None else set()

    async def _exists(candidate: str) -> bool:
        if candidate in reserved:
            return True
        with _storage_errors("unable to query the database for an attachment ID"):
            return bool(
                await db.scalar(
                    select(
                        exists().where(
                            DeviceAttachment.device_key_info_id == device_key_info_id,
                            DeviceAttachment.attachment_id == candidate,
                        )
                    )
                )
            )

    return await generate_id(BASE64_BCRYPT, settings.ATTACHMENT_ID_LENGTH, _exists, rng=rng)


# Writes

async def upsert_key_info(db: AsyncSession, device_id: str, location_id: int) -> int:
    """Insert or update the key info row and return its internal ID."""
    with _storage_errors("unable to upsert into device_key_info"):
        stmt = _insert_for(db, DeviceKeyInfo).values(device_id=device_id, location_id=location_id, deleted=False)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DeviceKeyInfo.device_id],
            set_={"location_id": stmt.excluded.location_id},
        )
        await db.execute(stmt)
        return await db.scalar(select(DeviceKeyInfo.id).where(DeviceKeyInfo.device_id == device_id))


async def set_device_deleted_flag(db: AsyncSession, device_key_info_id: int, deleted: bool) -> None:
    with _storage_errors("unable to update device_key_info"):
        await db.execute(
            update(DeviceKeyInfo)
            .where(DeviceKeyInfo.id == device_key_info_id)
            .values(deleted=deleted)
            .execution_options(synchronize_session=False)
        )


async def upsert_column_value(db: AsyncSession, device_key_info_id: int, column_definition_id: int, data_value: str) -> None:
    with _storage_errors("unable to upsert into device_data"):
        stmt = _insert_for(db, DeviceData).values(
            device_key_info_id=device_key_info_id,
            column_definition_id=column_definition_id,
            data_value=data_value,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DeviceData.device_key_info_id, DeviceData.column_definition_id],
            set_={"data_value": stmt.excluded.data_value},
        )
        await db.execute(stmt)


async def upsert_component(db: AsyncSession, device_key_info_id: int, component_id: str, component_type: str) -> None:
    """Create or update a component; a soft-deleted one is brought back."""
    with _storage_errors("unable to upsert into device_components"):
        stmt = _insert_for(db, DeviceComponent).values(
            device_key_info_id=device_key_info_id,
            component_id=component_id,
            component_type=component_type,
            deleted=False,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DeviceComponent.device_key_info_id, DeviceComponent.component_id],
            set_={"component_type": stmt.excluded.component_type, "deleted": False},
        )
        await db.execute(stmt)


async def soft_delete_component(db: AsyncSession, device_key_info_id: int, component_id: str) -> None:
    with _storage_errors("unable to delete from device_components"):
        await db.execute(
            update(DeviceComponent)
            .where(
                DeviceComponent.device_key_info_id == device_key_info_id,
                DeviceComponent.component_id == component_id,
            )
            .values(deleted=True)
            .execution_options(synchronize_session=False)
        )


async def insert_attachment(
    db: AsyncSession,
    device_key_info_id: int,
    attachment_id: str,
    *,
    description: str,
    file_name: str,
    file_data: bytes,
) -> None:
    with _storage_errors("unable to insert into device_attachments"):
        await db.execute(
            _insert_for(db, DeviceAttachment).values(
                device_key_info_id=device_key_info_id,
                attachment_id=attachment_id,
                description=description,
                file_name=file_name,
                file_data=file_data,
                deleted=False,
            )
        )


async def _update_attachment(db: AsyncSession, device_key_info_id: int, attachment_id: str, **values) -> None:
    await db.execute(
        update(DeviceAttachment)
        .where(
            DeviceAttachment.device_key_info_id == device_key_info_id,
            DeviceAttachment.attachment_id == attachment_id,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def update_attachment_description(db: AsyncSession, device_key_info_id: int, attachment_id: str, description: str) -> None:
    with _storage_errors("unable to update device_attachments"):
        await _update_attachment(db, device_key_info_id, attachment_id, description=description)


async def restore_attachment(db: AsyncSession, device_key_info_id: int, attachment_id: str) -> None:
    with _storage_errors("unable to restore device_attachments"):
        await _update_attachment(db, device_key_info_id, attachment_id, deleted=False)


async def soft_delete_attachment(db: AsyncSession, device_key_info_id: int, attachment_id: str) -> None:
    with _storage_errors("unable to delete from device_attachments"):
        await _update_attachment(db, device_key_info_id, attachment_id, deleted=True)


# Change log

async def insert_change_log(
    db: AsyncSession,
    device_key_info_id: int,
    diff: DeviceDiff,
    user_id: int | None,
    *,
    done_automatically: bool = False,
) -> DeviceChange:
    """Append an audit row for ``diff``.

    An acting user that no longer exists in ``user_info`` (a still-valid token
    outliving its account) is recorded as ``NULL``.
    """
    if user_id is not None:
        with _storage_errors("unable to query user_info for the acting user"):
            user_known = bool(await db.scalar(select(exists().where(User.id == user_id))))
        if not user_known:
            logger.warning("Acting user %s not found, recording change without a user", user_id)
            user_id = None

    change = DeviceChange(
        device_key_info_id=device_key_info_id,
        timestamp=datetime.now(timezone.utc),
        done_automatically=done_automatically,
        user_id=user_id,
        change=diff.to_json(),
    )
    with _storage_errors("unable to insert into device_changes"):
        db.add(change)
        await db.flush()
    return change


async def list_change_log(db: AsyncSession, device_key_info_id: int) -> list[tuple[DeviceChange, str | None]]:
    """Return ``(change, user display name)`` pairs, newest first."""
    with _storage_errors("unable to load device_changes"):
        result = await db.execute(
            select(DeviceChange, User.display_name)
            .outerjoin(User, User.id == DeviceChange.user_id)
            .where(DeviceChange.device_key_info_id == device_key_info_id)
            .order_by(DeviceChange.timestamp.desc(), DeviceChange.id.desc())
        )
        return [(change, display_name) for change, display_name in result.all()]


def last_updated_subquery():
    return (
        select(
            DeviceChange.device_key_info_id.label("device_key_info_id"),
            func.max(DeviceChange.timestamp).label("last_updated"),
        )
        .where(DeviceChange.done_automatically.is_(False))
        .group_by(DeviceChange.device_key_info_id)
        .subquery()
    )


async def get_last_updated(db: AsyncSession, device_key_info_id: int) -> datetime | None:
    with _storage_errors("unable to query device_changes for the last update"):
        return await db.scalar(
            select(func.max(DeviceChange.timestamp)).where(
                DeviceChange.device_key_info_id == device_key_info_id,
                DeviceChange.done_automatically.is_(False),
            )
        )
