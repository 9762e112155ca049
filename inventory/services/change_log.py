"""Reading a device's change history back from the audit rows."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory.core.errors import NotFoundError, StorageError
from inventory.schemas.diff import DeviceDiff
from inventory.services import entity_store as store

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChangeLogEntry:
    id: int
    timestamp: datetime
    done_automatically: bool
    user_id: int | None
    user_display_name: str | None
    diff: DeviceDiff

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "doneAutomatically": self.done_automatically,
            "userId": self.user_id,
            "userDisplayName": self.user_display_name,
            "change": self.diff.to_payload(),
        }


async def list_changes(db: AsyncSession, device_id: str) -> list[ChangeLogEntry]:
    """Return a device's change history, newest first."""
    key_info = await store.get_device_key_info(db, device_id)
    if key_info is None:
        raise NotFoundError("Device not found.")

    entries: list[ChangeLogEntry] = []
    for change, display_name in await store.list_change_log(db, key_info.id):
        try:
            diff = DeviceDiff.from_json(change.change)
        except ValidationError as exc:
            raise StorageError(f"unable to parse device_changes row {change.id}: {exc}") from exc
        entries.append(
            ChangeLogEntry(
                id=change.id,
                timestamp=change.timestamp,
                done_automatically=bool(change.done_automatically),
                user_id=change.user_id,
                user_display_name=display_name,
                diff=diff,
            )
        )
    return entries
