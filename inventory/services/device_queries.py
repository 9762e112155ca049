"""Read-only queries backing the device pages."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inventory.core.errors import NotFoundError, StorageError
from inventory.models.column_definition import ColumnDefinition, ColumnPossibleValue
from inventory.models.device import DeviceKeyInfo
from inventory.models.device_attachment import DeviceAttachment
from inventory.models.device_component import DeviceComponent
from inventory.models.device_data import DeviceData
from inventory.models.location import Location
from inventory.services import entity_store as store


async def list_column_definitions(db: AsyncSession) -> list[dict]:
    try:
        definitions = (await db.execute(select(ColumnDefinition).order_by(ColumnDefinition.id))).scalars().all()
        values = (
            await db.execute(select(ColumnPossibleValue).order_by(ColumnPossibleValue.id))
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise StorageError.wrap(exc, "unable to load the column definitions") from exc

    values_by_column: dict[int, list[ColumnPossibleValue]] = {}
    for value in values:
        values_by_column.setdefault(value.column_definition_id, []).append(value)

    items = []
    for definition in definitions:
        possible = values_by_column.get(definition.id, [])
        default = next((v.value for v in possible if v.id == definition.default_value_id), None)
        items.append({
            "id": definition.id,
            "name": definition.name,
            "notNull": definition.not_null,
            "uniqueValues": definition.unique_values,
            "showInMainPage": definition.show_in_main_page,
            "showOnLabels": definition.show_on_labels,
            "possibleValuesSetting": definition.possible_values_setting.value,
            "defaultValue": default,
            "possibleValues": [v.value for v in possible],
        })
    return items


async def get_device_info(db: AsyncSession, device_id: str) -> dict:
    snapshot = await store.get_device_snapshot(db, device_id)
    if snapshot is None:
        raise NotFoundError("Device not found.")

    try:
        location_name = await db.scalar(select(Location.name).where(Location.id == snapshot.state.location_id))
    except SQLAlchemyError as exc:
        raise StorageError.wrap(exc, "unable to load the device location") from exc
    last_updated = await store.get_last_updated(db, snapshot.device_key_info_id)

    state = snapshot.state
    return {
        "deviceId": snapshot.device_id,
        "locationId": state.location_id,
        "location": location_name,
        "deleted": snapshot.deleted,
        "lastUpdated": last_updated.isoformat() if last_updated else None,
        "columnData": [
            {"columnDefinitionId": c.column_definition_id, "dataValue": c.data_value} for c in state.column_data
        ],
        "components": [
            {"componentId": c.component_id, "componentType": c.component_type}
            for c in state.components
            if not c.deleted
        ],
        "attachments": [
            {"attachmentId": a.attachment_id, "description": a.description, "fileName": a.file_name}
            for a in state.attachments
            if not a.deleted
        ],
    }


async def list_recent_devices(db: AsyncSession, count: int) -> list[dict]:
    """Most recently updated live devices, with their column data."""
    last_updated = store.last_updated_subquery()
    try:
        rows = (
            await db.execute(
                select(DeviceKeyInfo, Location.name, last_updated.c.last_updated)
                .join(Location, Location.id == DeviceKeyInfo.location_id)
                .outerjoin(last_updated, last_updated.c.device_key_info_id == DeviceKeyInfo.id)
                .where(DeviceKeyInfo.deleted.is_(False))
                .order_by(last_updated.c.last_updated.desc().nulls_last(), DeviceKeyInfo.id.desc())
                .limit(count)
            )
        ).all()

        device_ids = [device.id for device, _, _ in rows]
        data_rows = []
        if device_ids:
            data_rows = (
                await db.execute(
                    select(DeviceData)
                    .where(DeviceData.device_key_info_id.in_(device_ids))
                    .order_by(DeviceData.column_definition_id)
                )
            ).scalars().all()
    except SQLAlchemyError as exc:
        raise StorageError.wrap(exc, "unable to load recent devices") from exc

    data_by_device: dict[int, list[dict]] = {}
    for data in data_rows:
        data_by_device.setdefault(data.device_key_info_id, []).append(
            {"columnDefinitionId": data.column_definition_id, "dataValue": data.data_value}
        )

    return [
        {
            "deviceId": device.device_id,
            "locationId": device.location_id,
            "location": location_name,
            "lastUpdated": updated_at.isoformat() if updated_at else None,
            "columnData": data_by_device.get(device.id, []),
        }
        for device, location_name, updated_at in rows
    ]


async def get_attachment_file(db: AsyncSession, device_id: str, attachment_id: str) -> tuple[str, bytes]:
    try:
        row = (
            await db.execute(
                select(DeviceAttachment.file_name, DeviceAttachment.file_data)
                .join(DeviceKeyInfo, DeviceKeyInfo.id == DeviceAttachment.device_key_info_id)
                .where(
                    DeviceKeyInfo.device_id == device_id,
                    DeviceAttachment.attachment_id == attachment_id,
                    DeviceAttachment.deleted.is_(False),
                )
            )
        ).one_or_none()
    except SQLAlchemyError as exc:
        raise StorageError.wrap(exc, "unable to load the attachment") from exc
    if row is None:
        raise NotFoundError("Attachment not found.")
    return row.file_name, row.file_data
