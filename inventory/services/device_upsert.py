"""Create/update reconciliation for devices.

A submission is checked in full before anything is written, then applied
category by category inside one transaction together with its change-log
row. Any failure rolls the whole operation back.
"""
from __future__ import annotations

import base64
import binascii
import logging
import random
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from inventory.core.config import settings
from inventory.core.errors import BadRequestError, InvalidStateError, NotFoundError
from inventory.schemas.device import DeviceSubmission, SubmittedAttachmentNew
from inventory.schemas.diff import DeviceDiff, KeyInfoDelete, KeyInfoRestore
from inventory.services import entity_store as store
from inventory.services.diff_engine import (
    AttachmentState,
    ColumnValue,
    ComponentState,
    DeviceState,
    compute_diff,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UpsertResult:
    device_id: str
    diff: DeviceDiff | None


def _decode_attachment(attachment: SubmittedAttachmentNew, max_size: int) -> bytes:
    try:
        data = base64.b64decode(attachment.file_data, validate=True)
    except (binascii.Error, ValueError):
        raise BadRequestError(f"The attachment '{attachment.file_name}' is not valid base64.")
    if len(data) > max_size:
        raise BadRequestError(f"The attachment '{attachment.file_name}' is too large.")
    return data


def validate_submission(submission: DeviceSubmission, max_attachment_size: int) -> list[bytes | None]:
    """Reject malformed submissions without touching storage.

    Returns the decoded payloads, aligned with ``submission.attachments``
    (``None`` for references to existing attachments).
    """
    column_ids = [column.column_definition_id for column in submission.column_data]
    if len(column_ids) != len(set(column_ids)):
        raise BadRequestError("A column was submitted more than once.")

    component_ids: set[str] = set()
    for component in submission.components:
        if component.component_id is None:
            if component.deleted:
                raise BadRequestError("Cannot delete a component that hasn't been created.")
            continue
        if component.component_id in component_ids:
            raise BadRequestError(f"The component '{component.component_id}' was submitted more than once.")
        component_ids.add(component.component_id)

    attachment_ids: set[str] = set()
    payloads: list[bytes | None] = []
    for attachment in submission.attachments:
        if isinstance(attachment, SubmittedAttachmentNew):
            payloads.append(_decode_attachment(attachment, max_attachment_size))
            continue
        if attachment.attachment_id in attachment_ids:
            raise BadRequestError(f"The attachment '{attachment.attachment_id}' was submitted more than once.")
        attachment_ids.add(attachment.attachment_id)
        payloads.append(None)
    return payloads


def _check_against_snapshot(submission: DeviceSubmission, before: DeviceState | None) -> None:
    known_components = {c.component_id for c in before.components} if before else set()
    for component in submission.components:
        if component.deleted and component.component_id not in known_components:
            raise BadRequestError(f"Cannot delete the component '{component.component_id}' because it doesn't exist.")

    known_attachments = {a.attachment_id for a in before.attachments} if before else set()
    for attachment in submission.attachments:
        if isinstance(attachment, SubmittedAttachmentNew):
            continue
        if attachment.attachment_id not in known_attachments:
            raise NotFoundError(f"The attachment '{attachment.attachment_id}' doesn't exist.")


async def _apply_components(
    db: AsyncSession,
    device_key_info_id: int,
    submission: DeviceSubmission,
    before: DeviceState | None,
    rng: random.Random,
) -> list[ComponentState]:
    before_by_id = {c.component_id: c for c in before.components} if before else {}
    reserved = {c.component_id for c in submission.components if c.component_id is not None}

    after: list[ComponentState] = []
    for component in submission.components:
        component_id = component.component_id
        if component_id is None:
            component_id = await store.generate_component_id(db, device_key_info_id, reserved=reserved, rng=rng)
            reserved.add(component_id)

        if component.deleted:
            existing = before_by_id[component_id]
            if not existing.deleted:
                await store.soft_delete_component(db, device_key_info_id, component_id)
            after.append(ComponentState(component_id, existing.component_type, deleted=True))
        else:
            await store.upsert_component(db, device_key_info_id, component_id, component.component_type)
            after.append(ComponentState(component_id, component.component_type))

    # Live components missing from the submission were removed by the caller.
    for component_id, existing in before_by_id.items():
        if component_id not in reserved and not existing.deleted:
            await store.soft_delete_component(db, device_key_info_id, component_id)
    return after


async def _apply_attachments(
    db: AsyncSession,
    device_key_info_id: int,
    submission: DeviceSubmission,
    payloads: list[bytes | None],
    before: DeviceState | None,
    rng: random.Random,
) -> list[AttachmentState]:
    before_by_id = {a.attachment_id: a for a in before.attachments} if before else {}
    reserved = {
        a.attachment_id for a in submission.attachments if not isinstance(a, SubmittedAttachmentNew)
    }

    after: list[AttachmentState] = []
    for attachment, payload in zip(submission.attachments, payloads):
        if isinstance(attachment, SubmittedAttachmentNew):
            attachment_id = await store.generate_attachment_id(db, device_key_info_id, reserved=reserved, rng=rng)
            reserved.add(attachment_id)
            await store.insert_attachment(
                db,
                device_key_info_id,
                attachment_id,
                description=attachment.description,
                file_name=attachment.file_name,
                file_data=payload,
            )
            after.append(AttachmentState(attachment_id, attachment.description, attachment.file_name))
            continue

        existing = before_by_id[attachment.attachment_id]
        if attachment.deleted:
            if not existing.deleted:
                await store.soft_delete_attachment(db, device_key_info_id, existing.attachment_id)
            after.append(AttachmentState(existing.attachment_id, existing.description, existing.file_name, deleted=True))
            continue

        if existing.deleted:
            await store.restore_attachment(db, device_key_info_id, existing.attachment_id)
        description = existing.description if attachment.description is None else attachment.description
        if existing.description != description:
            await store.update_attachment_description(db, device_key_info_id, existing.attachment_id, description)
        after.append(AttachmentState(existing.attachment_id, description, existing.file_name))

    for attachment_id, existing in before_by_id.items():
        if attachment_id not in reserved and not existing.deleted:
            await store.soft_delete_attachment(db, device_key_info_id, attachment_id)
    return after


async def _apply_submission(
    db: AsyncSession,
    existing_id: str | None,
    submission: DeviceSubmission,
    payloads: list[bytes | None],
    acting_user_id: int | None,
    rng: random.Random,
) -> UpsertResult:
    if not await store.location_exists(db, submission.location_id):
        raise NotFoundError("Invalid location.")

    before: DeviceState | None = None
    if existing_id is None:
        device_id = await store.generate_device_id(db, rng=rng)
    else:
        snapshot = await store.get_device_snapshot(db, existing_id)
        if snapshot is None:
            raise NotFoundError("Device not found.")
        if snapshot.deleted:
            raise InvalidStateError("Cannot modify a deleted device.")
        device_id = snapshot.device_id
        before = snapshot.state

    _check_against_snapshot(submission, before)

    device_key_info_id = await store.upsert_key_info(db, device_id, submission.location_id)

    missing = await store.missing_column_definitions(
        db, (column.column_definition_id for column in submission.column_data)
    )
    if missing:
        raise NotFoundError(f"Unknown column definition(s): {', '.join(str(c) for c in sorted(missing))}.")
    columns: list[ColumnValue] = []
    for column in submission.column_data:
        await store.upsert_column_value(db, device_key_info_id, column.column_definition_id, column.data_value)
        columns.append(ColumnValue(column.column_definition_id, column.data_value))

    components = await _apply_components(db, device_key_info_id, submission, before, rng)
    attachments = await _apply_attachments(db, device_key_info_id, submission, payloads, before, rng)

    after = DeviceState(
        location_id=submission.location_id,
        column_data=columns,
        components=components,
        attachments=attachments,
    )
    diff = compute_diff(before, after)
    if diff is not None:
        await store.insert_change_log(db, device_key_info_id, diff, acting_user_id)
    return UpsertResult(device_id=device_id, diff=diff)


async def upsert_device(
    db: AsyncSession,
    existing_id: str | None,
    submission: DeviceSubmission,
    acting_user_id: int | None,
    *,
    max_attachment_size: int | None = None,
    rng: random.Random | None = None,
) -> str:
    """Create (``existing_id=None``) or update a device from a submission.

    Returns the device's public ID. A submission that changes nothing still
    succeeds but writes no change-log row.
    """
    if max_attachment_size is None:
        max_attachment_size = settings.MAX_ATTACHMENT_SIZE_BYTES
    rng = rng or random.Random()

    payloads = validate_submission(submission, max_attachment_size)

    result = await store.run_in_transaction(
        db,
        lambda: _apply_submission(db, existing_id, submission, payloads, acting_user_id, rng),
    )

    if existing_id is None:
        logger.info("Created device %s", result.device_id)
    elif result.diff is None:
        logger.info("Device %s resubmitted without changes", result.device_id)
    else:
        logger.info("Updated device %s", result.device_id)
    return result.device_id


async def set_device_deleted(
    db: AsyncSession,
    device_id: str,
    deleted: bool,
    acting_user_id: int | None,
) -> DeviceDiff | None:
    """Soft-delete or restore a device, logging the change.

    Restoring a device that isn't deleted changes nothing and returns ``None``.
    """

    async def _work() -> DeviceDiff | None:
        key_info = await store.get_device_key_info(db, device_id)
        if key_info is None:
            raise NotFoundError("Device not found.")
        if deleted and key_info.deleted:
            raise InvalidStateError("The device is already deleted.")
        if not deleted and not key_info.deleted:
            return None

        await store.set_device_deleted_flag(db, key_info.id, deleted)
        diff = DeviceDiff(device_key_info=KeyInfoDelete() if deleted else KeyInfoRestore())
        await store.insert_change_log(db, key_info.id, diff, acting_user_id)
        return diff

    diff = await store.run_in_transaction(db, _work)
    if diff is not None:
        logger.info("Device %s %s", device_id, "deleted" if deleted else "restored")
    return diff
