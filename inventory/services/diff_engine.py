"""Diff calculation between a device's stored state and its new state.

Everything here is pure: states go in, a ``DeviceDiff`` (or ``None`` when
nothing changed) comes out. List categories are matched by identifier, never
by position.
"""
from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from inventory.schemas.diff import (
    AttachmentAdd,
    AttachmentDelete,
    AttachmentEdit,
    AttachmentRestore,
    ComponentAdd,
    ComponentDelete,
    ComponentEdit,
    ComponentRestore,
    DeviceDataColumnDiff,
    DeviceDiff,
    KeyInfoAdd,
    KeyInfoEdit,
)

B = TypeVar("B")
A = TypeVar("A")


class DiffInputError(ValueError):
    """The states handed to the engine break one of its preconditions."""


class DuplicateKeyError(DiffInputError):
    pass


@dataclass(slots=True)
class ColumnValue:
    column_definition_id: int
    data_value: str


@dataclass(slots=True)
class ComponentState:
    component_id: str
    component_type: str
    deleted: bool = False


@dataclass(slots=True)
class AttachmentState:
    attachment_id: str
    description: str
    file_name: str
    deleted: bool = False


@dataclass(slots=True)
class DeviceState:
    location_id: int | None = None
    column_data: list[ColumnValue] = field(default_factory=list)
    components: list[ComponentState] = field(default_factory=list)
    attachments: list[AttachmentState] = field(default_factory=list)

    def is_empty(self) -> bool:
        return (
            self.location_id is None
            and not self.column_data
            and not self.components
            and not self.attachments
        )


def reconcile_keyed(
    before: Iterable[B],
    before_key: Callable[[B], Hashable],
    after: Iterable[A],
    after_key: Callable[[A], Hashable],
    *,
    on_both: Callable[[B, A], list[Any]],
    on_added: Callable[[A], list[Any]],
    on_removed: Callable[[B], list[Any]],
) -> list[Any]:
    """Pair up two keyed lists and collect the change entries for each key.

    Keys are visited in order of first appearance (``before`` first), so the
    output is deterministic. A key repeated within one side is a caller bug
    and raises ``DuplicateKeyError``.
    """
    pairs: dict[Hashable, list[Any]] = {}
    for item in before:
        key = before_key(item)
        if key in pairs:
            raise DuplicateKeyError(f"duplicate key {key!r} in the before list")
        pairs[key] = [item, None]

    after_seen: set[Hashable] = set()
    for item in after:
        key = after_key(item)
        if key in after_seen:
            raise DuplicateKeyError(f"duplicate key {key!r} in the after list")
        after_seen.add(key)
        pairs.setdefault(key, [None, None])[1] = item

    changes: list[Any] = []
    for key, (before_item, after_item) in pairs.items():
        if key in after_seen and before_item is not None:
            changes.extend(on_both(before_item, after_item))
        elif key in after_seen:
            changes.extend(on_added(after_item))
        else:
            changes.extend(on_removed(before_item))
    return changes


# Key info

def diff_key_info(before: DeviceState | None, after: DeviceState) -> KeyInfoAdd | KeyInfoEdit | None:
    if before is None:
        if after.location_id is None:
            return None
        return KeyInfoAdd(location_id=after.location_id)
    if after.location_id is None or before.location_id == after.location_id:
        return None
    return KeyInfoEdit(location_id=after.location_id)


# Column data

def _column_changed(before: ColumnValue, after: ColumnValue) -> list[DeviceDataColumnDiff]:
    if before.data_value == after.data_value:
        return []
    return [DeviceDataColumnDiff(column_definition_id=after.column_definition_id, data_value=after.data_value)]


def _column_added(after: ColumnValue) -> list[DeviceDataColumnDiff]:
    return [DeviceDataColumnDiff(column_definition_id=after.column_definition_id, data_value=after.data_value)]


def _column_removed(before: ColumnValue) -> list[DeviceDataColumnDiff]:
    # Columns left out of a submission keep their stored value.
    return []


def diff_column_data(before: list[ColumnValue], after: list[ColumnValue]) -> list[DeviceDataColumnDiff]:
    return reconcile_keyed(
        before,
        lambda value: value.column_definition_id,
        after,
        lambda value: value.column_definition_id,
        on_both=_column_changed,
        on_added=_column_added,
        on_removed=_column_removed,
    )


# Components

def _component_changed(before: ComponentState, after: ComponentState) -> list:
    if after.deleted:
        return [] if before.deleted else [ComponentDelete(component_id=after.component_id)]

    changes: list = []
    if before.deleted:
        changes.append(ComponentRestore(component_id=after.component_id))
    if before.component_type != after.component_type:
        changes.append(ComponentEdit(component_id=after.component_id, component_type=after.component_type))
    return changes


def _component_added(after: ComponentState) -> list:
    if after.deleted:
        raise DiffInputError(f"component {after.component_id!r} cannot be deleted before it exists")
    return [ComponentAdd(component_id=after.component_id, component_type=after.component_type)]


def _component_removed(before: ComponentState) -> list:
    if before.deleted:
        return []
    return [ComponentDelete(component_id=before.component_id)]


def diff_components(before: list[ComponentState], after: list[ComponentState]) -> list:
    return reconcile_keyed(
        before,
        lambda component: component.component_id,
        after,
        lambda component: component.component_id,
        on_both=_component_changed,
        on_added=_component_added,
        on_removed=_component_removed,
    )


# Attachments

def _attachment_changed(before: AttachmentState, after: AttachmentState) -> list:
    if after.deleted:
        return [] if before.deleted else [AttachmentDelete(attachment_id=after.attachment_id)]

    changes: list = []
    if before.deleted:
        changes.append(AttachmentRestore(attachment_id=after.attachment_id))
    # The payload and file name of a stored attachment never change.
    if before.description != after.description:
        changes.append(AttachmentEdit(attachment_id=after.attachment_id, description=after.description))
    return changes


def _attachment_added(after: AttachmentState) -> list:
    if after.deleted:
        raise DiffInputError(f"attachment {after.attachment_id!r} cannot be deleted before it exists")
    return [
        AttachmentAdd(
            attachment_id=after.attachment_id,
            description=after.description,
            file_name=after.file_name,
        )
    ]


def _attachment_removed(before: AttachmentState) -> list:
    if before.deleted:
        return []
    return [AttachmentDelete(attachment_id=before.attachment_id)]


def diff_attachments(before: list[AttachmentState], after: list[AttachmentState]) -> list:
    return reconcile_keyed(
        before,
        lambda attachment: attachment.attachment_id,
        after,
        lambda attachment: attachment.attachment_id,
        on_both=_attachment_changed,
        on_added=_attachment_added,
        on_removed=_attachment_removed,
    )


def compute_diff(before: DeviceState | None, after: DeviceState) -> DeviceDiff | None:
    """Return the changes from ``before`` to ``after``, or ``None`` if there are none.

    With ``before=None`` the device is new and every populated category is
    reported as added.
    """
    base = before if before is not None else DeviceState()

    diff = DeviceDiff(
        device_key_info=diff_key_info(before, after),
        device_data=diff_column_data(base.column_data, after.column_data) or None,
        device_components=diff_components(base.components, after.components) or None,
        device_attachments=diff_attachments(base.attachments, after.attachments) or None,
    )
    if diff.is_empty():
        return None
    return diff
