"""Persisted change-log diff format.

The JSON produced here is stored verbatim in ``device_changes.change`` and
read back for display, so field names and the ``operation`` tag vocabulary
(``add``, ``edit``, ``delete``, ``restore``) must stay stable.
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _DiffModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Key info

class KeyInfoAdd(_DiffModel):
    operation: Literal["add"] = "add"
    location_id: int | None = None


class KeyInfoEdit(_DiffModel):
    operation: Literal["edit"] = "edit"
    location_id: int | None = None


class KeyInfoDelete(_DiffModel):
    operation: Literal["delete"] = "delete"


class KeyInfoRestore(_DiffModel):
    operation: Literal["restore"] = "restore"


DeviceKeyInfoDiff = Annotated[
    Union[KeyInfoAdd, KeyInfoEdit, KeyInfoDelete, KeyInfoRestore],
    Field(discriminator="operation"),
]


# Column data (flat, untagged: a column value is only ever set)

class DeviceDataColumnDiff(_DiffModel):
    column_definition_id: int
    data_value: str | None = None


# Components

class ComponentAdd(_DiffModel):
    operation: Literal["add"] = "add"
    component_id: str
    component_type: str | None = None


class ComponentEdit(_DiffModel):
    operation: Literal["edit"] = "edit"
    component_id: str
    component_type: str | None = None


class ComponentDelete(_DiffModel):
    operation: Literal["delete"] = "delete"
    component_id: str


class ComponentRestore(_DiffModel):
    operation: Literal["restore"] = "restore"
    component_id: str


DeviceComponentDiff = Annotated[
    Union[ComponentAdd, ComponentEdit, ComponentDelete, ComponentRestore],
    Field(discriminator="operation"),
]


# Attachments

class AttachmentAdd(_DiffModel):
    operation: Literal["add"] = "add"
    attachment_id: str
    description: str | None = None
    file_name: str | None = None


class AttachmentEdit(_DiffModel):
    operation: Literal["edit"] = "edit"
    attachment_id: str
    description: str | None = None
    file_name: str | None = None


class AttachmentDelete(_DiffModel):
    operation: Literal["delete"] = "delete"
    attachment_id: str


class AttachmentRestore(_DiffModel):
    operation: Literal["restore"] = "restore"
    attachment_id: str


DeviceAttachmentDiff = Annotated[
    Union[AttachmentAdd, AttachmentEdit, AttachmentDelete, AttachmentRestore],
    Field(discriminator="operation"),
]


class DeviceDiff(_DiffModel):
    """The set of changes made to one device by one operation."""

    device_key_info: DeviceKeyInfoDiff | None = None
    device_data: list[DeviceDataColumnDiff] | None = None
    device_components: list[DeviceComponentDiff] | None = None
    device_attachments: list[DeviceAttachmentDiff] | None = None

    def is_empty(self) -> bool:
        return (
            self.device_key_info is None
            and not self.device_data
            and not self.device_components
            and not self.device_attachments
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "DeviceDiff":
        return cls.model_validate_json(raw)
