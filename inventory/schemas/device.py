from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmittedColumnData(_CamelModel):
    column_definition_id: int
    data_value: str


class SubmittedComponent(_CamelModel):
    component_id: str | None = None
    component_type: str
    deleted: bool = False


class SubmittedAttachmentNew(_CamelModel):
    kind: Literal["new"] = "new"
    description: str = ""
    file_name: str
    file_data: str  # base64


class SubmittedAttachmentExisting(_CamelModel):
    kind: Literal["existing"] = "existing"
    attachment_id: str
    description: str | None = None  # None keeps the stored description
    deleted: bool = False


SubmittedAttachment = Annotated[
    Union[SubmittedAttachmentNew, SubmittedAttachmentExisting],
    Field(discriminator="kind"),
]


class DeviceSubmission(_CamelModel):
    location_id: int
    column_data: list[SubmittedColumnData] = Field(default_factory=list)
    components: list[SubmittedComponent] = Field(default_factory=list)
    attachments: list[SubmittedAttachment] = Field(default_factory=list)


class DeviceUpsertResponse(_CamelModel):
    device_id: str
