from sqlalchemy import Boolean, ForeignKey, Integer, LargeBinary, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class DeviceAttachment(Base):
    __tablename__ = "device_attachments"
    __table_args__ = (
        UniqueConstraint("device_key_info_id", "attachment_id", name="uq_device_attachments_device_attachment"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_key_info_id: Mapped[int] = mapped_column(Integer, ForeignKey("device_key_info.id"), index=True)
    attachment_id: Mapped[str] = mapped_column(String(32))
    description: Mapped[str] = mapped_column(Text, default="")
    file_name: Mapped[str] = mapped_column(String(255))
    file_data: Mapped[bytes] = mapped_column(LargeBinary)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
