from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class DeviceData(Base):
    __tablename__ = "device_data"
    __table_args__ = (
        UniqueConstraint("device_key_info_id", "column_definition_id", name="uq_device_data_device_column"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_key_info_id: Mapped[int] = mapped_column(Integer, ForeignKey("device_key_info.id"), index=True)
    column_definition_id: Mapped[int] = mapped_column(Integer, ForeignKey("column_definitions.id"))
    data_value: Mapped[str] = mapped_column(Text)
