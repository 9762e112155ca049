from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class DeviceComponent(Base):
    __tablename__ = "device_components"
    __table_args__ = (
        UniqueConstraint("device_key_info_id", "component_id", name="uq_device_components_device_component"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_key_info_id: Mapped[int] = mapped_column(Integer, ForeignKey("device_key_info.id"), index=True)
    component_id: Mapped[str] = mapped_column(String(32))
    component_type: Mapped[str] = mapped_column(String(128))
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
