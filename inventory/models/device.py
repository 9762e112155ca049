from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class DeviceKeyInfo(Base):
    __tablename__ = "device_key_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    location_id: Mapped[int] = mapped_column(Integer, ForeignKey("locations.id"), index=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
