from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class DeviceChange(Base):
    """One audit row per mutating operation. Rows are never updated."""

    __tablename__ = "device_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_key_info_id: Mapped[int] = mapped_column(Integer, ForeignKey("device_key_info.id"), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
    done_automatically: Mapped[bool] = mapped_column(Boolean, default=False)
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("user_info.id", ondelete="SET NULL"))
    change: Mapped[str] = mapped_column(Text)
