from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True)
