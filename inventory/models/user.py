import enum

from sqlalchemy import Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class UserSource(str, enum.Enum):
    LOCAL = "local"  # reserved
    LDAP = "ldap"


class User(Base):
    __tablename__ = "user_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[UserSource] = mapped_column(Enum(UserSource, name="user_source"), default=UserSource.LDAP)
    unique_identifier: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(255))
    associated_location_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("locations.id"))
