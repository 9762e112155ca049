import enum

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory.core.database import Base


class PossibleValuesSetting(str, enum.Enum):
    # Anything goes; no suggestions.
    FREE_TYPED = "free_typed"
    # Possible values are offered while typing but not enforced.
    SUGGESTED = "suggested"
    # Only possible values may be chosen.
    RESTRICTED = "restricted"


class ColumnDefinition(Base):
    __tablename__ = "column_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128))
    not_null: Mapped[bool] = mapped_column(Boolean, default=False)
    unique_values: Mapped[bool] = mapped_column(Boolean, default=False)
    show_in_main_page: Mapped[bool] = mapped_column(Boolean, default=True)
    show_on_labels: Mapped[bool] = mapped_column(Boolean, default=False)
    possible_values_setting: Mapped[PossibleValuesSetting] = mapped_column(
        Enum(PossibleValuesSetting, name="possible_values_setting"),
        default=PossibleValuesSetting.FREE_TYPED,
    )
    default_value_id: Mapped[int | None] = mapped_column(Integer)


class ColumnPossibleValue(Base):
    __tablename__ = "column_possible_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    column_definition_id: Mapped[int] = mapped_column(Integer, ForeignKey("column_definitions.id"), index=True)
    value: Mapped[str] = mapped_column(String(255))
