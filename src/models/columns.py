"""Shared column builders for SQLModel tables."""

from enum import Enum

import sqlalchemy as sa


def enum_column(
    enum_cls: type[Enum],
    default: Enum | None = None,
    *,
    name: str | None = None,
    index: bool = True,
    nullable: bool = False,
) -> sa.Column:
    """VARCHAR column storing a str Enum by its value.

    SQLAlchemy's Enum type persists member names by default; statuses
    are stored verbatim as their lowercase values instead.
    """
    enum_type = sa.Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
        validate_strings=True,
    )
    args: list = [name] if name else []
    return sa.Column(*args, enum_type, nullable=nullable, default=default, index=index)
