# backend/tutorbook/models/base_enum.py
"""
Safe enum helpers for SQLAlchemy.

SQLAlchemy's Enum type persists member NAMES by default ('PENDING'); every
enum column in this package stores member VALUES ('pending') instead, so raw
SQL, migrations and the ORM agree on what is in the table.

Usage:
    status = Column(create_safe_enum(BookingStatus, "booking_status"), nullable=False)
"""

from enum import Enum
from typing import Sequence, Type

from sqlalchemy import Enum as SAEnum


def create_safe_enum(enum_class: Type[Enum], name: str, *, length: int = 20) -> SAEnum:
    """
    Create a SQLAlchemy Enum that stores enum values (not names).

    Stored as VARCHAR with a CHECK constraint so the same schema works on
    SQLite and PostgreSQL.
    """
    return SAEnum(
        enum_class,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=length,
        validate_strings=True,
        values_callable=_get_enum_values,
    )


def _get_enum_values(enum_class: Type[Enum]) -> Sequence[str]:
    return [member.value for member in enum_class]
