"""User database table model."""

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from src.hotel_auth.entities.core._base import EntityTable


class UserTable(EntityTable, table=True):
    """Database persistence model for users.

    Email uniqueness is case-insensitive and only holds over non-deleted rows,
    so it is carried by a partial unique index on ``email_normalized``.
    """

    __table_args__ = (
        sa.Index(
            "uq_user_email_active",
            "email_normalized",
            unique=True,
            sqlite_where=sa.text("is_deleted = 0"),
            postgresql_where=sa.text("is_deleted = false"),
        ),
    )

    email: str = Field(max_length=320)
    email_normalized: str = Field(max_length=320, index=True)
    password_hash: str | None = None
    first_name: str
    last_name: str
    display_name: str | None = None
    hotel_name: str | None = None
    external_subject_id: str | None = Field(
        default=None, max_length=512, unique=True, index=True
    )
    auth_provider: str = Field(default="local", max_length=16)
    role: str = Field(default="hoteladmin", max_length=32)
    registration_state: str = Field(default="PENDING_LINK", max_length=16)
    link_failure: str | None = Field(default=None, max_length=32)
    is_active: bool = Field(default=True)
    is_deleted: bool = Field(default=False, index=True)
    linked_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    last_login_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    login_count: int = Field(default=0)
