from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)  # case-sensitive as stored
    password_hash = Column(String(255), nullable=False)


class Todo(Base):
    __tablename__ = "todos"
    __table_args__ = (
        # at most one open todo per (user, title); completed ones may repeat
        Index(
            "uq_todos_user_open_title",
            "user_id",
            "title",
            unique=True,
            postgresql_where=text("completed = false"),
            sqlite_where=text("completed = 0"),
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(256), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
