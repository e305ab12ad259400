from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateEmail, DuplicateOpenTitle
from .models import Todo, User, new_id, utcnow


@dataclass(frozen=True)
class UserRecord:
    id: str
    email: str
    password_hash: str


@dataclass(frozen=True)
class TodoRecord:
    id: str
    title: str
    completed: bool
    user_id: str
    created_at: datetime


def _user_record(u: User) -> UserRecord:
    return UserRecord(id=u.id, email=u.email, password_hash=u.password_hash)


def _todo_record(t: Todo) -> TodoRecord:
    created = t.created_at
    if created.tzinfo is None:
        # sqlite drops the offset; everything is written in UTC
        created = created.replace(tzinfo=timezone.utc)
    return TodoRecord(
        id=t.id,
        title=t.title,
        completed=bool(t.completed),
        user_id=t.user_id,
        created_at=created,
    )


class UserStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create(self, email: str, password_hash: str) -> UserRecord:
        with Session(self.engine) as s:
            u = User(id=new_id(), email=email, password_hash=password_hash)
            s.add(u)
            try:
                s.commit()
            except IntegrityError as exc:
                s.rollback()
                raise DuplicateEmail(email) from exc
            return _user_record(u)

    def get_by_email(self, email: str) -> UserRecord | None:
        with Session(self.engine) as s:
            u = s.execute(select(User).where(User.email == email)).scalars().first()
            return _user_record(u) if u is not None else None


class TodoStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def list_for_user(self, user_id: str) -> list[TodoRecord]:
        with Session(self.engine) as s:
            rows = (
                s.execute(
                    select(Todo)
                    .where(Todo.user_id == user_id)
                    .order_by(Todo.created_at.desc(), Todo.id.desc())
                )
                .scalars()
                .all()
            )
            return [_todo_record(t) for t in rows]

    def get(self, todo_id: str) -> TodoRecord | None:
        with Session(self.engine) as s:
            t = s.get(Todo, todo_id)
            return _todo_record(t) if t is not None else None

    def find_open_by_title(self, user_id: str, title: str, exclude_id: str | None = None) -> TodoRecord | None:
        q = select(Todo).where(
            Todo.user_id == user_id,
            Todo.title == title,
            Todo.completed.is_(False),
        )
        if exclude_id is not None:
            q = q.where(Todo.id != exclude_id)
        with Session(self.engine) as s:
            t = s.execute(q).scalars().first()
            return _todo_record(t) if t is not None else None

    def create(self, user_id: str, title: str) -> TodoRecord:
        with Session(self.engine) as s:
            t = Todo(id=new_id(), user_id=user_id, title=title, completed=False, created_at=utcnow())
            s.add(t)
            try:
                s.commit()
            except IntegrityError as exc:
                s.rollback()
                raise DuplicateOpenTitle(title) from exc
            s.refresh(t)
            return _todo_record(t)

    def update(self, todo_id: str, title: str | None = None, completed: bool | None = None) -> TodoRecord | None:
        """Apply the given fields; None leaves a field as it is.

        Returns None when the row no longer exists.
        """
        values: dict = {}
        if title is not None:
            values["title"] = title
        if completed is not None:
            values["completed"] = completed

        with Session(self.engine) as s:
            if values:
                try:
                    s.execute(update(Todo).where(Todo.id == todo_id).values(**values))
                    s.commit()
                except IntegrityError as exc:
                    s.rollback()
                    raise DuplicateOpenTitle(values.get("title", "")) from exc
            t = s.get(Todo, todo_id)
            return _todo_record(t) if t is not None else None

    def delete(self, todo_id: str) -> TodoRecord | None:
        """Delete and return the prior row, or None if it was already gone."""
        with Session(self.engine) as s:
            t = s.get(Todo, todo_id)
            if t is None:
                return None
            prior = _todo_record(t)
            res = s.execute(delete(Todo).where(Todo.id == todo_id))
            s.commit()
            if res.rowcount == 0:
                return None
            return prior

