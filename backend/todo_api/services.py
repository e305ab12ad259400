"""Registration/login and the to-do business rules.

No HTTP here: services take plain values and an ``AuthContext`` and raise the
domain errors from ``errors``. Store failures (SQLAlchemyError, timeouts
included) are logged with their cause and re-raised as ``InternalError``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from .auth import CredentialService
from .errors import (
    Conflict,
    ConflictOrInvalid,
    DuplicateEmail,
    DuplicateOpenTitle,
    Forbidden,
    InternalError,
    InvalidCredentials,
    NoChange,
    NotFound,
    ValidationError,
)
from .stores import TodoRecord, TodoStore, UserStore

logger = logging.getLogger(__name__)

DUPLICATE_ON_CREATE = "Todo with this title already exists and is not completed"
DUPLICATE_ON_UPDATE = "Another incomplete todo with this title already exists"


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller, resolved from the bearer token."""

    user_id: str
    email: str


@dataclass(frozen=True)
class RegisteredUser:
    id: str
    email: str
    token: str


@dataclass(frozen=True)
class TodoList:
    todos: list[TodoRecord]

    @property
    def empty(self) -> bool:
        return not self.todos


def is_todo_id(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class AuthService:
    def __init__(self, users: UserStore, credentials: CredentialService):
        self.users = users
        self.credentials = credentials

    def register(self, email: Any, password: Any) -> RegisteredUser:
        if not isinstance(email, str) or not isinstance(password, str) or not email.strip() or not password:
            logger.info("Registration rejected: invalid input")
            raise ConflictOrInvalid()

        try:
            pw_hash = self.credentials.hash_password(password)
            u = self.users.create(email=email, password_hash=pw_hash)
        except DuplicateEmail:
            logger.info("Registration rejected: email taken", extra={"email": email})
            raise ConflictOrInvalid() from None
        except (ValueError, SQLAlchemyError) as exc:
            logger.error("Registration failed", extra={"email": email, "error": repr(exc)})
            raise ConflictOrInvalid() from exc

        token = self.credentials.issue_token(u.id, u.email)
        logger.info("User registered", extra={"user_id": u.id})
        return RegisteredUser(id=u.id, email=u.email, token=token)

    def login(self, email: Any, password: Any) -> str:
        if not isinstance(email, str) or not isinstance(password, str):
            # nothing can be stored under a non-string email
            raise NotFound("User not found", auth_shape=True)

        try:
            u = self.users.get_by_email(email)
        except SQLAlchemyError as exc:
            logger.error("Login lookup failed", extra={"email": email, "error": repr(exc)})
            raise InternalError(auth_shape=True) from exc

        if u is None:
            raise NotFound("User not found", auth_shape=True)
        if not self.credentials.verify_password(password, u.password_hash):
            logger.info("Login rejected: bad password", extra={"user_id": u.id})
            raise InvalidCredentials()

        logger.info("User logged in", extra={"user_id": u.id})
        return self.credentials.issue_token(u.id, u.email)


class TodoService:
    def __init__(self, todos: TodoStore):
        self.todos = todos

    def list(self, ctx: AuthContext) -> TodoList:
        try:
            rows = self.todos.list_for_user(ctx.user_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to fetch todos", extra={"user_id": ctx.user_id, "error": repr(exc)})
            raise InternalError("Failed to fetch todos") from exc

        if not rows:
            logger.info("No todos found", extra={"user_id": ctx.user_id})
        else:
            logger.info(
                "Todos Fetched Successfully",
                extra={
                    "user_id": ctx.user_id,
                    "count": len(rows),
                    "preview": [{"id": t.id, "title": t.title} for t in rows[:3]],
                },
            )
        return TodoList(todos=rows)

    def create(self, ctx: AuthContext, title: Any) -> TodoRecord:
        title = _clean_title(title)
        if title is None:
            raise ValidationError("Todo Title is required")

        try:
            if self.todos.find_open_by_title(ctx.user_id, title) is not None:
                raise Conflict(DUPLICATE_ON_CREATE)
            t = self.todos.create(ctx.user_id, title)
        except DuplicateOpenTitle:
            # lost the race to a concurrent create; the index caught it
            raise Conflict(DUPLICATE_ON_CREATE) from None
        except SQLAlchemyError as exc:
            logger.error("Failed to Add", extra={"user_id": ctx.user_id, "error": repr(exc)})
            raise InternalError("Failed To Add") from exc

        logger.info("Todos Created Successfully", extra={"todo_id": t.id, "title": t.title, "user_id": t.user_id})
        return t

    def update(self, ctx: AuthContext, todo_id: Any, changes: dict[str, Any]) -> TodoRecord:
        """Partial update of ``title``/``completed``.

        Keys missing from ``changes`` (or set to None) keep their current value.
        """
        if not is_todo_id(todo_id):
            raise ValidationError("Invalid Todo ID")

        title = changes.get("title")
        completed = changes.get("completed")
        if title is not None:
            title = _clean_title(title)
            if title is None:
                raise ValidationError("Todo Title is required")
        if completed is not None and not isinstance(completed, bool):
            raise ValidationError("completed must be a boolean")

        try:
            existing = self.todos.get(todo_id)
            if existing is None or existing.user_id != ctx.user_id:
                raise Forbidden("You are not authorized to update this todo")

            no_change = (title is None or title == existing.title) and (
                completed is None or completed == existing.completed
            )
            if no_change:
                raise NoChange()

            if title is not None and title != existing.title:
                dup = self.todos.find_open_by_title(ctx.user_id, title, exclude_id=todo_id)
                if dup is not None:
                    raise Conflict(DUPLICATE_ON_UPDATE)

            updated = self.todos.update(todo_id, title=title, completed=completed)
        except DuplicateOpenTitle:
            raise Conflict(DUPLICATE_ON_UPDATE) from None
        except SQLAlchemyError as exc:
            logger.error("Failed to Update", extra={"todo_id": todo_id, "error": repr(exc)})
            raise InternalError("Failed To Update") from exc

        if updated is None:
            # deleted between lookup and write
            raise Forbidden("You are not authorized to update this todo")
        logger.info("Todo Updated Successfully", extra={"todo_id": todo_id, "user_id": ctx.user_id})
        return updated

    def delete(self, ctx: AuthContext, todo_id: Any) -> TodoRecord:
        if not is_todo_id(todo_id):
            raise ValidationError("Invalid Todo ID")

        try:
            existing = self.todos.get(todo_id)
            if existing is None or existing.user_id != ctx.user_id:
                raise Forbidden("You are not authorized to delete this todo")
            prior = self.todos.delete(todo_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to Delete", extra={"todo_id": todo_id, "error": repr(exc)})
            raise InternalError("Failed To Delete") from exc

        if prior is None:
            logger.error("Failed to Delete", extra={"todo_id": todo_id, "error": "record vanished"})
            raise NotFound("No record was found for delete")
        logger.info("Todo Deleted Successfully", extra={"todo_id": todo_id})
        return prior


def _clean_title(value: Any) -> str | None:
    # stored as sent; whitespace only counts as missing
    if not isinstance(value, str) or not value.strip():
        return None
    return value
