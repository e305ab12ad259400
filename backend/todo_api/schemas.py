from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .stores import TodoRecord


# Input fields are loose on purpose: missing or mistyped values get the
# service's 400 outcome instead of a framework 422.
class CredentialsIn(BaseModel):
    email: Any = None
    password: Any = None


class TodoCreate(BaseModel):
    title: Any = None


class TodoUpdate(BaseModel):
    title: Any = None
    completed: Any = None


class TodoOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    completed: bool
    user_id: str = Field(alias="userId")
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def of(cls, t: TodoRecord) -> TodoOut:
        return cls(id=t.id, title=t.title, completed=t.completed, user_id=t.user_id, created_at=t.created_at)


class UserOut(BaseModel):
    id: str
    email: str
    token: str


class RegisterOut(BaseModel):
    success: bool
    user: UserOut


class LoginOut(BaseModel):
    success: bool
    token: str


class TodoListOut(BaseModel):
    message: str
    todos: list[TodoOut]


class TodoCreatedOut(BaseModel):
    message: str
    todo: TodoOut


# update/delete answer with the single todo under "todos"
class TodoChangedOut(BaseModel):
    message: str
    todos: TodoOut
