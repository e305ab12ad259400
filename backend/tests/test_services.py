"""Tests for the auth flows and the to-do business rules."""

import unittest
import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from todo_api.auth import CredentialService
from todo_api.errors import (
    Conflict,
    ConflictOrInvalid,
    Forbidden,
    InternalError,
    InvalidCredentials,
    NoChange,
    NotFound,
    ValidationError,
)
from todo_api.services import AuthContext, AuthService, TodoService, is_todo_id
from todo_api.stores import TodoRecord, TodoStore, UserStore

from .support import make_engine


def _timeout() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("canceling statement due to statement timeout"))


class TestAuthService(unittest.TestCase):
    def setUp(self):
        self.creds = CredentialService("s3cret", rounds=4)
        self.svc = AuthService(UserStore(make_engine()), self.creds)

    def test_register_token_resolves_to_new_user(self):
        u = self.svc.register("a@x.com", "p")
        assert u.email == "a@x.com"
        claims = self.creds.verify_token(u.token)
        assert claims.user_id == u.id
        assert claims.email == "a@x.com"

    def test_register_duplicate_email(self):
        self.svc.register("a@x.com", "p")
        with pytest.raises(ConflictOrInvalid) as exc:
            self.svc.register("a@x.com", "other")
        assert exc.value.message == "Email already exists or invalid input"

    def test_register_invalid_input_looks_like_duplicate(self):
        for email, password in [(None, "p"), ("a@x.com", None), ("", "p"), ("a@x.com", ""), (42, "p")]:
            with pytest.raises(ConflictOrInvalid) as exc:
                self.svc.register(email, password)
            assert exc.value.message == "Email already exists or invalid input"

    def test_login(self):
        u = self.svc.register("a@x.com", "p")
        token = self.svc.login("a@x.com", "p")
        assert self.creds.verify_token(token).user_id == u.id

    def test_login_unknown_email(self):
        with pytest.raises(NotFound) as exc:
            self.svc.login("nobody@x.com", "p")
        assert exc.value.body() == {"success": False, "message": "User not found"}

    def test_login_wrong_password(self):
        self.svc.register("a@x.com", "p")
        with pytest.raises(InvalidCredentials):
            self.svc.login("a@x.com", "wrong")

    def test_login_store_failure(self):
        users = MagicMock()
        users.get_by_email.side_effect = _timeout()
        svc = AuthService(users, self.creds)
        with pytest.raises(InternalError) as exc:
            svc.login("a@x.com", "p")
        assert exc.value.body() == {"success": False, "message": "Internal server error"}


class TestTodoService(unittest.TestCase):
    def setUp(self):
        engine = make_engine()
        users = UserStore(engine)
        self.alice = AuthContext(user_id=users.create("a@x.com", "h").id, email="a@x.com")
        self.bob = AuthContext(user_id=users.create("b@x.com", "h").id, email="b@x.com")
        self.store = TodoStore(engine)
        self.svc = TodoService(self.store)

    # ── list ─────────────────────────────────────────────────

    def test_list_empty(self):
        res = self.svc.list(self.alice)
        assert res.empty
        assert res.todos == []

    def test_list_only_own(self):
        self.svc.create(self.alice, "mine")
        self.svc.create(self.bob, "theirs")
        res = self.svc.list(self.alice)
        assert [t.title for t in res.todos] == ["mine"]

    def test_list_store_failure(self):
        todos = MagicMock()
        todos.list_for_user.side_effect = _timeout()
        with pytest.raises(InternalError) as exc:
            TodoService(todos).list(self.alice)
        assert exc.value.message == "Failed to fetch todos"

    # ── create ───────────────────────────────────────────────

    def test_create(self):
        t = self.svc.create(self.alice, "Buy milk")
        assert t.title == "Buy milk"
        assert t.completed is False
        assert t.user_id == self.alice.user_id

    def test_create_requires_title(self):
        for title in [None, "", "   ", 5]:
            with pytest.raises(ValidationError) as exc:
                self.svc.create(self.alice, title)
            assert exc.value.message == "Todo Title is required"

    def test_create_duplicate_open_title(self):
        self.svc.create(self.alice, "Buy milk")
        with pytest.raises(Conflict) as exc:
            self.svc.create(self.alice, "Buy milk")
        assert exc.value.status_code == 409

    def test_create_after_completion(self):
        t = self.svc.create(self.alice, "Buy milk")
        self.svc.update(self.alice, t.id, {"completed": True})
        again = self.svc.create(self.alice, "Buy milk")
        assert again.id != t.id

    def test_create_race_caught_by_index(self):
        # both requests pass the check before either commits
        self.store.find_open_by_title = MagicMock(return_value=None)
        self.svc.create(self.alice, "Buy milk")
        with pytest.raises(Conflict):
            self.svc.create(self.alice, "Buy milk")

    # ── update ───────────────────────────────────────────────

    def test_update_invalid_id(self):
        with pytest.raises(ValidationError) as exc:
            self.svc.update(self.alice, "not-a-uuid", {"title": "x"})
        assert exc.value.message == "Invalid Todo ID"

    def test_update_forbidden_for_missing_and_foreign_alike(self):
        t = self.svc.create(self.bob, "theirs")
        with pytest.raises(Forbidden) as foreign:
            self.svc.update(self.alice, t.id, {"title": "x"})
        with pytest.raises(Forbidden) as missing:
            self.svc.update(self.alice, str(uuid.uuid4()), {"title": "x"})
        assert foreign.value.body() == missing.value.body()
        assert foreign.value.body() == {"message": "You are not authorized to update this todo"}

    def test_update_no_change(self):
        t = self.svc.create(self.alice, "Buy milk")
        for changes in [{}, {"title": None, "completed": None}, {"title": "Buy milk"}, {"completed": False},
                        {"title": "Buy milk", "completed": False}]:
            with pytest.raises(NoChange):
                self.svc.update(self.alice, t.id, changes)

    def test_update_title(self):
        t = self.svc.create(self.alice, "Buy milk")
        u = self.svc.update(self.alice, t.id, {"title": "Buy bread"})
        assert u.title == "Buy bread"
        assert u.completed is False

    def test_update_blank_title(self):
        t = self.svc.create(self.alice, "Buy milk")
        with pytest.raises(ValidationError):
            self.svc.update(self.alice, t.id, {"title": "  "})

    def test_padded_title_is_kept_as_sent(self):
        t = self.svc.create(self.alice, " Buy milk ")
        assert t.title == " Buy milk "
        assert self.store.get(t.id).title == " Buy milk "
        # a different spelling of the same words is still a different title
        assert self.svc.create(self.alice, "Buy milk").title == "Buy milk"

    def test_whitespace_only_edit_is_a_change(self):
        t = self.svc.create(self.alice, "Buy milk")
        u = self.svc.update(self.alice, t.id, {"title": "Buy milk "})
        assert u.title == "Buy milk "
        with pytest.raises(NoChange):
            self.svc.update(self.alice, t.id, {"title": "Buy milk "})

    def test_update_completed_must_be_bool(self):
        t = self.svc.create(self.alice, "Buy milk")
        with pytest.raises(ValidationError):
            self.svc.update(self.alice, t.id, {"completed": "yes"})

    def test_update_duplicate_title(self):
        self.svc.create(self.alice, "a")
        b = self.svc.create(self.alice, "b")
        with pytest.raises(Conflict) as exc:
            self.svc.update(self.alice, b.id, {"title": "a"})
        assert exc.value.message == "Another incomplete todo with this title already exists"

    def test_update_title_onto_completed_one_is_fine(self):
        a = self.svc.create(self.alice, "a")
        self.svc.update(self.alice, a.id, {"completed": True})
        b = self.svc.create(self.alice, "b")
        assert self.svc.update(self.alice, b.id, {"title": "a"}).title == "a"

    def test_reopen_with_open_duplicate(self):
        a = self.svc.create(self.alice, "a")
        self.svc.update(self.alice, a.id, {"completed": True})
        self.svc.create(self.alice, "a")
        with pytest.raises(Conflict):
            self.svc.update(self.alice, a.id, {"completed": False})

    def test_update_store_failure(self):
        todos = MagicMock()
        todos.get.side_effect = _timeout()
        with pytest.raises(InternalError) as exc:
            TodoService(todos).update(self.alice, str(uuid.uuid4()), {"title": "x"})
        assert exc.value.message == "Failed To Update"

    # ── delete ───────────────────────────────────────────────

    def test_delete(self):
        t = self.svc.create(self.alice, "Buy milk")
        prior = self.svc.delete(self.alice, t.id)
        assert prior == t
        assert self.svc.list(self.alice).empty

    def test_delete_invalid_id(self):
        with pytest.raises(ValidationError):
            self.svc.delete(self.alice, "123")

    def test_delete_forbidden(self):
        t = self.svc.create(self.bob, "theirs")
        with pytest.raises(Forbidden) as foreign:
            self.svc.delete(self.alice, t.id)
        with pytest.raises(Forbidden) as missing:
            self.svc.delete(self.alice, str(uuid.uuid4()))
        assert foreign.value.body() == missing.value.body()
        assert self.store.get(t.id) is not None

    def test_delete_race(self):
        todo_id = str(uuid.uuid4())
        todos = MagicMock()
        todos.get.return_value = TodoRecord(
            id=todo_id, title="x", completed=False, user_id=self.alice.user_id,
            created_at=datetime.now(timezone.utc),
        )
        todos.delete.return_value = None
        with pytest.raises(NotFound) as exc:
            TodoService(todos).delete(self.alice, todo_id)
        assert exc.value.status_code == 404
        assert exc.value.message == "No record was found for delete"


def test_is_todo_id():
    assert is_todo_id(str(uuid.uuid4()))
    assert not is_todo_id("invalid-id")
    assert not is_todo_id("")
    assert not is_todo_id(None)
