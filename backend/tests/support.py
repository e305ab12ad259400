"""Shared fixtures for the test modules."""

from sqlalchemy.engine import Engine

from todo_api.config import Settings
from todo_api.db import get_engine
from todo_api.main import create_app, init_db
from todo_api.ratelimit import MemoryRateLimiter

TEST_SECRET = "test-secret"


def make_settings(**kwargs) -> Settings:
    defaults = {
        "jwt_secret": TEST_SECRET,
        "database_url": "sqlite://",
        "bcrypt_rounds": 4,  # bcrypt minimum, keeps the suite fast
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_engine() -> Engine:
    engine = get_engine("sqlite://")
    init_db(engine, attempts=1)
    return engine


def make_app(limit: int = 1000, **settings):
    return create_app(make_settings(**settings), rate_limiter=MemoryRateLimiter(limit=limit))
