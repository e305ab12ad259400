from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool


def get_engine(url: str, timeout_s: float = 5.0) -> Engine:
    """Build the engine with bounded waits on every store call.

    Pool checkout, connect and (on Postgres) statement execution all time out
    after ``timeout_s``; the driver error surfaces as a SQLAlchemyError.
    """
    if not url:
        raise RuntimeError("DATABASE_URL is required")
    u = make_url(url)

    if u.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False, "timeout": timeout_s}}
        # in-memory db must be shared by every session, or each one sees an empty schema
        if u.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(u, **kwargs)

    connect_args: dict = {}
    if u.get_backend_name() == "postgresql":
        ms = int(timeout_s * 1000)
        connect_args = {"connect_timeout": max(1, int(timeout_s)), "options": f"-c statement_timeout={ms}"}
    return create_engine(u, pool_pre_ping=True, pool_timeout=timeout_s, connect_args=connect_args)
