from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    database_url: str = "sqlite:///./todo.db"
    host: str = "0.0.0.0"
    port: int = 3000
    jwt_ttl_seconds: int = 86400  # 1d
    bcrypt_rounds: int = 10
    db_timeout_seconds: float = 5.0

    rate_limit_max: int = 10
    rate_limit_window_seconds: int = 60
    rate_limit_backend: str = "memory"  # memory|redis
    redis_url: str = "redis://localhost:6379/0"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        secret = os.environ.get("JWT_SECRET", "")
        if not secret:
            raise RuntimeError("JWT_SECRET is required")

        backend = os.environ.get("RATE_LIMIT_BACKEND", "memory").strip().lower()
        if backend not in {"memory", "redis"}:
            raise RuntimeError("RATE_LIMIT_BACKEND must be memory|redis")

        return cls(
            jwt_secret=secret,
            database_url=os.environ.get("DATABASE_URL", "sqlite:///./todo.db"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "3000")),
            jwt_ttl_seconds=int(os.environ.get("JWT_TTL_SECONDS", "86400")),
            bcrypt_rounds=int(os.environ.get("BCRYPT_ROUNDS", "10")),
            db_timeout_seconds=float(os.environ.get("DB_TIMEOUT_SECONDS", "5")),
            rate_limit_max=int(os.environ.get("RATE_LIMIT_MAX", "10")),
            rate_limit_window_seconds=int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "60")),
            rate_limit_backend=backend,
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
