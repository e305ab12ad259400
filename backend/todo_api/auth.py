from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import bcrypt
import jwt

from .errors import InvalidToken

JWT_ALG = "HS256"
TOKEN_TTL_SECONDS = 86400  # 1d
BCRYPT_ROUNDS = 10


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str


class CredentialService:
    """Password hashing (bcrypt) and bearer tokens (HS256 JWT)."""

    def __init__(self, secret: str, ttl_seconds: int = TOKEN_TTL_SECONDS, rounds: int = BCRYPT_ROUNDS):
        if not secret:
            raise ValueError("token secret is required")
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self.rounds = rounds

    def hash_password(self, pw: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(pw.encode("utf-8"), salt).decode("utf-8")

    def verify_password(self, pw: str, pw_hash: str) -> bool:
        try:
            return bcrypt.checkpw(pw.encode("utf-8"), pw_hash.encode("utf-8"))
        except ValueError:
            # not a bcrypt hash
            return False

    def issue_token(self, user_id: str, email: str, now: int | None = None) -> str:
        now = int(time.time()) if now is None else now
        payload: dict[str, Any] = {
            "sub": str(user_id),
            "email": email,
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALG)

    def verify_token(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALG],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.PyJWTError as exc:
            raise InvalidToken(str(exc)) from exc
        email = payload.get("email")
        if not isinstance(email, str):
            raise InvalidToken("email claim missing")
        return TokenClaims(user_id=str(payload["sub"]), email=email)
