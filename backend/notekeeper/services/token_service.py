"""
NoteKeeper Backend — Token Service
====================================

What:  Issues and verifies signed, time-limited identity assertions.
How:   HS256 JWTs via python-jose. Claims: `sub` (user id as a string,
       jose requires a string subject), `iat`, `exp`.
When:  Constructed once by the application factory; a missing signing key
       raises ConfigurationError there and the service never starts.

Single key only. A token signed with any other key fails verification.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from notekeeper.config import Settings
from notekeeper.database import utcnow
from notekeeper.exceptions import ConfigurationError, UnauthorizedError

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


class TokenService:
    """Signs and checks access tokens with one process-wide key."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=24),
    ):
        if not secret_key or not secret_key.strip():
            raise ConfigurationError("JWT signing key is not configured")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            ttl=timedelta(hours=settings.token_ttl_hours),
        )

    def issue(self, user_id: int, now: Optional[datetime] = None) -> str:
        """
        Create a token for `user_id` expiring `ttl` after `now`.

        `now` defaults to the current time; tests pass a past instant to
        mint already-expired tokens.
        """
        issued_at = now or utcnow()
        claims = {
            "sub": str(user_id),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(claims, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> int:
        """
        Return the user id embedded in a valid token.

        Raises:
            UnauthorizedError: malformed, wrongly signed, expired, or a
                subject that is not an integer id.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError:
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE, context={"reason": "expired"})
        except JWTError as e:
            raise UnauthorizedError(
                INVALID_TOKEN_MESSAGE,
                context={"reason": "invalid", "error_type": type(e).__name__},
            )

        try:
            return int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE, context={"reason": "bad_subject"})
