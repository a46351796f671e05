"""Session record and its cookie codec."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from jose import JWTError, jwt

from auth.config import AuthSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    subject: str
    expires_in: int
    issued_at: int = field(default_factory=lambda: int(time.time()))
    verified: bool = True

    def __post_init__(self) -> None:
        if not self.subject:
            raise ValueError("Session subject must not be empty")
        if self.expires_in <= 0:
            raise ValueError("Session expiry must be positive")

    @property
    def expires_at(self) -> int:
        return self.issued_at + self.expires_in

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "email": self.subject,
            "verified": self.verified,
            "issuedAt": self.issued_at,
            "expiresAt": self.expires_at,
        }


class SessionCodec:
    """Encodes session records as signed, self-describing cookie payloads."""

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> "SessionCodec":
        return cls(settings.SESSION_SECRET_KEY, settings.SESSION_ALGORITHM)

    def encode(self, record: SessionRecord) -> str:
        payload: dict[str, Any] = {
            "sub": record.subject,
            "iat": record.issued_at,
            "exp": record.expires_at,
            "expires_in": record.expires_in,
            "verified": record.verified,
            "type": "session",
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def decode(self, payload: str | None) -> SessionRecord | None:
        """Return the session stored in ``payload``, or None when it is unusable."""
        if not payload:
            return None
        try:
            claims = jwt.decode(payload, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            logger.debug("Rejected session cookie that failed verification")
            return None

        if claims.get("type") != "session":
            return None
        try:
            return SessionRecord(
                subject=str(claims["sub"]),
                expires_in=int(claims["expires_in"]),
                issued_at=int(claims["iat"]),
                verified=bool(claims.get("verified", False)),
            )
        except (KeyError, TypeError, ValueError):
            return None

    @staticmethod
    def max_age(record: SessionRecord) -> int:
        return record.expires_in
