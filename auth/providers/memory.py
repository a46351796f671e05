"""In-memory verification provider for local development and tests."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode
from uuid import uuid4

from auth.config import AuthSettings
from auth.exceptions import ProviderError
from auth.interfaces.verification_provider import StartedVerification, VerificationMode, VerifiedIdentity

logger = logging.getLogger(__name__)


class MemoryProvider:
    """Issues codes and magic links in process instead of emailing them.

    Codes and links are written to the log so a developer can finish the
    flow locally. Errors use the same codes as the hosted provider.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        fixed_code: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = asyncio.Lock()
        self._requests: dict[str, dict[str, Any]] = {}
        self._max_attempts = max_attempts
        self._fixed_code = fixed_code
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> "MemoryProvider":
        return cls(max_attempts=settings.MAX_CODE_ATTEMPTS, fixed_code=settings.FIXED_OTP or None)

    def _generate_code(self) -> str:
        if self._fixed_code:
            return self._fixed_code
        return str(secrets.randbelow(900000) + 100000)

    def _issue(self, record: dict[str, Any]) -> None:
        record["code"] = self._generate_code()
        record["link_token"] = secrets.token_urlsafe(24)
        record["created_at"] = self._clock()
        record["attempts"] = 0
        link = f"{record['magic_link_uri']}?{urlencode({'link_token': record['link_token']})}"
        logger.info("Sign-in code for %s: %s (magic link: %s)", record["email"], record["code"], link)

    def _is_expired(self, record: dict[str, Any]) -> bool:
        return (self._clock() - record["created_at"]) > record["expires_in"]

    def _purge_expired(self) -> None:
        expired = [request_id for request_id, record in self._requests.items() if self._is_expired(record)]
        for request_id in expired:
            del self._requests[request_id]

    async def start_verification(
        self, email: str, expires_in: int, magic_link_uri: str
    ) -> StartedVerification:
        request_id = uuid4().hex
        record = {"email": email, "expires_in": expires_in, "magic_link_uri": magic_link_uri}
        self._issue(record)
        async with self._lock:
            self._purge_expired()
            self._requests[request_id] = record
        return StartedVerification(request_id=request_id, mode=VerificationMode.LINK_OTP, expires_in=expires_in)

    async def verify_code(self, request_id: str, code: str) -> VerifiedIdentity:
        async with self._lock:
            record = self._requests.get(request_id)
            if not record:
                raise ProviderError("AUTH_REQUEST_EXPIRED", "Unknown auth request")
            if self._is_expired(record):
                del self._requests[request_id]
                raise ProviderError("CODE_EXPIRED", "Code expired")
            if record["attempts"] >= self._max_attempts:
                del self._requests[request_id]
                raise ProviderError("TOO_MANY_ATTEMPTS", "Attempt limit reached")
            if not secrets.compare_digest(record["code"].encode(), code.encode()):
                record["attempts"] += 1
                raise ProviderError("INVALID_CODE", "Code mismatch")
            del self._requests[request_id]
            return VerifiedIdentity(email=record["email"])

    async def verify_link(self, request_id: str, link_token: str) -> VerifiedIdentity:
        async with self._lock:
            record = self._requests.get(request_id)
            if not record or not secrets.compare_digest(record["link_token"].encode(), link_token.encode()):
                raise ProviderError("INVALID_LINK_TOKEN", "Link token not recognised")
            if self._is_expired(record):
                del self._requests[request_id]
                raise ProviderError("INVALID_LINK_TOKEN", "Link token expired")
            del self._requests[request_id]
            return VerifiedIdentity(email=record["email"])

    async def resend(self, request_id: str) -> None:
        async with self._lock:
            record = self._requests.get(request_id)
            if not record:
                raise ProviderError("AUTH_REQUEST_EXPIRED", "Unknown auth request")
            self._issue(record)

    async def authenticate_with_code(self, code: str, redirect_uri: str) -> VerifiedIdentity:
        raise ProviderError("INVALID_ARGUMENT", "Authorization code exchange is not available in development")
