"""Verification provider interface."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class VerificationMode(StrEnum):
    """How the user can complete a verification (provider ``passwordlessType``)."""

    OTP = "OTP"
    LINK = "LINK"
    LINK_OTP = "LINK_OTP"


@dataclass(frozen=True)
class StartedVerification:
    request_id: str
    mode: VerificationMode
    expires_in: int | None = None


@dataclass(frozen=True)
class VerifiedIdentity:
    email: str | None
    expires_in: int | None = None
    id_token: str | None = None
    access_token: str | None = None


class VerificationProvider(Protocol):
    """External passwordless service. Failures raise ``ProviderError``."""

    async def start_verification(
        self, email: str, expires_in: int, magic_link_uri: str
    ) -> StartedVerification:
        ...

    async def verify_code(self, request_id: str, code: str) -> VerifiedIdentity:
        ...

    async def verify_link(self, request_id: str, link_token: str) -> VerifiedIdentity:
        ...

    async def resend(self, request_id: str) -> None:
        ...

    async def authenticate_with_code(self, code: str, redirect_uri: str) -> VerifiedIdentity:
        ...
