"""Passwordless login flow controller."""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TypeVar

from email_validator import EmailNotValidError, validate_email

from auth.config import AuthSettings
from auth.errors import RESTART_KINDS, ErrorClassification, ErrorKind, ErrorTranslator, classify
from auth.exceptions import ProviderError
from auth.interfaces.verification_provider import VerificationMode, VerificationProvider, VerifiedIdentity
from auth.session import SessionRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

CODE_PATTERN = re.compile(r"[0-9]{6}")


class FlowStep(StrEnum):
    AWAITING_EMAIL = "awaiting-email"
    AWAITING_VERIFICATION = "awaiting-verification"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass(frozen=True)
class FlowState:
    step: FlowStep = FlowStep.AWAITING_EMAIL
    request_id: str | None = None
    email: str | None = None
    mode: VerificationMode | None = None

    def __post_init__(self) -> None:
        awaiting = self.step == FlowStep.AWAITING_VERIFICATION
        if awaiting != bool(self.request_id):
            raise ValueError("A request id is held exactly while awaiting verification")

    @classmethod
    def from_request_id(cls, request_id: str | None, email: str | None = None) -> "FlowState":
        """Rebuild the state carried by the ``auth-request-id`` cookie.

        The cookie holds only the request id, so a rebuilt state has no
        contact address unless the caller supplies one. The provider still
        knows the address and returns it on successful verification.
        """
        if request_id:
            return cls(step=FlowStep.AWAITING_VERIFICATION, request_id=request_id, email=email)
        return cls(email=email)


@dataclass(frozen=True)
class FlowOutcome:
    state: FlowState
    session: SessionRecord | None = None
    error: ErrorClassification | None = None

    def __post_init__(self) -> None:
        if self.session is not None and self.error is not None:
            raise ValueError("An outcome carries a session or an error, never both")

    @property
    def ok(self) -> bool:
        return self.error is None


class FlowController:
    """Drives one browser's passwordless sign-in through the provider.

    The controller holds no per-user data: every call receives the current
    :class:`FlowState` and returns the next one in a :class:`FlowOutcome`.
    Input that can be rejected locally never reaches the provider.
    """

    def __init__(
        self,
        provider: VerificationProvider,
        settings: AuthSettings,
        translator: ErrorTranslator | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self._translator = translator or ErrorTranslator()

    async def submit_email(self, state: FlowState, address: str | None) -> FlowOutcome:
        address = (address or "").strip()
        if not address:
            return self._reject(state, ErrorKind.INVALID_INPUT, "Email is required")
        try:
            email = validate_email(address, check_deliverability=False).normalized
        except EmailNotValidError:
            return self._reject(state, ErrorKind.INVALID_INPUT, "Invalid email address")

        started, error = await self._delegate(
            "authentication initiation",
            self._provider.start_verification(
                email,
                expires_in=self._settings.CODE_EXPIRES_IN,
                magic_link_uri=self._settings.magic_link_uri,
            ),
        )
        if error:
            return FlowOutcome(state=FlowState(email=email), error=error)

        logger.info("Verification started (mode=%s)", started.mode)
        return FlowOutcome(
            state=FlowState(
                step=FlowStep.AWAITING_VERIFICATION,
                request_id=started.request_id,
                email=email,
                mode=started.mode,
            )
        )

    async def submit_code(self, state: FlowState, request_id: str | None, code: str | None) -> FlowOutcome:
        if not request_id or not code:
            return self._reject(
                state, ErrorKind.INVALID_INPUT, "Auth request ID and verification code are required"
            )
        if not CODE_PATTERN.fullmatch(code):
            return self._reject(state, ErrorKind.INVALID_INPUT, "Verification code must be 6 digits")
        if request_id != state.request_id:
            return self._reject(
                state, ErrorKind.INVALID_INPUT, "This sign-in attempt is no longer active. Please start again."
            )

        identity, error = await self._delegate(
            "code verification", self._provider.verify_code(request_id, code)
        )
        if error:
            return self._fail_verification(state, error)
        return self._authenticate(state, identity)

    async def submit_link_token(self, state: FlowState, token: str | None) -> FlowOutcome:
        if not state.request_id:
            return self._reject(
                state, ErrorKind.INVALID_LINK, "Invalid magic link - please try again"
            )
        if not token:
            return self._reject(state, ErrorKind.INVALID_LINK, "Invalid magic link")

        identity, error = await self._delegate(
            "magic link verification", self._provider.verify_link(state.request_id, token)
        )
        if error:
            return self._fail_verification(state, error)
        return self._authenticate(state, identity)

    async def resend(self, state: FlowState, request_id: str | None) -> FlowOutcome:
        if not request_id:
            return self._reject(state, ErrorKind.INVALID_INPUT, "Auth request ID is required")
        if state.step != FlowStep.AWAITING_VERIFICATION or request_id != state.request_id:
            return self._reject(
                state, ErrorKind.INVALID_INPUT, "This sign-in attempt is no longer active. Please start again."
            )

        _, error = await self._delegate("resend code", self._provider.resend(request_id))
        return FlowOutcome(state=state, error=error)

    async def exchange_code(
        self, code: str | None, error: str | None = None, error_description: str | None = None
    ) -> FlowOutcome:
        """Complete the OAuth-style redirect path by exchanging an authorization code."""
        failed = FlowState(step=FlowStep.FAILED)
        if error:
            logger.warning("Provider redirected with error %s", error)
            return FlowOutcome(state=failed, error=classify(ErrorKind.INVALID_INPUT, error_description or error))
        if not code:
            return FlowOutcome(
                state=failed, error=classify(ErrorKind.INVALID_INPUT, "No authorization code received")
            )

        identity, failure = await self._delegate(
            "authentication callback",
            self._provider.authenticate_with_code(code, self._settings.redirect_uri),
        )
        if failure:
            return FlowOutcome(state=failed, error=failure)
        return self._authenticate(failed, identity, expires_in=identity.expires_in)

    async def _delegate(
        self, context: str, call: Awaitable[T]
    ) -> tuple[T | None, ErrorClassification | None]:
        try:
            return await call, None
        except ProviderError as exc:
            logger.warning("Provider rejected %s (code=%s)", context, exc.code)
            return None, self._translator.translate(exc.code, exc.message, context)

    def _reject(self, state: FlowState, kind: ErrorKind, message: str) -> FlowOutcome:
        return FlowOutcome(state=state, error=classify(kind, message))

    def _fail_verification(self, state: FlowState, error: ErrorClassification) -> FlowOutcome:
        if error.kind in RESTART_KINDS:
            return FlowOutcome(state=FlowState(email=state.email), error=error)
        return FlowOutcome(state=state, error=error)

    def _authenticate(
        self, state: FlowState, identity: VerifiedIdentity, expires_in: int | None = None
    ) -> FlowOutcome:
        if not identity.email:
            logger.error("Provider confirmed verification without returning an email")
            return FlowOutcome(
                state=state,
                error=classify(
                    ErrorKind.TRANSIENT, "Verification succeeded but no email address was returned", 500
                ),
            )

        session = SessionRecord(
            subject=identity.email,
            expires_in=expires_in if expires_in and expires_in > 0 else self._settings.SESSION_EXPIRE_SECONDS,
        )
        authenticated = replace(state, step=FlowStep.AUTHENTICATED, request_id=None, email=identity.email)
        return FlowOutcome(state=authenticated, session=session)
