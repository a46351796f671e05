"""Translation of provider error codes into user-facing classifications."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class ErrorKind(StrEnum):
    """Stable taxonomy of failures surfaced to the user."""

    INVALID_INPUT = "invalid-input"
    RATE_LIMITED = "rate-limited"
    EXPIRED = "expired"
    INVALID_CODE = "invalid-code"
    INVALID_LINK = "invalid-link"
    TOO_MANY_ATTEMPTS = "too-many-attempts"
    TRANSIENT = "transient"


class SuggestedAction(StrEnum):
    """What the user should do next."""

    RETRY_SAME_STEP = "retry-same-step"
    RESTART_FLOW = "restart-flow"
    WAIT_AND_RETRY = "wait-and-retry"


ACTION_BY_KIND: dict[ErrorKind, SuggestedAction] = {
    ErrorKind.INVALID_INPUT: SuggestedAction.RETRY_SAME_STEP,
    ErrorKind.INVALID_CODE: SuggestedAction.RETRY_SAME_STEP,
    ErrorKind.RATE_LIMITED: SuggestedAction.WAIT_AND_RETRY,
    ErrorKind.EXPIRED: SuggestedAction.RESTART_FLOW,
    ErrorKind.TOO_MANY_ATTEMPTS: SuggestedAction.RESTART_FLOW,
    ErrorKind.INVALID_LINK: SuggestedAction.RESTART_FLOW,
    ErrorKind.TRANSIENT: SuggestedAction.RESTART_FLOW,
}

# Kinds after which the in-flight verification attempt cannot be reused.
RESTART_KINDS = frozenset({ErrorKind.EXPIRED, ErrorKind.TOO_MANY_ATTEMPTS})


@dataclass(frozen=True)
class ErrorClassification:
    kind: ErrorKind
    message: str
    status_code: int

    @property
    def action(self) -> SuggestedAction:
        return ACTION_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "kind": str(self.kind), "action": str(self.action)}


def classify(kind: ErrorKind, message: str, status_code: int = 400) -> ErrorClassification:
    """Build a classification for a locally detected failure."""
    return ErrorClassification(kind=kind, message=message, status_code=status_code)


DEFAULT_ERROR_TABLE: dict[str, ErrorClassification] = {
    "INVALID_EMAIL": classify(ErrorKind.INVALID_INPUT, "Invalid email address", 400),
    "RATE_LIMIT_EXCEEDED": classify(
        ErrorKind.RATE_LIMITED, "Too many requests. Please try again later.", 429
    ),
    "AUTH_REQUEST_EXPIRED": classify(ErrorKind.EXPIRED, "Authentication request has expired", 400),
    "INVALID_CODE": classify(ErrorKind.INVALID_CODE, "Invalid verification code. Please try again.", 400),
    "CODE_EXPIRED": classify(
        ErrorKind.EXPIRED, "Verification code has expired. Please request a new one.", 400
    ),
    "TOO_MANY_ATTEMPTS": classify(
        ErrorKind.TOO_MANY_ATTEMPTS, "Too many verification attempts. Please request a new code.", 429
    ),
    "INVALID_LINK_TOKEN": classify(
        ErrorKind.INVALID_LINK, "Invalid or expired magic link. Please request a new one.", 400
    ),
    "INVALID_ARGUMENT": classify(
        ErrorKind.INVALID_INPUT, "Invalid authentication request. Please try again.", 400
    ),
}


class ErrorTranslator:
    """Maps provider error codes onto :class:`ErrorClassification` values.

    The lookup table is injected so deployments (and tests) can extend it
    without touching the flow controller. Codes missing from the table are
    treated as transient failures carrying the provider's own message.
    """

    def __init__(self, table: Mapping[str, ErrorClassification] | None = None) -> None:
        self._table = dict(DEFAULT_ERROR_TABLE if table is None else table)

    def translate(
        self, code: str | None, message: str | None = None, context: str = "complete authentication"
    ) -> ErrorClassification:
        if code and code in self._table:
            return self._table[code]

        logger.warning("Unmapped provider error code %r during %s", code, context)
        return classify(ErrorKind.TRANSIENT, message or f"Failed to {context}", 500)

    def with_overrides(self, overrides: Mapping[str, ErrorClassification]) -> "ErrorTranslator":
        table = dict(self._table)
        table.update(overrides)
        return ErrorTranslator(table)

