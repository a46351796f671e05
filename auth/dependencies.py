"""Auth dependency helpers."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Cookie, Depends, Request, Response

from auth.config import AuthSettings, get_settings
from auth.errors import ErrorTranslator
from auth.exceptions import AuthException
from auth.flow import FlowController, FlowState
from auth.interfaces.verification_provider import VerificationProvider
from auth.providers.memory import MemoryProvider
from auth.providers.scalekit import ScalekitProvider
from auth.session import SessionCodec, SessionRecord

SESSION_COOKIE = "user-session"
AUTH_REQUEST_COOKIE = "auth-request-id"


def build_provider(settings: AuthSettings) -> VerificationProvider:
    if settings.AUTH_PROVIDER == "memory":
        return MemoryProvider.from_settings(settings)
    return ScalekitProvider.from_settings(settings)


def get_provider(request: Request) -> VerificationProvider:
    return request.app.state.provider


@lru_cache
def get_error_translator() -> ErrorTranslator:
    return ErrorTranslator()


def get_flow_controller(
    settings: AuthSettings = Depends(get_settings),
    provider: VerificationProvider = Depends(get_provider),
    translator: ErrorTranslator = Depends(get_error_translator),
) -> FlowController:
    return FlowController(provider=provider, settings=settings, translator=translator)


def get_session_codec(settings: AuthSettings = Depends(get_settings)) -> SessionCodec:
    return SessionCodec.from_settings(settings)


def get_flow_state(
    auth_request_id: str | None = Cookie(default=None, alias=AUTH_REQUEST_COOKIE),
) -> FlowState:
    return FlowState.from_request_id(auth_request_id)


def get_optional_session(
    user_session: str | None = Cookie(default=None, alias=SESSION_COOKIE),
    codec: SessionCodec = Depends(get_session_codec),
) -> SessionRecord | None:
    return codec.decode(user_session)


def get_current_session(session: SessionRecord | None = Depends(get_optional_session)) -> SessionRecord:
    if session is None:
        raise AuthException("Not authenticated", status_code=401)
    return session


def set_cookie(
    response: Response,
    settings: AuthSettings,
    key: str,
    value: str,
    max_age: int | None = None,
) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        httponly=settings.COOKIE_HTTP_ONLY,
        secure=settings.cookie_secure,
        samesite=settings.COOKIE_SAME_SITE,
        domain=settings.COOKIE_DOMAIN,
    )


def clear_cookie(response: Response, settings: AuthSettings, key: str) -> None:
    set_cookie(response, settings, key, "", max_age=0)


def set_session_cookie(
    response: Response, settings: AuthSettings, codec: SessionCodec, session: SessionRecord
) -> None:
    set_cookie(response, settings, SESSION_COOKIE, codec.encode(session), max_age=codec.max_age(session))
