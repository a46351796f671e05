"""Auth API routes."""

from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from api.handlers import classification_response, to_exception
from auth.config import AuthSettings, get_settings
from auth.dependencies import (
    AUTH_REQUEST_COOKIE,
    SESSION_COOKIE,
    clear_cookie,
    get_current_session,
    get_flow_controller,
    get_flow_state,
    get_session_codec,
    set_cookie,
    set_session_cookie,
)
from auth.flow import FlowController, FlowOutcome, FlowState
from auth.schemas import (
    ErrorResponse,
    InitiateRequest,
    InitiateResponse,
    MessageResponse,
    ResendRequest,
    SessionResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from auth.session import SessionCodec, SessionRecord

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        429: {"model": ErrorResponse, "description": "Too Many Requests"},
        500: {"model": ErrorResponse, "description": "Provider Error"},
    },
)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


def _login_redirect(settings: AuthSettings, message: str) -> RedirectResponse:
    return _redirect(f"{settings.APP_URL}/login?error={quote(message)}")


def _request_abandoned(before: FlowState, outcome: FlowOutcome) -> bool:
    return bool(before.request_id) and not outcome.state.request_id


@router.post("/initiate", response_model=InitiateResponse, status_code=status.HTTP_200_OK)
async def initiate(
    payload: InitiateRequest,
    response: Response,
    state: FlowState = Depends(get_flow_state),
    controller: FlowController = Depends(get_flow_controller),
    settings: AuthSettings = Depends(get_settings),
) -> InitiateResponse:
    outcome = await controller.submit_email(state, payload.email)
    if outcome.error:
        raise to_exception(outcome.error)

    set_cookie(
        response,
        settings,
        AUTH_REQUEST_COOKIE,
        outcome.state.request_id,
        max_age=settings.AUTH_REQUEST_COOKIE_MAX_AGE,
    )
    return InitiateResponse(
        message="Verification email sent! You can enter the code or click the magic link.",
        auth_req_id=outcome.state.request_id,
        passwordless_type=str(outcome.state.mode),
    )


@router.post("/verify", response_model=VerifyCodeResponse, status_code=status.HTTP_200_OK)
async def verify(
    payload: VerifyCodeRequest,
    response: Response,
    state: FlowState = Depends(get_flow_state),
    controller: FlowController = Depends(get_flow_controller),
    codec: SessionCodec = Depends(get_session_codec),
    settings: AuthSettings = Depends(get_settings),
):
    outcome = await controller.submit_code(state, payload.auth_req_id, payload.code)
    if outcome.error:
        if not _request_abandoned(state, outcome):
            raise to_exception(outcome.error)
        error_response: JSONResponse = classification_response(outcome.error)
        clear_cookie(error_response, settings, AUTH_REQUEST_COOKIE)
        return error_response

    set_session_cookie(response, settings, codec, outcome.session)
    clear_cookie(response, settings, AUTH_REQUEST_COOKIE)
    logger.info("Code verification completed")
    return VerifyCodeResponse(message="Verification successful", user=outcome.session.to_public_dict())


@router.get("/verify-magic-link")
async def verify_magic_link(
    link_token: str | None = None,
    state: FlowState = Depends(get_flow_state),
    controller: FlowController = Depends(get_flow_controller),
    codec: SessionCodec = Depends(get_session_codec),
    settings: AuthSettings = Depends(get_settings),
) -> RedirectResponse:
    outcome = await controller.submit_link_token(state, link_token)
    if outcome.error:
        redirect_response = _login_redirect(settings, outcome.error.message)
        if _request_abandoned(state, outcome):
            clear_cookie(redirect_response, settings, AUTH_REQUEST_COOKIE)
        return redirect_response

    redirect_response = _redirect(f"{settings.APP_URL}/dashboard")
    set_session_cookie(redirect_response, settings, codec, outcome.session)
    clear_cookie(redirect_response, settings, AUTH_REQUEST_COOKIE)
    logger.info("Magic link verification completed")
    return redirect_response


@router.post("/resend", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def resend(
    payload: ResendRequest,
    response: Response,
    state: FlowState = Depends(get_flow_state),
    controller: FlowController = Depends(get_flow_controller),
    settings: AuthSettings = Depends(get_settings),
) -> MessageResponse:
    outcome = await controller.resend(state, payload.auth_req_id)
    if outcome.error:
        raise to_exception(outcome.error)

    set_cookie(
        response,
        settings,
        AUTH_REQUEST_COOKIE,
        outcome.state.request_id,
        max_age=settings.AUTH_REQUEST_COOKIE_MAX_AGE,
    )
    return MessageResponse(message="Verification code resent")


@router.get("/callback")
async def callback(
    code: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    controller: FlowController = Depends(get_flow_controller),
    codec: SessionCodec = Depends(get_session_codec),
    settings: AuthSettings = Depends(get_settings),
) -> RedirectResponse:
    outcome = await controller.exchange_code(code, error=error, error_description=error_description)
    if outcome.error:
        return _login_redirect(settings, outcome.error.message)

    redirect_response = _redirect(f"{settings.APP_URL}/dashboard")
    set_session_cookie(redirect_response, settings, codec, outcome.session)
    return redirect_response


@router.get("/session", response_model=SessionResponse, status_code=status.HTTP_200_OK)
async def session(current: SessionRecord = Depends(get_current_session)) -> SessionResponse:
    return SessionResponse(authenticated=True, user=current.to_public_dict())


@router.post("/logout", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def logout(
    response: Response,
    settings: AuthSettings = Depends(get_settings),
) -> MessageResponse:
    clear_cookie(response, settings, SESSION_COOKIE)
    clear_cookie(response, settings, AUTH_REQUEST_COOKIE)
    return MessageResponse(message="Logged out")
