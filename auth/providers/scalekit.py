"""Scalekit passwordless provider over its REST API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx
from jose import JWTError, jwt

from auth.config import AuthSettings
from auth.exceptions import ProviderError
from auth.interfaces.verification_provider import StartedVerification, VerificationMode, VerifiedIdentity

logger = logging.getLogger(__name__)

SEND_PATH = "/api/v1/passwordless/email/send"
VERIFY_PATH = "/api/v1/passwordless/email/verify"
RESEND_PATH = "/api/v1/passwordless/email/resend"
TOKEN_PATH = "/oauth/token"

# Refresh the client-credentials token this many seconds before it expires.
TOKEN_REFRESH_MARGIN = 30


def _error_code_from_body(body: Any) -> tuple[str | None, str]:
    if not isinstance(body, dict):
        return None, ""
    message = str(body.get("message") or body.get("error_description") or "")
    code = body.get("error_code") or body.get("errorCode")
    if not code:
        for detail in body.get("details") or []:
            if isinstance(detail, dict) and (detail.get("error_code") or detail.get("errorCode")):
                code = detail.get("error_code") or detail.get("errorCode")
                break
    if not code and isinstance(body.get("error"), str):
        code = body["error"].upper()
    return (str(code) if code else None), message


def _raise_for_error(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    try:
        body = response.json()
    except ValueError:
        body = None
    code, message = _error_code_from_body(body)
    if not code:
        if response.status_code == 429:
            code = "RATE_LIMIT_EXCEEDED"
        elif response.status_code == 400:
            code = "INVALID_ARGUMENT"
        else:
            code = f"HTTP_{response.status_code}"
    raise ProviderError(code, message)


def _success_body(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError as exc:
        raise ProviderError("PROVIDER_UNAVAILABLE", "Provider returned an unreadable response") from exc
    if not isinstance(body, dict):
        raise ProviderError("PROVIDER_UNAVAILABLE", "Provider returned an unexpected response")
    return body


class ScalekitProvider:
    def __init__(
        self,
        environment_url: str,
        client_id: str,
        client_secret: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = environment_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._transport = transport
        self._token_lock = asyncio.Lock()
        self._access_token: str | None = None
        self._access_token_expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> "ScalekitProvider":
        return cls(
            environment_url=settings.SCALEKIT_ENVIRONMENT_URL,
            client_id=settings.SCALEKIT_CLIENT_ID,
            client_secret=settings.SCALEKIT_CLIENT_SECRET,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    async def _post_form(self, path: str, data: dict[str, str]) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(
                    path,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as exc:
            raise ProviderError("PROVIDER_UNAVAILABLE", "Authentication service is unavailable") from exc
        _raise_for_error(response)
        return _success_body(response)

    async def _access(self) -> str:
        async with self._token_lock:
            if self._access_token and time.time() < self._access_token_expires_at - TOKEN_REFRESH_MARGIN:
                return self._access_token

            token_data = await self._post_form(
                TOKEN_PATH,
                {
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
            )
            access_token = token_data.get("access_token")
            if not access_token:
                raise ProviderError("PROVIDER_UNAVAILABLE", "Provider token response missing access token")
            self._access_token = access_token
            self._access_token_expires_at = time.time() + int(token_data.get("expires_in", 0))
            return access_token

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        access_token = await self._access()
        try:
            async with self._client() as client:
                response = await client.post(
                    path,
                    json=payload,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            raise ProviderError("PROVIDER_UNAVAILABLE", "Authentication service is unavailable") from exc
        _raise_for_error(response)
        return _success_body(response)

    async def start_verification(
        self, email: str, expires_in: int, magic_link_uri: str
    ) -> StartedVerification:
        data = await self._post_json(
            SEND_PATH,
            {
                "email": email,
                "expires_in": expires_in,
                "magiclink_auth_uri": magic_link_uri,
            },
        )
        request_id = data.get("auth_request_id")
        if not request_id:
            raise ProviderError("PROVIDER_UNAVAILABLE", "Provider response missing auth request id")
        try:
            mode = VerificationMode(data.get("passwordless_type") or VerificationMode.LINK_OTP)
        except ValueError:
            logger.warning("Unknown passwordless type %r, assuming LINK_OTP", data.get("passwordless_type"))
            mode = VerificationMode.LINK_OTP
        return StartedVerification(request_id=request_id, mode=mode, expires_in=data.get("expires_in"))

    async def verify_code(self, request_id: str, code: str) -> VerifiedIdentity:
        data = await self._post_json(VERIFY_PATH, {"auth_request_id": request_id, "code": code})
        return VerifiedIdentity(email=data.get("email"))

    async def verify_link(self, request_id: str, link_token: str) -> VerifiedIdentity:
        data = await self._post_json(VERIFY_PATH, {"auth_request_id": request_id, "link_token": link_token})
        return VerifiedIdentity(email=data.get("email"))

    async def resend(self, request_id: str) -> None:
        await self._post_json(RESEND_PATH, {"auth_request_id": request_id})

    async def authenticate_with_code(self, code: str, redirect_uri: str) -> VerifiedIdentity:
        token_data = await self._post_form(
            TOKEN_PATH,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )
        id_token = token_data.get("id_token")
        email = None
        if id_token:
            try:
                email = jwt.get_unverified_claims(id_token).get("email")
            except JWTError as exc:
                raise ProviderError("INVALID_ARGUMENT", "Provider returned an unreadable ID token") from exc
        return VerifiedIdentity(
            email=email,
            expires_in=token_data.get("expires_in"),
            id_token=id_token,
            access_token=token_data.get("access_token"),
        )
