"""Auth request/response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InitiateRequest(BaseModel):
    email: str | None = None

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str | None) -> str | None:
        return v.strip().lower() if v else v


class VerifyCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auth_req_id: str | None = Field(default=None, alias="authReqId")
    code: str | None = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str | None) -> str | None:
        return v.strip() if v else v


class ResendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auth_req_id: str | None = Field(default=None, alias="authReqId")


class InitiateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    auth_req_id: str = Field(alias="authReqId")
    passwordless_type: str = Field(alias="passwordlessType")


class VerifyCodeResponse(BaseModel):
    success: bool = True
    message: str
    user: dict[str, Any]


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class SessionResponse(BaseModel):
    authenticated: bool
    user: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: str
    kind: str | None = None
    action: str | None = None
