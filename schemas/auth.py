from typing import Optional

from schemas.base import ApiModel


class GenerateTokenRequest(ApiModel):
    username: Optional[str] = None


class RefreshTokenRequest(ApiModel):
    username: Optional[str] = None
    old_token: Optional[str] = None


class LoginRequest(ApiModel):
    username: Optional[str] = None
    password: Optional[str] = None
    old_token: Optional[str] = None


class SetPasswordRequest(ApiModel):
    password: Optional[str] = None


class TokenResponse(ApiModel):
    token: str
    username: Optional[str] = None


class VerifyTokenResponse(ApiModel):
    valid: bool = True
    username: str
    message: str
    expired: bool = False
    expired_at: Optional[int] = None


class PasswordStatusResponse(ApiModel):
    has_password: bool
    username: str


class TokenSummary(ApiModel):
    masked_token: str
    created_at: Optional[int] = None
    is_current: bool = False


class TokenListResponse(ApiModel):
    tokens: list[TokenSummary]
    count: int


class LogoutResponse(ApiModel):
    success: bool = True
    message: str
    deleted_count: Optional[int] = None
