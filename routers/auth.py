from fastapi import APIRouter, Depends, status

from deps import AuthContext, Services, check_identity, extract_auth, get_services, rate_limited, require_auth
from logging_config import get_logger
from schemas.auth import (
    GenerateTokenRequest,
    LoginRequest,
    LogoutResponse,
    PasswordStatusResponse,
    RefreshTokenRequest,
    SetPasswordRequest,
    TokenListResponse,
    TokenResponse,
    VerifyTokenResponse,
)
from schemas.base import SuccessResponse

logger = get_logger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post(
    "/token",
    status_code=status.HTTP_201_CREATED,
    response_model=TokenResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limited("generateToken"))],
)
async def generate_token(
    body: GenerateTokenRequest,
    auth: AuthContext = Depends(require_auth),
    services: Services = Depends(get_services),
):
    check_identity(auth, body.username)
    token = await services.auth.generate_token(body.username or auth.username)
    return TokenResponse(token=token)


@auth_router.post(
    "/token/refresh",
    status_code=status.HTTP_201_CREATED,
    response_model=TokenResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limited("refreshToken"))],
)
async def refresh_token(body: RefreshTokenRequest, services: Services = Depends(get_services)):
    token = await services.auth.refresh_token(body.username, body.old_token)
    return TokenResponse(token=token)


@auth_router.get("/verify", response_model=VerifyTokenResponse, response_model_exclude_none=True)
async def verify_token(auth: AuthContext = Depends(extract_auth), services: Services = Depends(get_services)):
    identity = await services.auth.verify_token(auth.token)
    if identity.expired:
        return VerifyTokenResponse(
            username=identity.username,
            message="Token is within grace period",
            expired=True,
            expired_at=identity.expired_at,
        )
    return VerifyTokenResponse(username=identity.username, message="Token is valid")


@auth_router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(rate_limited("authenticateWithPassword"))],
)
async def login(body: LoginRequest, services: Services = Depends(get_services)):
    token = await services.auth.login_with_password(body.username, body.password, body.old_token)
    return TokenResponse(token=token, username=body.username.lower())


@auth_router.post(
    "/password",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limited("setPassword"))],
)
async def set_password(
    body: SetPasswordRequest,
    auth: AuthContext = Depends(require_auth),
    services: Services = Depends(get_services),
):
    await services.auth.set_password(auth.username, body.password)
    return SuccessResponse()


@auth_router.get("/password", response_model=PasswordStatusResponse)
async def check_password(auth: AuthContext = Depends(require_auth), services: Services = Depends(get_services)):
    has_password = await services.auth.has_password(auth.username)
    return PasswordStatusResponse(has_password=has_password, username=auth.username)


@auth_router.get("/tokens", response_model=TokenListResponse)
async def list_tokens(auth: AuthContext = Depends(require_auth), services: Services = Depends(get_services)):
    tokens = await services.auth.list_tokens(auth.username, current_token=auth.token)
    return TokenListResponse(tokens=tokens, count=len(tokens))


@auth_router.post("/logout-all", response_model=LogoutResponse)
async def logout_all_devices(auth: AuthContext = Depends(require_auth), services: Services = Depends(get_services)):
    deleted_count = await services.auth.logout_all(auth.username)
    return LogoutResponse(message=f"Logged out from {deleted_count} devices", deleted_count=deleted_count)


@auth_router.post("/logout", response_model=LogoutResponse, response_model_exclude_none=True)
async def logout(auth: AuthContext = Depends(require_auth), services: Services = Depends(get_services)):
    await services.auth.logout(auth.username, auth.token)
    return LogoutResponse(message="Logged out from current session")
