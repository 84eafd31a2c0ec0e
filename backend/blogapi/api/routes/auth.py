from datetime import datetime

from fastapi import APIRouter, Depends, Response, status

from blogapi.api.deps import (
    client_ip,
    device_name,
    get_auth_flows,
    get_current_user,
    get_refresh_token,
    get_runtime,
    rate_limited,
)
from blogapi.container import AuthRuntime
from blogapi.core.errors import Unauthorized, error_response
from blogapi.models.user import User
from blogapi.schemas.auth import (
    ConfirmationRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    NewPasswordRequest,
    RegistrationRequest,
)
from blogapi.services.auth_flows import AuthFlows

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: Response, *, refresh_token: str, expires_at: datetime, settings) -> None:
    response.set_cookie(
        key=settings.cookie_refresh_name,
        value=refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path=settings.refresh_cookie_path,
        domain=settings.cookie_domain,
        expires=expires_at,
    )


def _clear_refresh_cookie(response: Response, settings) -> None:
    response.delete_cookie(
        settings.cookie_refresh_name,
        path=settings.refresh_cookie_path,
        domain=settings.cookie_domain,
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )


def _unauthorized_clearing_cookie(exc: Unauthorized, settings) -> Response:
    resp = error_response(exc)
    _clear_refresh_cookie(resp, settings)
    return resp


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(rate_limited)])
def login(
    payload: LoginRequest,
    response: Response,
    ip: str = Depends(client_ip),
    title: str = Depends(device_name),
    flows: AuthFlows = Depends(get_auth_flows),
    runtime: AuthRuntime = Depends(get_runtime),
):
    """
    Authenticate by login or email and open a new device session.

    The access token goes in the body; the refresh token is only ever set as an
    HttpOnly cookie scoped to the API prefix.
    """
    pair = flows.login(payload.loginOrEmail, payload.password, title, ip)
    _set_refresh_cookie(
        response,
        refresh_token=pair.refresh_token,
        expires_at=pair.refresh_expires_at,
        settings=runtime.settings,
    )
    return {"accessToken": pair.access_token}


@router.post("/refresh-token", response_model=LoginResponse)
def refresh_token(
    response: Response,
    raw: str = Depends(get_refresh_token),
    ip: str = Depends(client_ip),
    flows: AuthFlows = Depends(get_auth_flows),
    runtime: AuthRuntime = Depends(get_runtime),
):
    """Rotate the refresh token for the current device. The old token stops working immediately."""
    settings = runtime.settings
    try:
        pair = flows.refresh(raw, ip)
    except Unauthorized as exc:
        return _unauthorized_clearing_cookie(exc, settings)
    _set_refresh_cookie(response, refresh_token=pair.refresh_token, expires_at=pair.refresh_expires_at, settings=settings)
    return {"accessToken": pair.access_token}


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    raw: str = Depends(get_refresh_token),
    flows: AuthFlows = Depends(get_auth_flows),
    runtime: AuthRuntime = Depends(get_runtime),
):
    settings = runtime.settings
    try:
        flows.logout(raw)
    except Unauthorized as exc:
        return _unauthorized_clearing_cookie(exc, settings)
    resp = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_refresh_cookie(resp, settings)
    return resp


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return {"userId": str(user.id), "login": user.login, "email": user.email}


@router.post("/registration", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(rate_limited)])
def registration(payload: RegistrationRequest, flows: AuthFlows = Depends(get_auth_flows)):
    flows.register(payload.login, payload.email, payload.password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/registration-confirmation",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(rate_limited)],
)
def registration_confirmation(payload: ConfirmationRequest, flows: AuthFlows = Depends(get_auth_flows)):
    flows.confirm_registration(payload.code)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/registration-email-resending",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(rate_limited)],
)
def registration_email_resending(payload: EmailRequest, flows: AuthFlows = Depends(get_auth_flows)):
    flows.resend_confirmation(payload.email)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/password-recovery", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(rate_limited)])
def password_recovery(payload: EmailRequest, flows: AuthFlows = Depends(get_auth_flows)):
    """Always 204, whether or not the email belongs to anyone."""
    flows.request_password_recovery(payload.email)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/new-password", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(rate_limited)])
def new_password(payload: NewPasswordRequest, flows: AuthFlows = Depends(get_auth_flows)):
    flows.confirm_password_recovery(payload.newPassword, payload.recoveryCode)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
