import secrets

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session

from blogapi.container import AuthRuntime
from blogapi.core.errors import Forbidden, RateLimited, Unauthorized
from blogapi.core.rate_limit import get_client_ip
from blogapi.db.session import get_db_session
from blogapi.models.user import User
from blogapi.services.auth_flows import AuthFlows, RefreshContext


DEFAULT_IP = "Unknown"
DEFAULT_DEVICE_NAME = "Unknown"

_basic = HTTPBasic(auto_error=False)


def get_runtime(request: Request) -> AuthRuntime:
    return request.app.state.runtime


def get_auth_flows(
    runtime: AuthRuntime = Depends(get_runtime),
    db: Session = Depends(get_db_session),
) -> AuthFlows:
    return runtime.auth_flows(db)


def rate_limited(
    request: Request,
    runtime: AuthRuntime = Depends(get_runtime),
    db: Session = Depends(get_db_session),
) -> None:
    """Record the request for (ip, path) and reject it past the window limit."""
    if not runtime.rate_limit.enabled:
        return
    ip = get_client_ip(request, runtime.settings.trust_proxy_headers)
    if not ip:
        raise Forbidden("Client address unavailable")
    res = runtime.throttle(db).hit(ip, request.url.path)
    if not res.allowed:
        raise RateLimited(res.retry_after_seconds)


def client_ip(request: Request, runtime: AuthRuntime = Depends(get_runtime)) -> str:
    return get_client_ip(request, runtime.settings.trust_proxy_headers) or DEFAULT_IP


def device_name(request: Request) -> str:
    return (request.headers.get("user-agent") or "").strip() or DEFAULT_DEVICE_NAME


def get_refresh_token(request: Request, runtime: AuthRuntime = Depends(get_runtime)) -> str:
    return request.cookies.get(runtime.settings.cookie_refresh_name) or ""


def get_current_user(request: Request, flows: AuthFlows = Depends(get_auth_flows)) -> User:
    """Resolve the bearer access token to a live (non-deleted) user or 401."""
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized()
    return flows.current_user(token.strip())


def get_refresh_context(
    refresh_token: str = Depends(get_refresh_token),
    flows: AuthFlows = Depends(get_auth_flows),
) -> RefreshContext:
    """The acting device session, identified by a current refresh cookie."""
    return flows.authenticate_refresh(refresh_token)


def require_admin(
    credentials: HTTPBasicCredentials = Depends(_basic),
    runtime: AuthRuntime = Depends(get_runtime),
) -> str:
    settings = runtime.settings
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Basic"})
    login_ok = secrets.compare_digest(credentials.username.encode("utf-8"), settings.admin_login.encode("utf-8"))
    password_ok = secrets.compare_digest(credentials.password.encode("utf-8"), settings.admin_password.encode("utf-8"))
    if not (login_ok and password_ok):
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Basic"})
    return credentials.username
