from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Tuple

from jose import JWTError, jwt

from blogapi.core.config import Settings
from blogapi.utils.timeutil import Clock, as_utc, utcnow


@dataclass(frozen=True)
class TokenConfig:
    secret_key: str
    refresh_secret_key: str
    recovery_secret_key: str
    algorithm: str = "HS256"
    access_lifetime: timedelta = timedelta(minutes=10)
    refresh_lifetime: timedelta = timedelta(days=14)
    recovery_lifetime: timedelta = timedelta(hours=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(
            secret_key=settings.jwt_secret_key,
            refresh_secret_key=settings.jwt_refresh_secret_key or settings.jwt_secret_key,
            recovery_secret_key=settings.jwt_recovery_secret_key or settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            access_lifetime=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_lifetime=timedelta(minutes=settings.refresh_token_expire_minutes),
            recovery_lifetime=timedelta(minutes=settings.recovery_code_expire_minutes),
        )


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str
    device_id: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """
    Stateless signing and verification of access, refresh and recovery tokens.

    Verification never raises: every failure (bad signature, expiry, wrong token
    type, missing or malformed claim) comes back as None and callers turn that
    into Unauthorized.
    """

    def __init__(self, config: TokenConfig, clock: Clock = utcnow) -> None:
        self.config = config
        self.clock = clock

    def reconfigure(self, **changes: Any) -> None:
        """Swap lifetimes/secrets at runtime (admin and test use only)."""
        self.config = replace(self.config, **changes)

    def _encode(self, payload: dict, secret: str, expires_at: datetime) -> str:
        now = self.clock()
        return jwt.encode(
            {
                **payload,
                "iat": int(now.timestamp()),
                "exp": int(expires_at.timestamp()),
            },
            secret,
            algorithm=self.config.algorithm,
        )

    def _decode(self, token: str, secret: str, typ: str) -> Optional[dict]:
        if not token:
            return None
        try:
            # Expiry is checked against the service clock below, not the wall clock
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.config.algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None
        if payload.get("typ") != typ or not payload.get("sub"):
            return None
        try:
            expires = int(payload["exp"])
        except (KeyError, TypeError, ValueError):
            return None
        if expires <= self.clock().timestamp():
            return None
        return payload

    # Access tokens

    def issue_access_token(self, user_id: Any) -> str:
        expires_at = self.clock() + self.config.access_lifetime
        return self._encode({"sub": str(user_id), "typ": "access"}, self.config.secret_key, expires_at)

    def verify_access_token(self, token: str) -> Optional[str]:
        payload = self._decode(token, self.config.secret_key, "access")
        if payload is None:
            return None
        return str(payload["sub"])

    # Refresh tokens

    def new_refresh_window(self, previous: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        """
        Return (issued_at, expires_at) for a new refresh token.

        issued_at strictly follows `previous` so a rotation can never produce a
        token indistinguishable from the one it replaces.
        """
        issued_at = self.clock()
        previous = as_utc(previous)
        if previous is not None and issued_at <= previous:
            issued_at = previous + timedelta(milliseconds=1)
        return issued_at, issued_at + self.config.refresh_lifetime

    def issue_refresh_token(self, user_id: Any, device_id: str, issued_at: datetime, expires_at: datetime) -> str:
        return self._encode(
            {
                "sub": str(user_id),
                "device_id": device_id,
                "issued_at": as_utc(issued_at).isoformat(),
                "typ": "refresh",
            },
            self.config.refresh_secret_key,
            expires_at,
        )

    def verify_refresh_token(self, token: str) -> Optional[RefreshClaims]:
        payload = self._decode(token, self.config.refresh_secret_key, "refresh")
        if payload is None:
            return None
        return _refresh_claims(payload)

    def decode_refresh_token(self, token: str) -> Optional[RefreshClaims]:
        """Read claims without checking signature or expiry. Diagnostics only."""
        if not token:
            return None
        try:
            payload = jwt.get_unverified_claims(token)
        except JWTError:
            return None
        if payload.get("typ") != "refresh":
            return None
        return _refresh_claims(payload)

    # Password recovery codes

    def issue_recovery_code(self, user_id: Any) -> str:
        expires_at = self.clock() + self.config.recovery_lifetime
        return self._encode(
            {"sub": str(user_id), "typ": "recovery", "jti": uuid.uuid4().hex},
            self.config.recovery_secret_key,
            expires_at,
        )

    def recovery_code_expires_at(self) -> datetime:
        return self.clock() + self.config.recovery_lifetime

    def verify_recovery_code(self, code: str) -> Optional[str]:
        payload = self._decode(code, self.config.recovery_secret_key, "recovery")
        if payload is None:
            return None
        return str(payload["sub"])


def _refresh_claims(payload: dict) -> Optional[RefreshClaims]:
    try:
        device_id = str(payload["device_id"])
        issued_at = as_utc(datetime.fromisoformat(str(payload["issued_at"])))
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        user_id = str(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
    if not device_id or not user_id:
        return None
    return RefreshClaims(user_id=user_id, device_id=device_id, issued_at=issued_at, expires_at=expires_at)
