from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from blogapi.core.errors import Forbidden, InvalidCredentials, Unauthorized
from blogapi.core.tokens import RefreshClaims, TokenService
from blogapi.models.device_session import DeviceAuthSession
from blogapi.models.user import User
from blogapi.services.codes import ConfirmationCodeManager, RecoveryCodeManager
from blogapi.services.credentials import CredentialVerifier
from blogapi.services.sessions import DeviceSessionRegistry
from blogapi.services.users import UserStore, UsersService


logger = logging.getLogger("blog.auth")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class RefreshContext:
    """The acting principal behind a valid, current refresh token."""

    user: User
    claims: RefreshClaims


class AuthFlows:
    """
    Login, refresh, logout, registration, confirmation and recovery.

    Every check fails closed: anything short of a verified token whose
    issued_at is still the registry's current value for the device ends in
    Unauthorized.
    """

    def __init__(
        self,
        users: UserStore,
        users_service: UsersService,
        verifier: CredentialVerifier,
        tokens: TokenService,
        registry: DeviceSessionRegistry,
        confirmations: ConfirmationCodeManager,
        recoveries: RecoveryCodeManager,
        *,
        require_confirmed_email: bool = False,
    ) -> None:
        self.users = users
        self.users_service = users_service
        self.verifier = verifier
        self.tokens = tokens
        self.registry = registry
        self.confirmations = confirmations
        self.recoveries = recoveries
        self.require_confirmed_email = require_confirmed_email

    def _issue_pair(self, user_id: int, device_id: str, issued_at: datetime, expires_at: datetime) -> TokenPair:
        return TokenPair(
            access_token=self.tokens.issue_access_token(user_id),
            refresh_token=self.tokens.issue_refresh_token(user_id, device_id, issued_at, expires_at),
            refresh_expires_at=expires_at,
        )

    def _resolve_user(self, subject: Optional[str]) -> User:
        if not subject:
            raise Unauthorized()
        try:
            user_id = int(subject)
        except ValueError:
            raise Unauthorized()
        user = self.users.find_by_id(user_id)
        if user is None:
            raise Unauthorized()
        return user

    # Sessions

    def login(self, login_or_email: str, password: str, device_name: str, ip: str) -> TokenPair:
        try:
            user_id = self.verifier.verify(login_or_email, password)
        except InvalidCredentials:
            logger.info("login_failed ip=%s", ip)
            raise Unauthorized("Invalid credentials")

        if self.require_confirmed_email:
            user = self.users.find_by_id(user_id)
            if user is None or not user.is_confirmed:
                raise Forbidden("Email not confirmed")

        device_id = str(uuid.uuid4())
        issued_at, expires_at = self.tokens.new_refresh_window()
        pair = self._issue_pair(user_id, device_id, issued_at, expires_at)
        self.registry.create_session(user_id, device_id, issued_at, expires_at, device_name, ip)
        logger.info("login_ok user_id=%s device_id=%s", user_id, device_id)
        return pair

    def authenticate_refresh(self, refresh_token: Optional[str]) -> RefreshContext:
        claims = self.tokens.verify_refresh_token(refresh_token or "")
        if claims is None:
            unverified = self.tokens.decode_refresh_token(refresh_token or "")
            if unverified is not None:
                logger.info("refresh_token_rejected device_id=%s", unverified.device_id)
            raise Unauthorized()
        user = self._resolve_user(claims.user_id)
        if not self.registry.session_matches(claims.device_id, claims.issued_at, user_id=user.id):
            logger.warning("refresh_token_stale device_id=%s user_id=%s", claims.device_id, user.id)
            raise Unauthorized()
        return RefreshContext(user=user, claims=claims)

    def refresh(self, refresh_token: Optional[str], ip: str) -> TokenPair:
        ctx = self.authenticate_refresh(refresh_token)
        issued_at, expires_at = self.tokens.new_refresh_window(previous=ctx.claims.issued_at)
        pair = self._issue_pair(ctx.user.id, ctx.claims.device_id, issued_at, expires_at)
        rotated = self.registry.rotate_session(
            ctx.claims.device_id,
            issued_at,
            expires_at,
            ip,
            expected_issued_at=ctx.claims.issued_at,
        )
        if not rotated:
            # Another refresh for this device won the race, or it was revoked
            raise Unauthorized()
        return pair

    def logout(self, refresh_token: Optional[str]) -> None:
        ctx = self.authenticate_refresh(refresh_token)
        if not self.registry.terminate_session(ctx.claims.device_id, issued_at=ctx.claims.issued_at):
            raise Unauthorized()
        logger.info("logout user_id=%s device_id=%s", ctx.user.id, ctx.claims.device_id)

    def current_user(self, access_token: Optional[str]) -> User:
        return self._resolve_user(self.tokens.verify_access_token(access_token or ""))

    # Devices

    def list_devices(self, ctx: RefreshContext) -> list[DeviceAuthSession]:
        return self.registry.list_sessions(ctx.user.id)

    def terminate_other_devices(self, ctx: RefreshContext) -> int:
        return self.registry.terminate_other_sessions(ctx.user.id, ctx.claims.device_id)

    def terminate_device(self, ctx: RefreshContext, device_id: str) -> None:
        self.registry.terminate_owned_session(device_id, ctx.user.id)

    # Registration and recovery

    def register(self, login: str, email: str, password: str) -> User:
        code, expires_at = self.confirmations.generate()
        user = self.users_service.create_user(
            login,
            email,
            password,
            is_confirmed=False,
            confirmation_code=code,
            confirmation_expires_at=expires_at,
        )
        self.confirmations.send(email, code)
        return user

    def confirm_registration(self, code: str) -> None:
        self.confirmations.confirm(code)

    def resend_confirmation(self, email: str) -> None:
        self.confirmations.resend(email)

    def request_password_recovery(self, email: str) -> None:
        self.recoveries.request_recovery(email)

    def confirm_password_recovery(self, new_password: str, recovery_code: str) -> None:
        self.recoveries.consume_recovery(recovery_code, new_password)
