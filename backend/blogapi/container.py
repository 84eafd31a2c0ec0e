from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from blogapi.core.config import Settings
from blogapi.core.rate_limit import AttemptThrottle, RateLimitConfig
from blogapi.core.tokens import TokenConfig, TokenService
from blogapi.services.auth_flows import AuthFlows
from blogapi.services.codes import ConfirmationCodeManager, RecoveryCodeManager
from blogapi.services.credentials import CredentialVerifier
from blogapi.services.sessions import DeviceSessionRegistry
from blogapi.services.users import UserStore, UsersService
from blogapi.utils.mailer import EmailManager
from blogapi.utils.timeutil import Clock, utcnow


class AuthRuntime:
    """
    Process-wide auth state, built once per app.

    Holds the configuration objects, the stateless token service, the mailer
    and the clock. Request-scoped components are wired from it against the
    request's DB session by `auth_flows()` / `throttle()`. The `reconfigure_*`
    methods are the only way to change live behaviour.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        clock: Clock = utcnow,
        mailer: Optional[EmailManager] = None,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.tokens = TokenService(TokenConfig.from_settings(settings), clock=self.now)
        self.rate_limit = RateLimitConfig.from_settings(settings)
        self.mailer = mailer or EmailManager.from_settings(settings)
        self.confirmation_lifetime = timedelta(minutes=settings.confirmation_code_expire_minutes)
        self.require_confirmed_email = settings.auth_require_confirmed_email

    def now(self) -> datetime:
        return self.clock()

    def reconfigure_rate_limit(self, **changes: Any) -> RateLimitConfig:
        self.rate_limit = replace(self.rate_limit, **changes)
        return self.rate_limit

    def reconfigure_tokens(self, **changes: Any) -> TokenConfig:
        self.tokens.reconfigure(**changes)
        return self.tokens.config

    def throttle(self, db: Session) -> AttemptThrottle:
        return AttemptThrottle(db, self.rate_limit, clock=self.now)

    def registry(self, db: Session) -> DeviceSessionRegistry:
        return DeviceSessionRegistry(db)

    def auth_flows(self, db: Session) -> AuthFlows:
        users = UserStore(db)
        registry = DeviceSessionRegistry(db)
        users_service = UsersService(users, registry)
        verifier = CredentialVerifier(users)
        confirmations = ConfirmationCodeManager(
            db, users, self.mailer, self.confirmation_lifetime, clock=self.now
        )
        recoveries = RecoveryCodeManager(
            db,
            users,
            self.tokens,
            registry,
            self.mailer,
            code_hash_key=self.settings.code_hash_secret_key,
            clock=self.now,
        )
        return AuthFlows(
            users,
            users_service,
            verifier,
            self.tokens,
            registry,
            confirmations,
            recoveries,
            require_confirmed_email=self.require_confirmed_email,
        )
