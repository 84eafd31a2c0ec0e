from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from blogapi.core.errors import AlreadyConfirmed, CodeExpired, CodeNotFound, InvalidRecoveryCode, NoSuchUser
from blogapi.core.tokens import TokenService
from blogapi.models.user import User
from blogapi.services.sessions import DeviceSessionRegistry
from blogapi.services.users import UserStore
from blogapi.utils.crypto import hash_password, hmac_sha256_hex
from blogapi.utils.mailer import EmailManager
from blogapi.utils.timeutil import Clock, as_utc, utcnow


logger = logging.getLogger("blog.auth")


class ConfirmationCodeManager:
    """Email confirmation codes: opaque, unique, stored on the user row."""

    def __init__(
        self,
        db: Session,
        users: UserStore,
        mailer: EmailManager,
        lifetime: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db
        self.users = users
        self.mailer = mailer
        self.lifetime = lifetime
        self.clock = clock

    def generate(self) -> Tuple[str, datetime]:
        return str(uuid.uuid4()), as_utc(self.clock()) + self.lifetime

    def send(self, email: str, code: str) -> None:
        if not self.mailer.send_registration_message(email, code):
            logger.warning("confirmation_email_not_sent")

    def confirm(self, code: str) -> None:
        user = self.users.find_by_confirmation_code(code)
        if user is None:
            raise CodeNotFound()
        if user.is_confirmed:
            raise AlreadyConfirmed()

        now = as_utc(self.clock())
        expires_at = as_utc(user.confirmation_expires_at)
        if expires_at is None or expires_at < now:
            raise CodeExpired()

        # Conditional single-row update: a concurrent confirm, a resend that
        # replaced the code or an expiry in between all make it miss.
        result = self.db.execute(
            update(User)
            .where(
                User.id == user.id,
                User.is_deleted.is_(False),
                User.confirmation_code == code,
                User.is_confirmed.is_(False),
                User.confirmation_expires_at >= now,
            )
            .values(is_confirmed=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 1:
            logger.info("registration_confirmed user_id=%s", user.id)
            return

        current = self.users.find_by_id(user.id)
        if current is None or current.confirmation_code != code:
            raise CodeNotFound()
        if current.is_confirmed:
            raise AlreadyConfirmed()
        raise CodeExpired()

    def resend(self, email: str) -> None:
        user = self.users.find_by_email(email)
        if user is None:
            raise NoSuchUser()
        if user.is_confirmed:
            raise AlreadyConfirmed("Email is already confirmed", field="email")

        code, expires_at = self.generate()
        result = self.db.execute(
            update(User)
            .where(User.id == user.id, User.is_confirmed.is_(False))
            .values(confirmation_code=code, confirmation_expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            raise AlreadyConfirmed("Email is already confirmed", field="email")

        logger.info("confirmation_code_reissued user_id=%s", user.id)
        self.send(email, code)


class RecoveryCodeManager:
    """
    Password recovery codes.

    The code itself is a signed token carrying the user id; only its HMAC and
    an expiry are stored, so reading the row does not reveal a usable code.
    """

    def __init__(
        self,
        db: Session,
        users: UserStore,
        tokens: TokenService,
        registry: DeviceSessionRegistry,
        mailer: EmailManager,
        code_hash_key: str,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db
        self.users = users
        self.tokens = tokens
        self.code_hash_key = code_hash_key
        self.registry = registry
        self.mailer = mailer
        self.clock = clock

    def request_recovery(self, email: str) -> None:
        """Same outcome whether or not the email belongs to someone."""
        user = self.users.find_by_email(email)
        if user is None:
            logger.info("password_recovery_unknown_email")
            return

        code = self.tokens.issue_recovery_code(user.id)
        self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                recovery_code_hash=hmac_sha256_hex(code, self.code_hash_key),
                recovery_expires_at=as_utc(self.tokens.recovery_code_expires_at()),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("password_recovery_issued user_id=%s", user.id)

        if not self.mailer.send_password_recovery_message(email, code):
            logger.warning("password_recovery_email_not_sent user_id=%s", user.id)

    def consume_recovery(self, code: str, new_password: str) -> int:
        """
        Set a new password if `code` is valid, current and unused.

        The password change and the invalidation of the stored hash happen in
        one UPDATE conditioned on that hash, so a code works exactly once.
        """
        subject = self.tokens.verify_recovery_code(code)
        if subject is None:
            raise InvalidRecoveryCode()
        try:
            user_id = int(subject)
        except ValueError:
            raise InvalidRecoveryCode()

        now = as_utc(self.clock())
        result = self.db.execute(
            update(User)
            .where(
                User.id == user_id,
                User.is_deleted.is_(False),
                User.recovery_code_hash == hmac_sha256_hex(code, self.code_hash_key),
                User.recovery_expires_at >= now,
            )
            .values(
                hashed_password=hash_password(new_password),
                recovery_code_hash="",
                recovery_expires_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            logger.warning("password_recovery_rejected user_id=%s", user_id)
            raise InvalidRecoveryCode()

        self.registry.delete_user_sessions(user_id)
        logger.info("password_recovered user_id=%s", user_id)
        return user_id
