from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blogapi.core.errors import ValidationFailed
from blogapi.models.user import User
from blogapi.services.sessions import DeviceSessionRegistry
from blogapi.utils.crypto import hash_password


logger = logging.getLogger("blog.users")


class UserStore:
    """Lookups and field updates on users. Deleted users are never returned."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _active(self):
        return select(User).where(User.is_deleted.is_(False))

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self.db.execute(self._active().where(User.id == int(user_id))).scalar_one_or_none()

    def find_by_login_or_email(self, login_or_email: str) -> Optional[User]:
        return self.db.execute(
            self._active()
            .where(or_(User.login == login_or_email, User.email == login_or_email))
            .order_by(User.id)
            .limit(1)
        ).scalar_one_or_none()

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(self._active().where(User.email == email)).scalar_one_or_none()

    def find_by_confirmation_code(self, code: str) -> Optional[User]:
        if not code:
            return None
        return self.db.execute(self._active().where(User.confirmation_code == code)).scalar_one_or_none()

    def login_taken(self, login: str) -> bool:
        return self.db.execute(select(User.id).where(User.login == login).limit(1)).first() is not None

    def email_taken(self, email: str) -> bool:
        return self.db.execute(select(User.id).where(User.email == email).limit(1)).first() is not None

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def mark_deleted(self, user_id: int) -> bool:
        result = self.db.execute(
            update(User)
            .where(User.id == int(user_id), User.is_deleted.is_(False))
            .values(is_deleted=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def reset(self) -> None:
        self.db.execute(delete(User))
        self.db.commit()


class UsersService:
    """User lifecycle: creation with uniqueness checks and cascading soft delete."""

    def __init__(self, store: UserStore, registry: DeviceSessionRegistry) -> None:
        self.store = store
        self.registry = registry

    def create_user(
        self,
        login: str,
        email: str,
        password: str,
        *,
        is_confirmed: bool,
        confirmation_code: Optional[str] = None,
        confirmation_expires_at: Optional[datetime] = None,
    ) -> User:
        errors: list[tuple[str, str]] = []
        if self.store.login_taken(login):
            errors.append(("login", "Login must be unique"))
        if self.store.email_taken(email):
            errors.append(("email", "Email must be unique"))
        if errors:
            raise ValidationFailed(errors)

        user = User(
            login=login,
            email=email,
            hashed_password=hash_password(password),
            is_deleted=False,
            is_confirmed=is_confirmed,
            confirmation_code=confirmation_code,
            confirmation_expires_at=confirmation_expires_at,
            recovery_code_hash="",
        )
        try:
            user = self.store.add(user)
        except IntegrityError:
            self.store.db.rollback()
            # Lost a race against a concurrent registration
            raise ValidationFailed([("login", "Login must be unique"), ("email", "Email must be unique")])
        logger.info("user_created user_id=%s confirmed=%s", user.id, is_confirmed)
        return user

    def delete_user(self, user_id: int) -> bool:
        """Soft-delete the user and drop every device session they own."""
        deleted = self.store.mark_deleted(user_id)
        if deleted:
            self.registry.delete_user_sessions(user_id)
            logger.info("user_deleted user_id=%s", user_id)
        return deleted
