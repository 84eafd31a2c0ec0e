from functools import lru_cache

from blogapi.core.errors import InvalidCredentials
from blogapi.services.users import UserStore
from blogapi.utils.crypto import hash_password, verify_password


@lru_cache()
def _dummy_hash() -> str:
    # Compared against when no user matches, so a miss costs one bcrypt round
    # just like a wrong password.
    return hash_password("dummy-password-for-timing")


class CredentialVerifier:
    def __init__(self, users: UserStore) -> None:
        self.users = users

    def verify(self, login_or_email: str, password: str) -> int:
        """Return the user id, or raise InvalidCredentials. Read-only."""
        user = self.users.find_by_login_or_email(login_or_email)
        if user is None:
            verify_password(password, _dummy_hash())
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            raise InvalidCredentials()
        return int(user.id)
