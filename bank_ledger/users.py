"""
User Directory Module

Registration, lookup and password authentication for ledger users.
"""

from typing import Optional
import hashlib
import hmac
import re
import secrets

from .config import get_config
from .errors import ErrorKind, LedgerError
from .logging_config import get_logger, log_action
from .models import User
from .storage import LedgerStorage


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PBKDF2_ITERATIONS = 100_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Salted PBKDF2-SHA256 hash encoded as ``salt$hexdigest``"""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, _, _ = password_hash.partition("$")
    return hmac.compare_digest(hash_password(password, salt), password_hash)


class UserManager:
    """Creates and authenticates users"""

    def __init__(self, storage: LedgerStorage, password_min_length: Optional[int] = None):
        self.storage = storage
        self.password_min_length = (
            password_min_length if password_min_length is not None
            else get_config().password_min_length
        )
        self.logger = get_logger("bank_ledger.users")

    def create_user(self, name: str, email: str, password: str) -> User:
        """
        Register a new user.

        Raises:
            LedgerError: INVALID_USER_INFO, INVALID_EMAIL, USER_ALREADY_EXISTS
        """
        name = name.strip()
        email = email.strip().lower()
        if not name:
            raise LedgerError(ErrorKind.INVALID_USER_INFO, "Name must not be empty")
        if len(password) < self.password_min_length:
            raise LedgerError(
                ErrorKind.INVALID_USER_INFO,
                f"Password must be at least {self.password_min_length} characters"
            )
        if not EMAIL_PATTERN.match(email):
            raise LedgerError(ErrorKind.INVALID_EMAIL, f"Invalid email address: {email}")
        if self.storage.get_user_by_email(email):
            raise LedgerError(ErrorKind.USER_ALREADY_EXISTS, f"User with email {email} already exists")

        user = self.storage.create_user(name, email, hash_password(password))

        log_action(
            self.logger, "info", "User created",
            user_id=user.id, action="create_user", resource=f"user:{user.id}"
        )
        return user

    def get_user(self, user_id: int) -> User:
        user = self.storage.get_user(user_id)
        if user is None:
            raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")
        return user

    def update_user(self, user_id: int, name: Optional[str] = None, email: Optional[str] = None) -> User:
        """
        Change a user's name and/or email. Blank fields keep their current value.

        Raises:
            LedgerError: INVALID_USER_INFO when nothing is given or nothing
                changes, INVALID_EMAIL, USER_ALREADY_EXISTS, NO_SUCH_USER
        """
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name and not email:
            raise LedgerError(ErrorKind.INVALID_USER_INFO, "Name or email must be provided")

        current = self.get_user(user_id)
        new_name = name or current.name
        new_email = email or current.email
        if new_name == current.name and new_email == current.email:
            raise LedgerError(ErrorKind.INVALID_USER_INFO, "User info is unchanged")
        if not EMAIL_PATTERN.match(new_email):
            raise LedgerError(ErrorKind.INVALID_EMAIL, f"Invalid email address: {new_email}")

        user = self.storage.update_user(user_id, new_name, new_email)
        if user is None:
            raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")

        log_action(
            self.logger, "info", "User updated",
            user_id=user_id, action="update_user", resource=f"user:{user_id}"
        )
        return user

    def delete_user(self, user_id: int) -> None:
        """
        Remove a user and close all of their accounts.

        Ledger entries are kept. Later lookups of the user fail with NO_SUCH_USER.
        """
        if not self.storage.delete_user(user_id):
            raise LedgerError(ErrorKind.NO_SUCH_USER, f"User {user_id} does not exist")

        log_action(
            self.logger, "info", "User deleted",
            user_id=user_id, action="delete_user", resource=f"user:{user_id}"
        )

    def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials and return the matching user.

        Raises:
            LedgerError: INVALID_CREDENTIALS for an unknown email or a wrong password
        """
        user = self.storage.get_user_by_email(email.strip().lower())
        if user is None or not verify_password(password, user.password_hash):
            log_action(
                self.logger, "warning", "Authentication failed",
                action="authenticate", extra={"email": email}
            )
            raise LedgerError(ErrorKind.INVALID_CREDENTIALS)
        return user
