"""
Registration and credential checks.
"""

from __future__ import annotations

import hmac
import logging
import os
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from database import Role, User
from errors import ConflictError, ForbiddenError, UnauthorizedError
from repositories import UserRepository

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _admin_secret() -> Optional[str]:
    return os.getenv("ADMIN_SECRET_CODE") or None


class UserService:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)

    def register(self, username: str, email: str, password: str, role: Role = Role.USER) -> User:
        if self.users.username_exists(username):
            raise ConflictError("Username already exists")
        if self.users.email_exists(email):
            raise ConflictError("Email already exists")
        user = self.users.add(User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=role,
        ))
        self.db.commit()
        logger.info("Registered %s user %s", role.value, username)
        return user

    def register_admin(self, username: str, email: str, password: str, admin_secret_code: str) -> User:
        secret = _admin_secret()
        if secret is None or not hmac.compare_digest(secret, admin_secret_code or ""):
            raise ForbiddenError("Invalid admin secret code")
        return self.register(username, email, password, role=Role.ADMIN)

    def authenticate(self, username: str, password: str) -> User:
        user = self.users.get_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid username or password")
        return user

    def find_by_username(self, username: str) -> Optional[User]:
        return self.users.get_by_username(username)
