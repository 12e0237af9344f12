"""Password hashing, bearer tokens and role checks.

Passwords are stored as bcrypt hashes. Tokens are HS256 JWTs carrying
the user id and role; ``CredentialService.verify`` turns a presented
token back into a :class:`Principal` or raises ``AuthenticationError``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from autoshop.database.models import User
from autoshop.engine.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from autoshop.utils.constants import ROLE_MANAGES, USER_ROLES

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


def hash_password(plain: str) -> str:
    """Hash a plaintext password with bcrypt. Returns the hash string."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, password_hash: str) -> bool:
    if not plain or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"),
                              password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        logger.warning("Stored password hash is not a bcrypt hash")
        return False


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""

    id: int
    role: str
    username: str = ""

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


class CredentialService:
    """Issues and verifies bearer tokens."""

    def __init__(self, secret: str, expires_hours: int = 24):
        self.secret = secret
        self.expires_hours = expires_hours

    def issue(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "username": user.username,
            "role": user.role,
            "iat": now,
            "exp": now + timedelta(hours=self.expires_hours),
        }
        return jwt.encode(payload, self.secret, algorithm=_ALGORITHM)

    def verify(self, token: Optional[str]) -> Principal:
        if not token:
            raise AuthenticationError("Access token required")
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        try:
            payload = jwt.decode(token, self.secret, algorithms=[_ALGORITHM])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid token") from e

        role = payload.get("role")
        if role not in USER_ROLES:
            raise AuthenticationError("Invalid token")
        return Principal(
            id=int(payload["sub"]),
            role=role,
            username=payload.get("username", ""),
        )


def require_role(principal: Principal, *roles: str):
    """Raise ``PermissionDeniedError`` unless the caller holds a role.

    ``super_admin`` passes every check that ``admin`` passes.
    """
    allowed = set(roles)
    if "admin" in allowed:
        allowed.add("super_admin")
    if principal.role not in allowed:
        raise PermissionDeniedError("Insufficient permissions")


def can_manage_role(actor_role: str, target_role: str) -> bool:
    """Whether an account with ``actor_role`` may manage ``target_role``."""
    return target_role in ROLE_MANAGES.get(actor_role, [])


class AccountService:
    """User accounts: login, creation and role-scoped management."""

    def __init__(self, repo, credentials: CredentialService,
                 password_min_length: int = 8):
        self.repo = repo
        self.credentials = credentials
        self.password_min_length = password_min_length

    def login(self, username: str, password: str) -> tuple[str, User]:
        """Check credentials and return ``(token, user)``.

        Unknown users, wrong passwords and disabled accounts all fail
        with the same message.
        """
        user = self.repo.get_user_by_username((username or "").strip())
        if (user is None or not user.is_active
                or not verify_password(password, user.password_hash)):
            logger.info("Failed login for %r", username)
            raise AuthenticationError("Invalid username or password")
        self.repo.touch_last_login(user.id)
        logger.info("User %s logged in", user.username)
        return self.credentials.issue(user), user

    def create_user(self, actor: Principal, username: str, password: str,
                    name: str, role: str = "staff") -> int:
        errors = []
        if not (username or "").strip():
            errors.append("Username is required")
        if not (name or "").strip():
            errors.append("Name is required")
        if role not in USER_ROLES:
            errors.append(f"Role must be one of: {', '.join(USER_ROLES)}")
        errors.extend(self._password_errors(password))
        if errors:
            raise ValidationError("Validation failed", errors)
        self._require_can_manage(actor, role)

        if self.repo.get_user_by_username(username.strip()):
            raise ConflictError(f"Username '{username}' is already taken")
        user = User(
            username=username.strip(),
            password_hash=hash_password(password),
            name=name.strip(),
            role=role,
        )
        return self.repo.create_user(user)

    def update_user(self, actor: Principal, user_id: int,
                    name: Optional[str] = None, role: Optional[str] = None,
                    is_active: Optional[bool] = None) -> User:
        user = self.repo.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        self._require_can_manage(actor, user.role)
        if role is not None:
            if role not in USER_ROLES:
                raise ValidationError(
                    "Validation failed",
                    [f"Role must be one of: {', '.join(USER_ROLES)}"],
                )
            self._require_can_manage(actor, role)
        if user_id == actor.id and is_active is False:
            raise PermissionDeniedError("You cannot deactivate your own account")

        if name is not None:
            user.name = name.strip()
        if role is not None:
            user.role = role
        if is_active is not None:
            user.is_active = 1 if is_active else 0
        self.repo.update_user(user)
        return user

    def change_password(self, actor: Principal, user_id: int,
                        new_password: str,
                        current_password: Optional[str] = None):
        """Users change their own password by proving the current one;
        managers reset the passwords of accounts they manage."""
        user = self.repo.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user_id == actor.id:
            if not verify_password(current_password, user.password_hash):
                raise AuthenticationError("Current password is incorrect")
        else:
            self._require_can_manage(actor, user.role)
        errors = self._password_errors(new_password)
        if errors:
            raise ValidationError("Validation failed", errors)
        self.repo.set_password_hash(user_id, hash_password(new_password))

    def list_users(self, actor: Principal) -> list[User]:
        require_role(actor, "admin")
        return self.repo.get_all_users()

    def _password_errors(self, password: Optional[str]) -> list[str]:
        if not password or len(password) < self.password_min_length:
            return [
                f"Password must be at least "
                f"{self.password_min_length} characters"
            ]
        return []

    @staticmethod
    def _require_can_manage(actor: Principal, target_role: str):
        if not can_manage_role(actor.role, target_role):
            raise PermissionDeniedError(
                f"A {actor.role} cannot manage {target_role} accounts"
            )


def ensure_super_admin(repo, username: str, password: str,
                       name: str = "Administrator",
                       min_length: int = 8) -> Optional[int]:
    """Create the first super admin when the users table is empty.

    Returns the new user id, or None if any user already exists.
    """
    if repo.count_users() > 0:
        return None
    if len(password or "") < min_length:
        raise ValidationError(
            "Validation failed",
            [f"Password must be at least {min_length} characters"],
        )
    user_id = repo.create_user(User(
        username=username.strip(),
        password_hash=hash_password(password),
        name=name,
        role="super_admin",
    ))
    logger.info("Created initial super admin %s", username)
    return user_id
