"""Tests for password hashing, tokens, roles and account management."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from autoshop.database.models import User
from autoshop.engine.errors import (
    AuthenticationError,
    ConflictError,
    PermissionDeniedError,
    ValidationError,
)
from autoshop.security.auth import (
    AccountService,
    CredentialService,
    Principal,
    can_manage_role,
    ensure_super_admin,
    hash_password,
    require_role,
    verify_password,
)

SECRET = "test-secret"


@pytest.fixture
def credentials():
    return CredentialService(SECRET, expires_hours=1)


@pytest.fixture
def accounts(repo, credentials):
    return AccountService(repo, credentials, password_min_length=8)


@pytest.fixture
def users(repo):
    """A super admin, an admin and a staff member (password 'password1')."""
    ids = {}
    for username, role in (("root", "super_admin"), ("manager", "admin"),
                           ("tech", "staff")):
        ids[role] = repo.create_user(User(
            username=username, password_hash=hash_password("password1"),
            name=username.title(), role=role,
        ))
    return ids


def _principal(users, role):
    return Principal(id=users[role], role=role)


class TestPasswords:
    def test_hash_is_bcrypt_and_verifies(self):
        hashed = hash_password("s3cret-pass")
        assert hashed.startswith("$2")
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_empty_or_malformed(self):
        assert not verify_password("", hash_password("x"))
        assert not verify_password("x", "not-a-hash")


class TestCredentialService:
    def test_round_trip(self, credentials):
        user = User(id=4, username="tech", role="staff")
        principal = credentials.verify(credentials.issue(user))
        assert principal == Principal(id=4, role="staff", username="tech")

    def test_bearer_prefix_accepted(self, credentials):
        token = credentials.issue(User(id=1, username="a", role="admin"))
        assert credentials.verify(f"Bearer {token}").role == "admin"

    def test_missing_token(self, credentials):
        with pytest.raises(AuthenticationError, match="required"):
            credentials.verify(None)

    def test_wrong_secret(self, credentials):
        token = CredentialService("other").issue(
            User(id=1, username="a", role="admin")
        )
        with pytest.raises(AuthenticationError, match="Invalid token"):
            credentials.verify(token)

    def test_expired(self, credentials):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": "1", "role": "staff", "iat": past,
             "exp": past + timedelta(hours=1)},
            SECRET, algorithm="HS256",
        )
        with pytest.raises(AuthenticationError, match="expired"):
            credentials.verify(token)

    def test_unknown_role(self, credentials):
        token = jwt.encode({"sub": "1", "role": "owner"}, SECRET,
                           algorithm="HS256")
        with pytest.raises(AuthenticationError):
            credentials.verify(token)


class TestRoles:
    def test_require_role(self):
        require_role(Principal(1, "admin"), "admin")
        require_role(Principal(1, "super_admin"), "admin")
        with pytest.raises(PermissionDeniedError):
            require_role(Principal(1, "staff"), "admin")

    @pytest.mark.parametrize("actor,target,allowed", [
        ("super_admin", "admin", True),
        ("super_admin", "staff", True),
        ("admin", "staff", True),
        ("admin", "admin", False),
        ("admin", "super_admin", False),
        ("staff", "staff", False),
    ])
    def test_can_manage_role(self, actor, target, allowed):
        assert can_manage_role(actor, target) is allowed


class TestLogin:
    def test_success_updates_last_login(self, repo, accounts, users):
        token, user = accounts.login("tech", "password1")
        assert user.role == "staff"
        assert accounts.credentials.verify(token).id == users["staff"]
        assert repo.get_user_by_id(users["staff"]).last_login is not None

    def test_wrong_password(self, accounts, users):
        with pytest.raises(AuthenticationError):
            accounts.login("tech", "password2")

    def test_unknown_user(self, accounts, users):
        with pytest.raises(AuthenticationError):
            accounts.login("ghost", "password1")

    def test_inactive_user_rejected(self, accounts, users):
        accounts.update_user(_principal(users, "admin"), users["staff"],
                             is_active=False)
        with pytest.raises(AuthenticationError):
            accounts.login("tech", "password1")


class TestAccountManagement:
    def test_admin_creates_staff(self, repo, accounts, users):
        user_id = accounts.create_user(_principal(users, "admin"),
                                       "tech2", "longenough", "Tech Two")
        created = repo.get_user_by_id(user_id)
        assert created.role == "staff"
        assert verify_password("longenough", created.password_hash)

    def test_admin_cannot_create_admin(self, accounts, users):
        with pytest.raises(PermissionDeniedError):
            accounts.create_user(_principal(users, "admin"), "boss",
                                 "longenough", "Boss", role="admin")

    def test_super_admin_creates_admin(self, accounts, users):
        accounts.create_user(_principal(users, "super_admin"), "boss",
                             "longenough", "Boss", role="admin")

    def test_short_password(self, accounts, users):
        with pytest.raises(ValidationError) as excinfo:
            accounts.create_user(_principal(users, "admin"), "tech2",
                                 "short", "Tech Two")
        assert excinfo.value.details == [
            "Password must be at least 8 characters"
        ]

    def test_duplicate_username(self, accounts, users):
        with pytest.raises(ConflictError):
            accounts.create_user(_principal(users, "admin"), "tech",
                                 "longenough", "Another Tech")

    def test_admin_cannot_promote_staff(self, accounts, users):
        with pytest.raises(PermissionDeniedError):
            accounts.update_user(_principal(users, "admin"), users["staff"],
                                 role="admin")

    def test_cannot_deactivate_self(self, accounts, users):
        with pytest.raises(PermissionDeniedError):
            accounts.update_user(_principal(users, "super_admin"),
                                 users["super_admin"], is_active=False)

    def test_change_own_password(self, accounts, users):
        staff = _principal(users, "staff")
        with pytest.raises(AuthenticationError):
            accounts.change_password(staff, users["staff"], "newpassword",
                                     current_password="wrong")
        accounts.change_password(staff, users["staff"], "newpassword",
                                 current_password="password1")
        accounts.login("tech", "newpassword")

    def test_admin_resets_staff_password(self, accounts, users):
        accounts.change_password(_principal(users, "admin"), users["staff"],
                                 "resetpass1")
        accounts.login("tech", "resetpass1")

    def test_list_users_needs_admin(self, accounts, users):
        assert len(accounts.list_users(_principal(users, "admin"))) == 3
        with pytest.raises(PermissionDeniedError):
            accounts.list_users(_principal(users, "staff"))

    def test_user_audit_hides_hash(self, repo, accounts, users):
        entry = repo.get_audit_log("users", users["staff"])[0]
        assert "password_hash" not in entry.new_data


class TestEnsureSuperAdmin:
    def test_creates_first_account(self, repo):
        user_id = ensure_super_admin(repo, "owner", "ownerpass")
        assert repo.get_user_by_id(user_id).role == "super_admin"

    def test_noop_when_users_exist(self, repo, users):
        assert ensure_super_admin(repo, "owner", "ownerpass") is None

    def test_password_length(self, repo):
        with pytest.raises(ValidationError):
            ensure_super_admin(repo, "owner", "short")
