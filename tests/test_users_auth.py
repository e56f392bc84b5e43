"""Tests for the user directory, login lockout and session expiry"""
from datetime import timedelta

import pytest

from socialvox.auth import AuthService
from socialvox.errors import AuthenticationError, ConflictError, PermissionDenied
from socialvox.network import SimulatedNetwork
from socialvox.schemas import UserCreate, UserRole, UserUpdate, utcnow
from socialvox.seed import demo_users
from socialvox.users import UserDirectory


@pytest.fixture
def users():
    return UserDirectory(SimulatedNetwork.instant(), demo_users())


@pytest.fixture
def auth(users):
    return AuthService(
        users,
        session_timeout=timedelta(hours=8),
        max_attempts=5,
        lockout=timedelta(minutes=10),
    )


def new_surveyor(**overrides):
    values = dict(
        username="lucia",
        name="Lucía Torres",
        email="lucia@encuestasva.com",
        role=UserRole.SURVEYOR,
        password="secreta1",
    )
    values.update(overrides)
    return UserCreate(**values)


@pytest.mark.asyncio
async def test_create_user_conflicts_are_case_insensitive(users):
    await users.create_user(new_surveyor())

    with pytest.raises(ConflictError) as exc_info:
        await users.create_user(new_surveyor(username="LUCIA", email="otra@x.com"))
    assert exc_info.value.field == "username"

    with pytest.raises(ConflictError) as exc_info:
        await users.create_user(new_surveyor(username="lucia2", email="Lucia@EncuestasVA.com"))
    assert exc_info.value.field == "email"


@pytest.mark.asyncio
async def test_update_user_checks_conflicts_against_others(users):
    user = await users.create_user(new_surveyor())
    same = await users.update_user(user.id, UserUpdate(username="lucia", name="Lucía T."))
    assert same.name == "Lucía T."
    with pytest.raises(ConflictError):
        await users.update_user(user.id, UserUpdate(email="juan@encuestasva.com"))


@pytest.mark.asyncio
async def test_bootstrap_admin_cannot_be_deleted(users):
    admin = users.find_by_identifier("admin")
    with pytest.raises(PermissionDenied):
        await users.delete_user(admin.id)
    with pytest.raises(PermissionDenied):
        await users.update_user(admin.id, UserUpdate(role=UserRole.SURVEYOR))
    assert users.get_user(admin.id).role == UserRole.ADMIN_MANAGER


@pytest.mark.asyncio
async def test_delete_and_change_password(users):
    user = await users.create_user(new_surveyor())
    await users.change_password(user.id, "nueva123")
    assert users.get_user(user.id).password == "nueva123"
    await users.delete_user(user.id)
    assert users.find_by_identifier("lucia") is None


def test_active_surveyors(users):
    assert [u.username for u in users.active_surveyors()] == ["surveyor"]


def test_login_by_username_or_email(auth):
    by_name = auth.login("surveyor", "surveyor123")
    by_email = auth.login("JUAN@encuestasva.com", "surveyor123")
    assert by_name.user.id == by_email.user.id
    assert by_name.token != by_email.token
    assert by_name.expires_at - by_name.issued_at == timedelta(hours=8)


def test_wrong_password_and_unknown_user(auth):
    with pytest.raises(AuthenticationError):
        auth.login("surveyor", "mal")
    with pytest.raises(AuthenticationError):
        auth.login("nadie", "x")


@pytest.mark.asyncio
async def test_inactive_user_cannot_login(users, auth):
    user = users.find_by_identifier("surveyor")
    await users.update_user(user.id, UserUpdate(active=False))
    with pytest.raises(AuthenticationError):
        auth.login("surveyor", "surveyor123")


def test_lockout_after_max_failures(auth):
    now = utcnow()
    for _ in range(5):
        with pytest.raises(AuthenticationError):
            auth.login("surveyor", "mal", now=now)

    with pytest.raises(AuthenticationError) as exc_info:
        auth.login("surveyor", "surveyor123", now=now + timedelta(minutes=1))
    assert exc_info.value.locked is True
    assert "9 minutos" in exc_info.value.message

    session = auth.login("surveyor", "surveyor123", now=now + timedelta(minutes=11))
    assert session.user.username == "surveyor"


def test_session_expiry_and_refresh(auth):
    now = utcnow()
    session = auth.login("admin", "admin123", now=now)

    assert auth.current_session(session.token, now + timedelta(hours=7)) is not None
    assert auth.current_session(session.token, now + timedelta(hours=8)) is None
    assert auth.has_valid_session(now + timedelta(hours=1))

    refreshed = auth.refresh_session(session.token, now + timedelta(hours=7))
    assert refreshed.expires_at == now + timedelta(hours=15)
    assert auth.current_session(session.token, now + timedelta(hours=9)) is not None


def test_logout(auth):
    session = auth.login("admin", "admin123")
    assert auth.logout(session.token) is True
    assert auth.current_session(session.token) is None
    assert auth.logout(session.token) is False


@pytest.mark.asyncio
async def test_session_follows_user_changes(users, auth):
    session = auth.login("surveyor", "surveyor123")
    await users.update_user(session.user.id, UserUpdate(role=UserRole.ADMIN))
    assert auth.current_session(session.token).user.role == UserRole.ADMIN

    await users.update_user(session.user.id, UserUpdate(active=False))
    assert auth.current_session(session.token) is None


@pytest.mark.asyncio
async def test_deactivated_user_session_does_not_count_as_valid(users, auth):
    session = auth.login("surveyor", "surveyor123")
    assert auth.has_valid_session()

    await users.update_user(session.user.id, UserUpdate(active=False))

    assert auth.has_valid_session() is False


@pytest.mark.asyncio
async def test_deleted_user_session_does_not_count_as_valid(users, auth):
    session = auth.login("surveyor", "surveyor123")

    await users.delete_user(session.user.id)

    assert auth.has_valid_session() is False
    assert auth.current_session(session.token) is None
