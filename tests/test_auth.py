"""Tests for the session manager and password handling."""

from datetime import datetime, timedelta, timezone

import pytest

from auth import (
    authenticate,
    create_session,
    hash_password,
    register_user,
    resolve_session,
    revoke_session,
    verify_password,
)
from errors import AuthError, ConflictError


class TestPasswords:
    def test_hash_is_salted_and_verifies(self):
        first = hash_password("secret1")
        second = hash_password("secret1")
        assert first != second
        assert "secret1" not in first
        assert verify_password("secret1", first)
        assert verify_password("secret1", second)

    def test_wrong_password_rejected(self):
        assert not verify_password("secret2", hash_password("secret1"))

    def test_malformed_hash_rejected(self):
        assert not verify_password("secret1", "not-a-hash")
        assert not verify_password("secret1", "")


class TestRegistration:
    def test_register_returns_public_fields(self, mongo):
        user = register_user("a@example.com", "secret1", "Ada")
        assert user["email"] == "a@example.com"
        assert user["name"] == "Ada"
        assert "password_hash" not in user
        stored = mongo["user"].find_one({"email": "a@example.com"})
        assert stored["password_hash"] != "secret1"

    def test_duplicate_email_conflicts(self, mongo):
        register_user("a@example.com", "secret1")
        with pytest.raises(ConflictError):
            register_user("a@example.com", "other-secret")
        assert mongo["user"].count_documents({}) == 1

    def test_authenticate(self, mongo):
        register_user("a@example.com", "secret1")
        assert authenticate("a@example.com", "secret1")["email"] == "a@example.com"
        with pytest.raises(AuthError):
            authenticate("a@example.com", "wrong-one")
        with pytest.raises(AuthError):
            authenticate("nobody@example.com", "secret1")


class TestSessions:
    @pytest.fixture
    def user(self, mongo):
        return register_user("a@example.com", "secret1", "Ada")

    def test_create_and_resolve(self, mongo, user):
        token, expires_at = create_session(user["id"], 7)
        assert len(token) >= 43
        assert expires_at > datetime.now(timezone.utc) + timedelta(days=6)
        assert mongo["session"].count_documents({"token": token}) == 1
        assert resolve_session(token) == user

    def test_tokens_are_unique(self, mongo, user):
        tokens = {create_session(user["id"], 1)[0] for _ in range(5)}
        assert len(tokens) == 5
        assert mongo["session"].count_documents({"user_id": user["id"]}) == 5

    def test_unknown_or_empty_token(self, mongo):
        assert resolve_session("does-not-exist") is None
        assert resolve_session("") is None
        assert resolve_session(None) is None

    def test_expired_session_is_absent_and_removed(self, mongo, user):
        token, _ = create_session(user["id"], 7)
        mongo["session"].update_one(
            {"token": token},
            {"$set": {"expires_at": datetime.now(timezone.utc) - timedelta(minutes=1)}},
        )
        assert resolve_session(token) is None
        assert mongo["session"].count_documents({"token": token}) == 0

    def test_session_for_deleted_user(self, mongo, user):
        token, _ = create_session(user["id"], 7)
        mongo["user"].delete_many({})
        assert resolve_session(token) is None

    def test_revoke(self, mongo, user):
        token, _ = create_session(user["id"], 7)
        revoke_session(token)
        assert resolve_session(token) is None
        assert mongo["session"].count_documents({}) == 0

    def test_revoke_is_idempotent(self, mongo, user):
        token, _ = create_session(user["id"], 7)
        revoke_session(token)
        revoke_session(token)
        revoke_session("never-issued")
        revoke_session(None)
