from jose import jwt

from library_backend.auth import (
    hash_password, verify_password, create_access_token, create_email_verification_token,
    verify_token, verify_email_verification_token, CurrentUser,
)
from library_backend.config import JWT_SECRET, JWT_ALGORITHM
from library_backend.models.user import Role


def test_password_hash_roundtrip():
    hashed = hash_password("password123")
    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("password124", hashed)


def test_verify_password_rejects_garbage_hash():
    assert verify_password("password123", "not-a-bcrypt-hash") is False


def test_access_token_carries_identity_and_role():
    token = create_access_token(7, "reader@example.com", Role.ADMIN)
    payload = verify_token(token)
    assert payload["user_id"] == 7
    assert payload["email"] == "reader@example.com"
    assert payload["role"] == "ADMIN"
    assert "exp" in payload and "jti" in payload


def test_tampered_token_is_rejected():
    token = create_access_token(7, "reader@example.com", Role.USER)
    forged = jwt.encode(jwt.get_unverified_claims(token), "wrong-secret", algorithm=JWT_ALGORITHM)
    assert verify_token(forged) is None


def test_email_verification_token_purpose():
    token = create_email_verification_token(3, "new@example.com")
    assert verify_email_verification_token(token)["user_id"] == 3

    access = create_access_token(3, "new@example.com", Role.USER)
    assert verify_email_verification_token(access) is None

    other_purpose = jwt.encode({"user_id": 3, "purpose": "password_reset"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
    assert verify_email_verification_token(other_purpose) is None


def test_admin_roles():
    assert CurrentUser(1, "a@example.com", Role.ADMIN).is_admin
    assert CurrentUser(1, "a@example.com", Role.SUPERADMIN).is_admin
    assert not CurrentUser(1, "a@example.com", Role.USER).is_admin
