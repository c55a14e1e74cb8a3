from datetime import timedelta

import pytest
from fastapi import HTTPException

import backend.main as backend_main


def test_get_current_user_missing_header_raises_401():
    with pytest.raises(HTTPException) as exc:
        backend_main.get_current_user(None)

    assert exc.value.status_code == 401


def test_get_current_user_wrong_scheme_raises_401():
    token = backend_main.create_access_token(subject="42")

    with pytest.raises(HTTPException) as exc:
        backend_main.get_current_user(f"Basic {token}")

    assert exc.value.status_code == 401


def test_get_current_user_invalid_token_raises_401():
    with pytest.raises(HTTPException) as exc:
        backend_main.get_current_user("Bearer not-a-valid-token")

    assert exc.value.status_code == 401


def test_get_current_user_expired_token_raises_401():
    expired_token = backend_main.create_access_token(subject="42", expires_delta=timedelta(minutes=-5))

    with pytest.raises(HTTPException) as exc:
        backend_main.get_current_user(f"Bearer {expired_token}")

    assert exc.value.status_code == 401


def test_get_current_user_valid_token_returns_user():
    token = backend_main.create_access_token(subject="user-123")

    user = backend_main.get_current_user(f"Bearer {token}")

    assert user.id == "user-123"


def test_resolve_user_requires_subject_claim():
    token = backend_main.jwt.encode(
        {"scope": "talk-time"},
        backend_main.JWT_SECRET_KEY,
        algorithm=backend_main.JWT_ALGORITHM,
    )

    assert backend_main.resolve_user_from_bearer_token(token) is None
