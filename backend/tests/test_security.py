"""Bearer token handling and the rate-limit key."""
import uuid
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from jose import jwt

from expense_approvals.core.config import settings
from expense_approvals.core.deps import get_current_user
from expense_approvals.core.limiter import approver_key
from expense_approvals.core.security import create_access_token, decode_token


class FakeUser:
    """Minimal user stub returned by the mocked session."""

    def __init__(self, is_active: bool = True):
        self.id = uuid.UUID("f96955d0-752f-4e0c-b1dc-d26d8dd1460e")
        self.role = "MANAGER"
        self.is_active = is_active


def _db_returning(user):
    db = MagicMock()
    db.get.return_value = user
    return db


def test_token_round_trip_carries_claims():
    company_id = str(uuid.uuid4())
    token = create_access_token("user-1", "MANAGER", company_id=company_id)
    payload = decode_token(token)
    assert payload["sub"] == "user-1"
    assert payload["role"] == "MANAGER"
    assert payload["company_id"] == company_id
    assert payload["type"] == "access"


def test_get_current_user_loads_user():
    user = FakeUser()
    db = _db_returning(user)
    token = create_access_token(str(user.id), user.role)

    assert get_current_user(token, db) is user
    assert db.get.call_args.args[1] == user.id


def test_inactive_user_rejected():
    user = FakeUser(is_active=False)
    token = create_access_token(str(user.id), user.role)

    with pytest.raises(HTTPException) as exc:
        get_current_user(token, _db_returning(user))
    assert exc.value.status_code == 401


def test_token_with_wrong_type_rejected():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "type": "refresh"},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(HTTPException) as exc:
        get_current_user(token, _db_returning(FakeUser()))
    assert exc.value.status_code == 401


def test_garbage_token_rejected():
    with pytest.raises(HTTPException) as exc:
        get_current_user("not-a-jwt", _db_returning(FakeUser()))
    assert exc.value.status_code == 401


def test_rate_limit_key_prefers_bearer_token():
    request = MagicMock()
    request.headers = {"authorization": "Bearer abc.def"}
    assert approver_key(request) == "abc.def"
