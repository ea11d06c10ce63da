"""Caller extraction from the Authorization header: dev tokens, JWTs, environment rules."""

import jwt
import pytest

from apps.ai_query.config import config
from apps.ai_query.services.auth import _extract_caller
from apps.ai_query.services.caller_context import CallerContext

SECRET = "test-secret-with-at-least-32-bytes!!"

def _token(claims: dict, secret: str = SECRET) -> str:
    return jwt.encode(claims, secret, algorithm="HS256")

def test_dev_token_user_only() -> None:
    caller = _extract_caller("Bearer user:u-123")
    assert caller["user_id"] == "u-123"
    assert caller["factory_id"] is None
    assert caller["role"] == "user"

def test_dev_token_with_factory() -> None:
    caller = _extract_caller("Bearer user:u-1@factory-7")
    assert caller["user_id"] == "u-1"
    assert caller["factory_id"] == "factory-7"

@pytest.mark.parametrize("header", ["", "Basic abc", "Bearer", "Bearer invalid", "Bearer user:", "Bearer user=u-1"])
def test_invalid_headers(header) -> None:
    assert _extract_caller(header) is None

def test_dev_token_rejected_in_production(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "production")
    assert _extract_caller("Bearer user:u1") is None

def test_jwt_claims(monkeypatch) -> None:
    monkeypatch.setattr(config, "JWT_SECRET", SECRET)
    token = _token({"sub": "u-9", "factory_id": "f-2", "role": "admin", "permissions": {"ai_insights": ["use"]}})
    caller = _extract_caller(f"Bearer {token}")
    assert caller == {
        "user_id": "u-9",
        "factory_id": "f-2",
        "role": "admin",
        "permissions": {"ai_insights": ["use"]},
    }

def test_jwt_wrong_signature_rejected(monkeypatch) -> None:
    monkeypatch.setattr(config, "JWT_SECRET", SECRET)
    token = _token({"sub": "u-9"}, secret="another-secret-with-at-least-32-bytes")
    assert _extract_caller(f"Bearer {token}") is None

def test_jwt_without_sub_rejected(monkeypatch) -> None:
    monkeypatch.setattr(config, "JWT_SECRET", SECRET)
    assert _extract_caller(f"Bearer {_token({'role': 'admin'})}") is None

def _unset_env(monkeypatch) -> None:
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)

def test_unsigned_jwt_accepted_only_in_test_or_dev(monkeypatch) -> None:
    monkeypatch.setattr(config, "JWT_SECRET", "")
    token = _token({"sub": "u-1"})
    assert _extract_caller(f"Bearer {token}")["user_id"] == "u-1"

    monkeypatch.setenv("ENV", "development")
    assert _extract_caller(f"Bearer {token}")["user_id"] == "u-1"

    monkeypatch.setenv("ENV", "production")
    assert _extract_caller(f"Bearer {token}") is None

    monkeypatch.setenv("ENV", "staging")
    assert _extract_caller(f"Bearer {token}") is None

def test_unset_env_rejects_self_asserted_identities(monkeypatch) -> None:
    _unset_env(monkeypatch)
    monkeypatch.setattr(config, "JWT_SECRET", "")
    forged = _token({"sub": "anyone", "role": "system_admin"}, secret="attacker-key-with-at-least-32-bytes")
    assert _extract_caller(f"Bearer {forged}") is None
    assert _extract_caller("Bearer user:someone-else") is None

def test_unset_env_accepts_signed_jwt(monkeypatch) -> None:
    _unset_env(monkeypatch)
    monkeypatch.setattr(config, "JWT_SECRET", SECRET)
    assert _extract_caller(f"Bearer {_token({'sub': 'u-9'})}")["user_id"] == "u-9"

def test_caller_context_permissions() -> None:
    user = CallerContext(user_id="u1", role="user")
    assert not user.can("ai_insights", "use")
    assert user.can("tool_changes", "read")
    admin = CallerContext(user_id="a1", role="admin")
    assert admin.can("ai_insights", "use")
