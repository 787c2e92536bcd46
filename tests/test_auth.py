"""
Tests for login, token renewal and role checks
"""

import pytest

from app.core.errors import ExpiredOrInvalidRenewalCredential, InvalidCredentials
from app.core.security import TokenError, create_access_token, create_refresh_token, decode_token
from app.services.auth import authenticate, renew


async def test_authenticate_issues_tokens(db, scenario):
    result = await authenticate(db, username="agent_a", password="agent123")

    assert result.role == "agent"
    assert result.expires_in == 30 * 60
    access = decode_token(result.access_token, expected_type="access")
    assert access["sub"] == str(scenario.agent_id)
    assert access["role"] == "agent"
    assert decode_token(result.refresh_token, expected_type="refresh")["sub"] == str(scenario.agent_id)


@pytest.mark.parametrize("username, password", [("agent_a", "wrong-pass"), ("nobody", "agent123")])
async def test_authenticate_rejects_bad_credentials(db, scenario, username, password):
    with pytest.raises(InvalidCredentials) as exc:
        await authenticate(db, username=username, password=password)
    assert exc.value.detail == "Invalid username or password"


async def test_renew_with_refresh_token(db, scenario):
    result = await renew(db, refresh_token=create_refresh_token(user_id=scenario.admin_id))
    assert result.role == "admin"
    assert decode_token(result.access_token, expected_type="access")["sub"] == str(scenario.admin_id)


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
async def test_renew_rejects_missing_or_garbage(db, scenario, token):
    with pytest.raises(ExpiredOrInvalidRenewalCredential):
        await renew(db, refresh_token=token)


async def test_renew_rejects_access_token(db, scenario):
    access = create_access_token(user_id=scenario.admin_id, role="admin")
    with pytest.raises(ExpiredOrInvalidRenewalCredential):
        await renew(db, refresh_token=access)


async def test_renew_for_deleted_user(db, scenario):
    with pytest.raises(ExpiredOrInvalidRenewalCredential):
        await renew(db, refresh_token=create_refresh_token(user_id=9999))


def test_refresh_token_is_not_an_access_token():
    token = create_refresh_token(user_id=1)
    with pytest.raises(TokenError):
        decode_token(token, expected_type="access")
