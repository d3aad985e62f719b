import pytest
from fastapi import HTTPException
from jose import jwt

from emasjid_billing.core.config import settings
from emasjid_billing.core.dependencies import (
    ensure_local_admin_access,
    ensure_tenant_access,
    get_current_super_admin,
    get_current_user,
)
from emasjid_billing.schemas.token_schema import TokenData


def _token(**claims):
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


@pytest.mark.asyncio
async def test_get_current_user_reads_role_claims():
    user = await get_current_user(_token(sub="42", role="masjid_admin", tenant_id="masjid-a", name="Imam"))
    assert user == TokenData(sub="42", role="masjid_admin", tenant_id="masjid-a", name="Imam")


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [
    "not-a-token",
    jwt.encode({"sub": "1", "role": "super_admin"}, "other-key", algorithm="HS256"),
])
async def test_get_current_user_rejects_bad_tokens(token):
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(token)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("claims", [{"role": "super_admin"}, {"sub": "1", "role": "jemaah"}])
async def test_get_current_user_requires_subject_and_known_role(claims):
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(_token(**claims))
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_get_current_super_admin():
    admin = TokenData(sub="1", role="super_admin")
    assert await get_current_super_admin(admin) is admin
    with pytest.raises(HTTPException) as exc_info:
        await get_current_super_admin(TokenData(sub="2", role="masjid_admin", tenant_id="masjid-a"))
    assert exc_info.value.status_code == 403


def test_tenant_access():
    ensure_tenant_access(TokenData(sub="1", role="super_admin"), "masjid-b")
    ensure_tenant_access(TokenData(sub="2", role="masjid_admin", tenant_id="masjid-a"), "masjid-a")
    for user in (
        TokenData(sub="2", role="masjid_admin", tenant_id="masjid-a"),
        TokenData(sub="3", role="local_admin", local_admin_id=7),
    ):
        with pytest.raises(HTTPException):
            ensure_tenant_access(user, "masjid-b")


def test_local_admin_access():
    ensure_local_admin_access(TokenData(sub="3", role="local_admin", local_admin_id=7), 7)
    with pytest.raises(HTTPException):
        ensure_local_admin_access(TokenData(sub="3", role="local_admin", local_admin_id=7), 8)
