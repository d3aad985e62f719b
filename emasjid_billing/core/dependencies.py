from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession
from emasjid_billing.core.database import db_manager
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from emasjid_billing.core.config import settings
from emasjid_billing.schemas import token_schema

# Tokens are issued by the surrounding e-Masjid apps; this service only reads the role claims.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

SUPER_ADMIN = "super_admin"
MASJID_ADMIN = "masjid_admin"
LOCAL_ADMIN = "local_admin"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in db_manager.get_db_session():
        yield session

# --- Role look-up ---

async def get_current_user(token: str = Depends(oauth2_scheme)) -> token_schema.TokenData:
    """
    Decodes the bearer token and returns its claims.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception

        token_data = token_schema.TokenData(
            sub=str(user_id),
            role=payload.get("role"),
            tenant_id=payload.get("tenant_id"),
            local_admin_id=payload.get("local_admin_id"),
            name=payload.get("name"),
        )
    except JWTError:
        raise credentials_exception

    if token_data.role not in (SUPER_ADMIN, MASJID_ADMIN, LOCAL_ADMIN):
        raise credentials_exception
    return token_data


async def get_current_super_admin(
    current_user: token_schema.TokenData = Depends(get_current_user),
) -> token_schema.TokenData:
    """
    Dependency to ensure the user is a super admin.
    """
    if current_user.role != SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user does not have super admin privileges",
        )
    return current_user


def ensure_tenant_access(current_user: token_schema.TokenData, tenant_id: str) -> None:
    """Super admins see every tenant; masjid admins only their own."""
    if current_user.role == SUPER_ADMIN:
        return
    if current_user.role == MASJID_ADMIN and current_user.tenant_id == tenant_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="The user does not have access to this masjid",
    )


def ensure_local_admin_access(current_user: token_schema.TokenData, local_admin_id: int) -> None:
    if current_user.role == SUPER_ADMIN:
        return
    if current_user.role == LOCAL_ADMIN and current_user.local_admin_id == local_admin_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="The user does not have access to this local admin",
    )
