"""
PharmaPOP Entry API Dependencies

Dependency injection for DB sessions, auth, blob storage and services.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.session import AsyncSessionLocal
from media.blob_store import BlobStore, get_blob_store
from media.reclaimer import OrphanBlobReclaimer
from media.sources import HostAllowlist
from sheets.service import SheetService

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

DEV_USER_ID = "00000000-0000-0000-0000-000000000001"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode the session JWT and return the user payload. Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": DEV_USER_ID,
            "email": "dev@pharmapop.local",
            "display_name": "Dev Admin",
            "phone_number": "",
            "manufacturer_name": "Dev Manufacturer",
            "role": "ADMIN",
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


def get_app_settings() -> Settings:
    return get_settings()


def get_sheet_service(
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    app_settings: Settings = Depends(get_app_settings),
) -> SheetService:
    return SheetService(db, store, app_settings)


def get_reclaimer(
    store: BlobStore = Depends(get_blob_store),
    app_settings: Settings = Depends(get_app_settings),
) -> OrphanBlobReclaimer:
    return OrphanBlobReclaimer(store, HostAllowlist.from_settings(app_settings))
