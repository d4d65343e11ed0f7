from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

import accounts, errors
from config import Settings
from database import get_db
from lifecycle import FileRecordLifecycle
from notifier import ChangeNotifier
from storage import BlobStorage


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> BlobStorage:
    return request.app.state.storage


def get_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.notifier


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    notifier: ChangeNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> FileRecordLifecycle:
    return FileRecordLifecycle(db, storage, notifier, settings)


def extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization", "")
    if authorization.startswith("Bearer"):
        parts = authorization.split(" ", 1)
        return parts[1].strip() if len(parts) == 2 else None
    return request.cookies.get("token")


async def get_current_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> accounts.Identity:
    return await accounts.resolve_token(db, settings, extract_token(request))


async def require_admin(identity: accounts.Identity = Depends(get_current_identity)) -> accounts.Identity:
    if not identity.is_admin:
        raise errors.Forbidden(f"User role '{identity.role}' is not authorized to access this route")
    return identity
