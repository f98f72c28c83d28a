import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request

from .auth import decode_access_token
from .config import settings
from .dates import today_str
from .db import get_db
from .observability import bind_request_user
from .repositories import HabitRepository, ProjectRepository, fetch_user_by_id

logger = logging.getLogger("pulseboard-auth")


def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def get_current_user(request: Request, conn=Depends(get_db)) -> dict:
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        logger.info("Token rejected path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    row = await fetch_user_by_id(conn, payload["sub"])
    if row is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    bind_request_user(row["id"])
    return dict(row)


def get_today() -> str:
    return today_str()


async def get_habit_repository(user=Depends(get_current_user), conn=Depends(get_db)) -> HabitRepository:
    return HabitRepository(conn, user["id"])


async def get_project_repository(user=Depends(get_current_user), conn=Depends(get_db)) -> ProjectRepository:
    return ProjectRepository(conn, user["id"])
