from typing import Optional

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import sessionmaker

from .. import auth, schemas
from ..config import Settings
from ..database import get_session_factory, run_db

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post(
    "/signup",
    response_model=schemas.Identity,
    status_code=status.HTTP_201_CREATED,
)
async def signup(
    payload: Optional[dict] = Body(default=None),
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(auth.app_settings),
):
    """Register a user. Only ``id`` and ``email`` are returned."""
    payload = payload or {}
    return await run_db(
        settings.db_timeout_seconds,
        session_factory,
        auth.signup,
        payload.get("email"),
        payload.get("password"),
        settings.password_hash_rounds,
    )


@router.post("/login", response_model=schemas.TokenOut)
async def login(
    payload: Optional[dict] = Body(default=None),
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(auth.app_settings),
):
    payload = payload or {}
    token = await run_db(
        settings.db_timeout_seconds,
        session_factory,
        auth.login,
        payload.get("email"),
        payload.get("password"),
        settings,
    )
    return {"token": token}
