from typing import Any, List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import sessionmaker

from .. import crud, errors, schemas
from ..auth import app_settings, require_identity
from ..config import Settings
from ..database import get_session_factory, run_db

router = APIRouter(prefix="/api/books", tags=["books"])


async def listing_payload(
    request: Request,
    identity: schemas.Identity = Depends(require_identity),
) -> Any:
    """Read the JSON body, only once the caller has been authenticated."""
    try:
        return await request.json()
    except ValueError as exc:
        raise errors.ValidationError("Request body must be valid JSON") from exc


@router.get("", response_model=List[schemas.ListingPublic])
async def list_books(
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(app_settings),
):
    """Browse unsold listings."""
    return await run_db(
        settings.db_timeout_seconds, session_factory, crud.list_available
    )


@router.post(
    "",
    response_model=schemas.ListingOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_book(
    identity: schemas.Identity = Depends(require_identity),
    payload: Any = Depends(listing_payload),
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(app_settings),
):
    return await run_db(
        settings.db_timeout_seconds,
        session_factory,
        crud.create_listing,
        identity,
        payload,
    )


@router.put("/{book_id}", response_model=schemas.ListingOut)
async def update_book(
    book_id: int,
    identity: schemas.Identity = Depends(require_identity),
    payload: Any = Depends(listing_payload),
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(app_settings),
):
    return await run_db(
        settings.db_timeout_seconds,
        session_factory,
        crud.update_listing,
        identity,
        book_id,
        payload,
    )


@router.delete("/{book_id}", response_model=schemas.MessageOut)
async def delete_book(
    book_id: int,
    identity: schemas.Identity = Depends(require_identity),
    session_factory: sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(app_settings),
):
    await run_db(
        settings.db_timeout_seconds,
        session_factory,
        crud.delete_listing,
        identity,
        book_id,
    )
    return {"message": "Book deleted successfully"}
