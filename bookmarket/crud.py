import logging
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from . import errors, models, schemas

logger = logging.getLogger(__name__)


def _commit(db: Session) -> None:
    """Commit, wrapping low-level SQLAlchemy errors in ``StoreError``."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise errors.StoreError("Database commit failed") from exc


def _parse(schema, fields: Any):
    if not isinstance(fields, Mapping):
        raise errors.ValidationError("Request body must be a JSON object")
    try:
        return schema(**fields)
    except PydanticValidationError as exc:
        raise errors.ValidationError(schemas.format_errors(exc)) from exc


def get_user_by_email(db: Session, email: str) -> models.User | None:
    return db.query(models.User).filter(models.User.email == email).first()


def create_user(db: Session, email: str, password_hash: str) -> models.User:
    """Insert a user row.

    Raises:
        ConflictError: if the email is taken (a concurrent signup can still
            get past the caller's up-front check, so the unique constraint
            is the final word).
        StoreError: if the commit fails for any other reason.
    """
    user = models.User(email=email, password_hash=password_hash)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise errors.ConflictError("Email is already registered") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise errors.StoreError("Database commit failed") from exc

    db.refresh(user)
    return user


def list_available(db: Session) -> list[models.Listing]:
    """Return every unsold listing with its seller loaded."""
    return (
        db.query(models.Listing)
        .options(joinedload(models.Listing.seller))
        .filter(models.Listing.sold.is_(False))
        .order_by(models.Listing.id)
        .all()
    )


def create_listing(
    db: Session, identity: schemas.Identity, fields: Any
) -> models.Listing:
    data = _parse(schemas.ListingFields, fields)
    listing = models.Listing(
        title=data.title,
        author=data.author,
        description=data.description,
        price=data.price,
        owner_id=identity.id,
    )
    db.add(listing)
    _commit(db)
    db.refresh(listing)
    logger.info("User %s listed book %s", identity.id, listing.id)
    return listing


def _owned_listing(
    db: Session, identity: schemas.Identity, listing_id: int
) -> models.Listing:
    listing = db.get(models.Listing, listing_id)
    if listing is None:
        raise errors.NotFoundError("Book not found")
    if listing.owner_id != identity.id:
        logger.warning(
            "User %s tried to modify book %s owned by %s",
            identity.id,
            listing_id,
            listing.owner_id,
        )
        raise errors.ForbiddenError("Forbidden")
    return listing


def update_listing(
    db: Session, identity: schemas.Identity, listing_id: int, fields: Any
) -> models.Listing:
    """Replace a listing's fields.

    The ownership check and the write are separate statements, so two
    concurrent updates resolve as last write wins.
    """
    listing = _owned_listing(db, identity, listing_id)
    data = _parse(schemas.ListingUpdate, fields)

    listing.title = data.title
    listing.author = data.author
    listing.description = data.description
    listing.price = data.price
    if data.sold is not None:
        listing.sold = data.sold

    _commit(db)
    db.refresh(listing)
    logger.info("User %s updated book %s", identity.id, listing.id)
    return listing


def delete_listing(db: Session, identity: schemas.Identity, listing_id: int) -> None:
    listing = _owned_listing(db, identity, listing_id)
    db.delete(listing)
    _commit(db)
    logger.info("User %s deleted book %s", identity.id, listing_id)
