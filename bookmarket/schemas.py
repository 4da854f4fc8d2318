from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, confloat, constr


class ListingFields(BaseModel):
    """Writable listing fields; anything else in the body is ignored."""

    title: constr(strip_whitespace=True, min_length=1, max_length=255)
    author: constr(strip_whitespace=True, min_length=1, max_length=255)
    description: Optional[constr(max_length=5000)] = None
    price: confloat(ge=0, le=99_999_999.99, allow_inf_nan=False)


class ListingUpdate(ListingFields):
    sold: Optional[bool] = None


class Identity(BaseModel):
    """Authenticated caller, decoded from a verified token."""

    id: int
    email: str

    class Config:
        from_attributes = True
        frozen = True


class TokenOut(BaseModel):
    token: str


class MessageOut(BaseModel):
    message: str


class SellerOut(BaseModel):
    email: str

    class Config:
        from_attributes = True


class ListingOut(BaseModel):
    id: int
    title: str
    author: str
    description: Optional[str] = None
    price: float
    owner_id: int
    sold: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ListingPublic(ListingOut):
    seller: SellerOut


def format_errors(exc) -> str:
    """Flatten pydantic or request validation errors into one message."""
    parts: List[str] = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error["loc"])
        parts.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return "; ".join(parts)
