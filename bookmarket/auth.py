import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import crud, errors, models
from .config import Settings
from .schemas import Identity

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"

# bcrypt ignores everything past this many bytes of the password.
MAX_PASSWORD_BYTES = 72

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def password_context(rounds: int = 12) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str, rounds: int = 12) -> str:
    return password_context(rounds).hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_context().verify(plain_password, hashed_password)


def issue_token(
    identity: Identity,
    secret: str,
    ttl: timedelta = timedelta(hours=24),
    algorithm: str = "HS256",
    now: Optional[datetime] = None,
) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {"id": identity.id, "email": identity.email, "exp": issued_at + ttl}
    return jwt.encode(payload, secret, algorithm=algorithm)


def verify_token(token: str, secret: str, algorithm: str = "HS256") -> Identity:
    """Decode ``token`` and return the identity it carries.

    Any bad signature, missing or past ``exp``, or malformed payload raises
    ``AuthError``.
    """
    try:
        payload = jwt.decode(
            token, secret, algorithms=[algorithm], options={"require_exp": True}
        )
    except JWTError as exc:
        raise errors.AuthError("Invalid token") from exc

    user_id = payload.get("id")
    email = payload.get("email")
    if type(user_id) is not int or not isinstance(email, str):
        raise errors.AuthError("Invalid token")
    return Identity(id=user_id, email=email)


def _credentials(email, password) -> tuple[str, str]:
    if not isinstance(email, str) or not isinstance(password, str):
        raise errors.ValidationError("Email and password are required")
    if not email.strip() or not password:
        raise errors.ValidationError("Email and password are required")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise errors.ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
        )
    return email, password


def signup(db: Session, email, password, rounds: int = 12) -> models.User:
    email, password = _credentials(email, password)
    if crud.get_user_by_email(db, email) is not None:
        raise errors.ConflictError("Email is already registered")

    user = crud.create_user(db, email, hash_password(password, rounds))
    logger.info("Created user %s (%s)", user.id, user.email)
    return user


def login(db: Session, email, password, settings: Settings) -> str:
    """Check credentials and return a signed token.

    Unknown email and wrong password fail with the same message.
    """
    email, password = _credentials(email, password)
    user = crud.get_user_by_email(db, email)
    if user is None:
        password_context(settings.password_hash_rounds).dummy_verify()
        logger.warning("Failed login for %s", email)
        raise errors.AuthError(INVALID_CREDENTIALS)
    if not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", email)
        raise errors.AuthError(INVALID_CREDENTIALS)

    return issue_token(
        Identity(id=user.id, email=user.email),
        settings.jwt_secret,
        ttl=timedelta(hours=settings.token_ttl_hours),
        algorithm=settings.jwt_algorithm,
    )


def app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(app_settings),
) -> Identity:
    if credentials is None:
        raise errors.AuthError("Unauthorized")
    return verify_token(
        credentials.credentials, settings.jwt_secret, algorithm=settings.jwt_algorithm
    )
