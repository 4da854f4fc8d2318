import asyncio
import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import DatabaseTimeoutError

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")


def build_engine(database_url: str) -> Engine:
    """Create the engine for ``database_url``.

    SQLite needs ``check_same_thread=False`` because sessions are used from
    the thread pool; an in-memory SQLite database additionally shares a
    single connection through ``StaticPool`` so every session sees the same
    tables.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory


def _in_session(session_factory: sessionmaker, fn: Callable[..., T], *args: Any) -> T:
    with session_factory() as db:
        return fn(db, *args)


async def run_db(
    timeout: float,
    session_factory: sessionmaker,
    fn: Callable[..., T],
    *args: Any,
) -> T:
    """Run ``fn(db, *args)`` in the default executor, bounded by ``timeout``.

    The session is opened and closed inside the worker thread, so a call
    abandoned on timeout keeps sole ownership of it until it finishes.
    Service functions are responsible for commit / rollback.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(
        None, functools.partial(_in_session, session_factory, fn, *args)
    )
    try:
        return await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error(
            "Database call %s timed out after %.1fs", getattr(fn, "__name__", fn), timeout
        )
        raise DatabaseTimeoutError() from exc
