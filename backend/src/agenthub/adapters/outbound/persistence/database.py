"""SQLAlchemy async database session factory."""

from __future__ import annotations

import ssl
from typing import Any

from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from agenthub.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    url = settings.database_url
    connect_args: dict[str, Any] = {}

    if url.startswith("sqlite"):
        if ":memory:" in url:
            # Every session must see the same in-memory database
            return create_async_engine(
                url,
                echo=settings.app_debug,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_async_engine(
            url, echo=settings.app_debug, connect_args={"timeout": 30}
        )

    # asyncpg wants 'ssl' in connect_args, not 'sslmode' in the query string
    if "sslmode=" in url:
        parsed_url = make_url(url)
        query = dict(parsed_url.query)
        ssl_mode = query.pop("sslmode", "require")
        url = parsed_url.set(query=query).render_as_string(hide_password=False)

        if ssl_mode in ("require", "verify-full", "verify-ca"):
            ctx = ssl.create_default_context()
            if ssl_mode == "require":
                ctx.check_hostname = False
                ctx.verify_mode = ssl.CERT_NONE
            connect_args["ssl"] = ctx

    return create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.app_debug,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def create_session_factory(settings: Settings) -> async_sessionmaker[AsyncSession]:
    engine = create_engine(settings)
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
