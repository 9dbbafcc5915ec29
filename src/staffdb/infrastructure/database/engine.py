"""Engine construction for the relational store.

SQLAlchemy Core (not ORM) is used: repositories issue explicit statements
and map rows through the typed mapping table, so there is no benefit from
session management or identity maps.

The engine's ``QueuePool`` is the bounded pool behind
:class:`~staffdb.infrastructure.database.pool.ConnectionProvider`:
``pool_size=pool_max`` with no overflow, so demand beyond the bound blocks
for ``acquire_timeout_ms`` instead of opening new connections.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import QueuePool

from staffdb.config.models import PoolConfig
from staffdb.infrastructure.database.schema import metadata


def create_store_engine(url: str, pool: PoolConfig | None = None, *, echo: bool = False) -> Engine:
    """Create an engine with a bounded connection pool.

    SQLite stores get foreign-key enforcement and WAL mode on every new
    connection; other backends enforce foreign keys natively.
    """
    pool = pool or PoolConfig()
    sa_url = make_url(url)
    is_sqlite = sa_url.get_backend_name() == "sqlite"

    connect_args: dict[str, Any] = {}
    if is_sqlite:
        # Pooled connections move between caller threads.
        connect_args["check_same_thread"] = False

    engine = create_engine(
        sa_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool.pool_max,
        max_overflow=0,
        pool_timeout=pool.acquire_timeout_ms / 1000,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
            cursor = dbapi_conn.cursor()
            if sa_url.database and sa_url.database != ":memory:":
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_schema(engine: Engine) -> None:
    """Create the three entity tables if they do not exist.

    Idempotent. Intended for development stores and tests; production stores
    are provisioned externally before the layer starts.
    """
    metadata.create_all(engine)
