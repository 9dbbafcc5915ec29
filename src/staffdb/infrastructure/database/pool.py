"""ConnectionProvider — bounded pool check-out/check-in.

The provider is the only shared mutable resource of the layer. It wraps the
engine's ``QueuePool`` and adds the contract the repositories rely on:

- :meth:`acquire` blocks at most ``acquire_timeout_ms`` and then raises
  :class:`PoolExhausted`; it never opens connections beyond ``pool_max``.
- Unreachable stores raise :class:`StoreConnectionError` after
  ``retry_count`` retries with capped exponential backoff.
- :meth:`release` is idempotent. Invalidated (broken) connections are
  discarded; the pool opens a replacement on the next check-out.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import exc as sa_exc
from sqlalchemy import text

from staffdb.config.models import PoolConfig, StoreConfig
from staffdb.domain.errors import DataAccessError, PoolExhausted, StoreConnectionError
from staffdb.infrastructure.database.engine import create_store_engine

if TYPE_CHECKING:
    from sqlalchemy import Connection
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Errors raised while opening a connection that indicate the store itself is
# unreachable (as opposed to pool saturation).
_CONNECT_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
)


class ConnectionProvider:
    """Acquires and releases pooled store connections.

    Constructed once at startup (see :class:`~staffdb.Store`) and torn down
    with :meth:`close`.
    """

    def __init__(
        self,
        engine: Engine,
        config: PoolConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._engine = engine
        self._config = config or PoolConfig()
        self._sleep = sleep
        self._checked_out: set[Connection] = set()
        # Guards the bookkeeping set only; never held across a store call.
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_config(cls, store: StoreConfig, pool: PoolConfig) -> ConnectionProvider:
        engine = create_store_engine(store.url, pool, echo=store.echo)
        return cls(engine, pool)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Open ``pool_min`` connections eagerly so the first callers do not pay for them."""
        warm = [self.acquire() for _ in range(self._config.pool_min)]
        for conn in warm:
            self.release(conn)
        logger.info(
            "Connection pool ready (min=%d, max=%d)",
            self._config.pool_min,
            self._config.pool_max,
        )

    def close(self) -> None:
        """Dispose the pool. Connections still checked out close on release."""
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()
        logger.info("Connection pool closed")

    # ------------------------------------------------------------------
    # Check-out / check-in
    # ------------------------------------------------------------------

    def acquire(self) -> Connection:
        """Check a connection out of the pool.

        Raises:
            PoolExhausted: No connection became free within the acquire timeout.
            StoreConnectionError: The store is unreachable after all retries,
                or the provider has been closed.
        """
        if self._closed:
            msg = "Connection provider is closed"
            raise StoreConnectionError(msg)

        attempt = 0
        while True:
            try:
                conn = self._engine.connect()
            except sa_exc.TimeoutError as exc:
                msg = (
                    f"No connection available within {self._config.acquire_timeout_ms} ms "
                    f"(pool_max={self._config.pool_max})"
                )
                raise PoolExhausted(
                    msg,
                    detail={
                        "pool_max": self._config.pool_max,
                        "acquire_timeout_ms": self._config.acquire_timeout_ms,
                    },
                ) from exc
            except _CONNECT_ERRORS as exc:
                if attempt >= self._config.retry_count:
                    msg = f"Store unreachable after {attempt + 1} attempt(s): {exc}"
                    raise StoreConnectionError(msg, detail={"attempts": attempt + 1}) from exc
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Connection attempt %d failed, retrying in %.3fs: %s",
                    attempt + 1,
                    delay,
                    exc,
                )
                self._sleep(delay)
                attempt += 1
                continue

            with self._lock:
                self._checked_out.add(conn)
            return conn

    def release(self, conn: Connection, *, broken: bool = False) -> None:
        """Return *conn* to the pool. Safe to call more than once.

        A connection flagged *broken*, or already invalidated by SQLAlchemy
        after a disconnect, is discarded instead of being reused.
        """
        with self._lock:
            if conn not in self._checked_out:
                return
            self._checked_out.discard(conn)

        if broken and not conn.invalidated:
            conn.invalidate()
        if conn.invalidated:
            logger.warning("Discarding broken connection")
        conn.close()

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Scoped acquisition: the connection is released on every exit path."""
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        delay_ms = min(
            self._config.backoff_base_ms * (2**attempt),
            self._config.backoff_max_ms,
        )
        return delay_ms / 1000

    def health_check(self) -> bool:
        """Round-trip ``SELECT 1``. Returns False (and logs why) on failure."""
        try:
            with self.connection() as conn:
                conn.execute(text("SELECT 1"))
        except (DataAccessError, sa_exc.SQLAlchemyError) as exc:
            logger.warning("Health check failed: %s", exc)
            return False
        return True

    def stats(self) -> dict[str, Any]:
        with self._lock:
            checked_out = len(self._checked_out)
        return {
            "pool_min": self._config.pool_min,
            "pool_max": self._config.pool_max,
            "checked_out": checked_out,
            "closed": self._closed,
        }
