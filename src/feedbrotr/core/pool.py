"""
Async PostgreSQL connection pool built on asyncpg.

Backs the [PostgresBackend][feedbrotr.core.store.PostgresBackend] of the
keyed store. Manages a bounded pool of connections with retry and
exponential backoff on connection failures, JSON/JSONB codecs registered on
every connection.

Query methods retry automatically on transient connection errors
(``InterfaceError``, ``ConnectionDoesNotExistError``) but never on
query-level errors such as syntax errors or constraint violations.

Examples:
    ```python
    pool = Pool(PoolConfig(database=DatabaseConfig(host="db")))
    await pool.connect()
    rows = await pool.fetch("SELECT key, value FROM keyed_store WHERE tbl = $1", "circles")
    await pool.close()
    ```

See Also:
    [PostgresBackend][feedbrotr.core.store.PostgresBackend]: The only
        consumer of this pool.
"""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import AbstractAsyncContextManager
from typing import Any, Literal, cast

import asyncpg
from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator, model_validator

from .logger import Logger


DEFAULT_PASSWORD_ENV = "FEEDBROTR_DB_PASSWORD"  # pragma: allowlist secret


def _json_encode(value: Any) -> str:
    """Encode a Python value to JSON, passing pre-serialized strings through."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


async def _init_connection(conn: asyncpg.Connection[asyncpg.Record]) -> None:
    """Register JSON/JSONB codecs so documents round-trip as dicts."""
    for type_name in ("jsonb", "json"):
        await conn.set_type_codec(
            type_name,
            encoder=_json_encode,
            decoder=json.loads,
            schema="pg_catalog",
        )


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """PostgreSQL connection parameters.

    The password is read from the environment variable named by
    ``password_env``, never from configuration files.
    """

    host: str = Field(default="localhost", min_length=1, description="Database hostname")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    database: str = Field(default="feedbrotr", min_length=1, description="Database name")
    user: str = Field(default="feedbrotr", min_length=1, description="Database user")
    password_env: str = Field(
        default=DEFAULT_PASSWORD_ENV,
        min_length=1,
        description="Environment variable name for database password",
    )
    password: SecretStr = Field(description="Database password (loaded from password_env)")

    @model_validator(mode="before")
    @classmethod
    def resolve_password(cls, data: Any) -> Any:
        """Resolve the database password from the environment variable."""
        if isinstance(data, dict) and "password" not in data:
            env_var = data.get("password_env", DEFAULT_PASSWORD_ENV)
            value = os.getenv(env_var)
            if not value:
                raise ValueError(f"{env_var} environment variable not set")
            data["password"] = SecretStr(value)
        return data


class PoolLimitsConfig(BaseModel):
    """Connection pool size limits.

    A client-side cache needs few connections; the defaults are small.
    """

    min_size: int = Field(default=1, ge=1, le=100, description="Minimum connections")
    max_size: int = Field(default=5, ge=1, le=100, description="Maximum connections")
    max_inactive_connection_lifetime: float = Field(
        default=300.0, ge=0.0, description="Idle timeout (seconds)"
    )

    @field_validator("max_size")
    @classmethod
    def validate_max_size(cls, v: int, info: ValidationInfo) -> int:
        """Ensure max_size >= min_size."""
        min_size = info.data.get("min_size", 1)
        if v < min_size:
            raise ValueError(f"max_size ({v}) must be >= min_size ({min_size})")
        return v


class PoolRetryConfig(BaseModel):
    """Retry strategy for failed connection attempts.

    Exponential backoff doubles the delay each attempt
    (``initial_delay * 2^attempt``), capped at ``max_delay``.
    """

    max_attempts: int = Field(default=3, ge=1, le=10, description="Max retry attempts")
    initial_delay: float = Field(default=0.5, ge=0.0, description="Initial retry delay")
    max_delay: float = Field(default=5.0, ge=0.0, description="Maximum retry delay")

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        """Ensure max_delay >= initial_delay."""
        initial_delay = info.data.get("initial_delay", 0.5)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v


class PoolConfig(BaseModel):
    """Aggregate configuration for the connection pool."""

    database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig.model_validate({}))
    limits: PoolLimitsConfig = Field(default_factory=PoolLimitsConfig)
    retry: PoolRetryConfig = Field(default_factory=PoolRetryConfig)
    acquisition_timeout: float = Field(default=10.0, ge=0.1, description="Acquire timeout")
    application_name: str = Field(default="feedbrotr", description="PostgreSQL application_name")


# ---------------------------------------------------------------------------
# Pool Class
# ---------------------------------------------------------------------------


class Pool:
    """Async PostgreSQL connection pool for the keyed store.

    Created disconnected; the owning service calls
    [connect()][feedbrotr.core.pool.Pool.connect] on start and
    [close()][feedbrotr.core.pool.Pool.close] on stop.
    """

    def __init__(self, config: PoolConfig | None = None) -> None:
        self._config = config or PoolConfig()
        self._pool: asyncpg.Pool[asyncpg.Record] | None = None
        self._lock = asyncio.Lock()
        self._logger = Logger("pool")

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    def _retry_delay(self, attempt: int) -> float:
        retry = self._config.retry
        return float(min(retry.initial_delay * (2**attempt), retry.max_delay))

    async def connect(self) -> None:
        """Create the asyncpg pool, retrying with backoff on failure.

        Concurrent callers share one attempt.

        Raises:
            ConnectionError: If every attempt failed.
        """
        async with self._lock:
            if self._pool is not None:
                return

            db = self._config.database
            limits = self._config.limits
            attempts = self._config.retry.max_attempts
            self._logger.info("pool_connecting", host=db.host, port=db.port, database=db.database)

            for attempt in range(attempts):
                try:
                    self._pool = await asyncpg.create_pool(
                        host=db.host,
                        port=db.port,
                        database=db.database,
                        user=db.user,
                        password=db.password.get_secret_value(),
                        min_size=limits.min_size,
                        max_size=limits.max_size,
                        max_inactive_connection_lifetime=limits.max_inactive_connection_lifetime,
                        timeout=self._config.acquisition_timeout,
                        init=_init_connection,
                        server_settings={"application_name": self._config.application_name},
                    )
                except (asyncpg.PostgresError, OSError, ConnectionError) as e:
                    if attempt + 1 == attempts:
                        self._logger.error("pool_connect_failed", attempts=attempts, error=str(e))
                        raise ConnectionError(
                            f"Failed to connect after {attempts} attempts: {e}"
                        ) from e
                    delay = self._retry_delay(attempt)
                    self._logger.warning(
                        "pool_connect_retry", attempt=attempt + 1, delay_s=delay, error=str(e)
                    )
                    await asyncio.sleep(delay)
                else:
                    self._logger.info("pool_connected")
                    return

    async def close(self) -> None:
        """Close the pool. Idempotent."""
        async with self._lock:
            pool, self._pool = self._pool, None
            if pool is not None:
                await pool.close()
                self._logger.info("pool_closed")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _acquire(self) -> AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]:
        if self._pool is None:
            raise RuntimeError("Pool not connected. Call connect() first.")
        return cast(
            "AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]",
            self._pool.acquire(),
        )

    async def _run(
        self,
        operation: Literal["fetch", "fetchrow", "execute"],
        query: str,
        args: tuple[Any, ...],
    ) -> Any:
        """Run *operation* on a fresh connection, retrying transient connection errors.

        Raises:
            ConnectionError: If every attempt hit a transient connection error.
        """
        attempts = self._config.retry.max_attempts
        attempt = 0
        while True:
            try:
                async with self._acquire() as conn:
                    return await getattr(conn, operation)(query, *args)
            except (asyncpg.InterfaceError, asyncpg.ConnectionDoesNotExistError) as e:
                attempt += 1
                if attempt == attempts:
                    self._logger.error(
                        "query_failed", operation=operation, attempts=attempts, error=str(e)
                    )
                    raise ConnectionError(f"{operation} failed after {attempts} attempts: {e}") from e
                delay = self._retry_delay(attempt - 1)
                self._logger.warning(
                    "query_retry", operation=operation, attempt=attempt, delay_s=delay, error=str(e)
                )
                await asyncio.sleep(delay)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return cast("list[asyncpg.Record]", await self._run("fetch", query, args))

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return cast("asyncpg.Record | None", await self._run("fetchrow", query, args))

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a statement and return its status tag (e.g. ``"DELETE 1"``)."""
        return cast("str", await self._run("execute", query, args))
