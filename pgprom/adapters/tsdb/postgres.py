"""
PostgreSQL Adapter - Remote storage backed by the pg_prometheus extension.

Writes are bulk loaded with COPY; reads are compiled into SELECTs over the
extension's accessor functions and folded back into series.
"""

import asyncio
import logging
from collections.abc import Sequence

import asyncpg
from pydantic import PrivateAttr

from pgprom.core.aggregator import SeriesAggregator
from pgprom.core.domain.errors import (
    AdapterError,
    ProvisioningError,
    ScanError,
    StoreConnectionError,
    WriteError,
)
from pgprom.core.domain.samples import ReadRequest, ReadResponse, Sample
from pgprom.core.domain.settings import SystemSettings
from pgprom.core.matchers import build_command, quote_ident
from pgprom.core.ports.sample_store import SampleStore
from pgprom.core.writer import write_samples

logger = logging.getLogger(__name__)

CREATE_EXTENSION = "CREATE EXTENSION IF NOT EXISTS pg_prometheus"
CREATE_TABLE = (
    "SELECT create_prometheus_table($1, $2, normalized_tables => $3, keep_samples => $4)"
)


class PostgresAdapter(SampleStore):
    """
    Sample store for PostgreSQL with pg_prometheus.
    Configured via Pydantic model fields.
    """
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    database: str = "postgres"
    schema_name: str = ""
    table: str = "samples"
    normalize: bool = False
    normalized_table: str = "metrics"
    keep_samples: bool = True
    connect_timeout: float = 10.0
    command_timeout: float = 60.0
    pool_min_size: int = 1
    pool_max_size: int = 10

    _pool: asyncpg.Pool | None = PrivateAttr(default=None)

    @classmethod
    def from_settings(cls, settings: SystemSettings) -> "PostgresAdapter":
        return cls(
            host=settings.postgres_host,
            port=settings.postgres_port,
            user=settings.postgres_user,
            password=settings.postgres_password,
            database=settings.postgres_database,
            schema_name=settings.postgres_schema,
            table=settings.postgres_table,
            normalize=settings.pg_prometheus_normalized_schema,
            normalized_table=settings.pg_prometheus_normalized_table_name,
            keep_samples=settings.pg_prometheus_keep_samples,
            connect_timeout=settings.connect_timeout,
            command_timeout=settings.command_timeout,
            pool_min_size=settings.pool_min_size,
            pool_max_size=settings.pool_max_size,
        )

    @property
    def name(self) -> str:
        return "PostgreSQL"

    async def connect(self) -> asyncpg.Pool:
        """
        Create the connection pool.

        Raises:
            StoreConnectionError: if the database cannot be reached
        """
        if self._pool is not None:
            return self._pool

        server_settings = None
        if self.schema_name:
            # pg_prometheus' functions and types live in public unless installed elsewhere.
            server_settings = {"search_path": f"{quote_ident(self.schema_name)}, public"}
        try:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                database=self.database,
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
                timeout=self.connect_timeout,
                command_timeout=self.command_timeout,
                server_settings=server_settings,
            )
        except Exception as e:
            logger.error(f"Failed to connect to {self.host}:{self.port}/{self.database}: {e}")
            raise StoreConnectionError(f"Database connection failed: {e}") from e

        logger.info(f"PostgreSQL connection pool created: {self.host}:{self.port}/{self.database}")
        return self._pool

    def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StoreConnectionError("Connection pool not initialized, call connect() first")
        return self._pool

    async def setup_pg_prometheus(self) -> None:
        """
        Create the extension and the samples table.

        Safe to call on every startup: an 'already exists' failure counts as
        success.

        Raises:
            ProvisioningError: for any other failure
        """
        pool = self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(CREATE_EXTENSION)
                    await conn.execute(
                        CREATE_TABLE,
                        self.table,
                        self.normalized_table,
                        self.normalize,
                        self.keep_samples,
                    )
        except asyncpg.PostgresError as e:
            if "already exists" in str(e):
                logger.info(f"Table '{self.table}' already exists, skipping provisioning")
                return
            raise ProvisioningError(f"Failed to provision pg_prometheus: {e}") from e
        except (asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise ProvisioningError(f"Failed to provision pg_prometheus: {e}") from e

        logger.info("Initialized pg_prometheus extension")

    async def write(self, samples: Sequence[Sample]) -> int:
        pool = self._get_pool()
        try:
            async with pool.acquire() as conn:
                return await write_samples(conn, self.table, samples, schema=self.schema_name)
        except AdapterError:
            raise
        except Exception as e:
            logger.error(f"Could not get a connection to write {len(samples)} samples: {e}")
            raise WriteError(f"Failed to write {len(samples)} samples: {e}") from e

    async def read(self, request: ReadRequest) -> ReadResponse:
        # Compile everything first so a bad matcher means no query runs at all.
        commands = [build_command(q, self.table) for q in request.queries]

        aggregator = SeriesAggregator()
        pool = self._get_pool()

        command = None
        try:
            async with pool.acquire() as conn:
                async with conn.transaction(readonly=True):
                    for command in commands:
                        logger.debug(f"Query '{command}'")
                        async for record in conn.cursor(command):
                            aggregator.add_row(record[0], record[1], record[2], record[3])
        except AdapterError:
            raise
        except Exception as e:
            if command is None:
                logger.error(f"Could not open a read transaction: {e}")
            else:
                logger.error(f"Scan failed for query '{command}': {e}")
            raise ScanError(f"Failed to read rows: {e}") from e

        logger.debug(f"Returned response with {len(aggregator)} timeseries")
        return aggregator.response()

    async def health_check(self) -> None:
        pool = self._get_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.debug(f"Health check error {e}")
            raise StoreConnectionError(f"Health check failed: {e}") from e

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL connection pool closed")
