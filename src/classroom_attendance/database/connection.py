from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import mysql.connector
from mysql.connector import pooling
from mysql.connector.constants import ClientFlag

from ..core.constants import DEFAULT_CONNECT_RETRIES, DEFAULT_POOL_SIZE, DEFAULT_RETRY_DELAY_SECONDS
from ..core.exceptions import InternalError

logger = logging.getLogger(__name__)


@dataclass
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str
    pool_size: int = DEFAULT_POOL_SIZE


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry used while acquiring connections."""

    max_retries: int = DEFAULT_CONNECT_RETRIES
    delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS


class ConnectionPool:
    """Pooled MySQL connection factory.

    One instance is built by the container and handed to every repository.
    The underlying pool is created on first use so the app can start while
    the database is still coming up.
    """

    def __init__(
        self,
        config: DBConfig,
        *,
        retry: Optional[RetryPolicy] = None,
        pool_name: str = "classroom_attendance",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._retry = retry or RetryPolicy()
        self._pool_name = pool_name
        self._sleep = sleep
        self._pool: Optional[pooling.MySQLConnectionPool] = None

    @property
    def config(self) -> DBConfig:
        return self._config

    def _create_pool(self) -> pooling.MySQLConnectionPool:
        return pooling.MySQLConnectionPool(
            pool_name=self._pool_name,
            pool_size=int(self._config.pool_size),
            pool_reset_session=True,
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            # rowcount = matched rows, not changed rows
            client_flags=[ClientFlag.FOUND_ROWS],
        )

    def _acquire(self):
        if self._pool is None:
            self._pool = self._create_pool()
        return self._pool.get_connection()

    def connect(self):
        attempt = 0
        while True:
            try:
                return self._acquire()
            except mysql.connector.Error as exc:
                if attempt >= self._retry.max_retries:
                    logger.error("Giving up on database after %d retries: %s", attempt, exc)
                    raise InternalError("Database is unavailable") from exc
                attempt += 1
                logger.warning(
                    "Database connection failed (%s), retrying %d/%d in %.1fs",
                    exc,
                    attempt,
                    self._retry.max_retries,
                    self._retry.delay_seconds,
                )
                self._sleep(self._retry.delay_seconds)

    def status(self) -> dict:
        return {
            "initialized": self._pool is not None,
            "host": self._config.host,
            "database": self._config.database,
            "pool_size": int(self._config.pool_size),
        }
