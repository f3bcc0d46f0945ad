from contextlib import contextmanager

from psycopg.rows import dict_row

# psycopg3 connection pooling lives in a separate package.
from psycopg_pool import ConnectionPool

from .config import settings


class Database:
    """
    One bounded connection pool, built once at process start and handed to handlers
    through `deps.get_db` (no module-level pool).
    """

    def __init__(
        self,
        conninfo: str,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 60.0,
    ):
        # Keep row_factory=dict_row: handlers index rows by column name.
        self.pool = ConnectionPool(
            conninfo=conninfo,
            min_size=min_size,
            max_size=max_size,
            timeout=timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

    @classmethod
    def from_settings(cls, cfg=settings) -> "Database":
        return cls(
            cfg.db_url,
            min_size=cfg.db_pool_min_size,
            max_size=cfg.db_pool_max_size,
            timeout=cfg.db_pool_timeout,
        )

    def open(self) -> None:
        self.pool.open()

    def close(self) -> None:
        self.pool.close()

    @contextmanager
    def connection(self):
        # `with db.connection() as conn:`
        # - commit on success
        # - rollback on exception
        # - return connection to pool on every exit path
        with self.pool.connection() as conn:
            yield conn
