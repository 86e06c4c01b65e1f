"""SQLite storage for scan runs, recommendations, health records and the watchlist.

A ``Database`` owns one aiosqlite connection. Opening it brings the schema up to
date from the numbered ``migrations/NNN_name.sql`` files; the highest applied
number is kept in ``schema_version``. Connection pragmas come from
``ScanSettings`` so a shared file can be opened by the CLI while a scan holds it.
"""

import datetime
import logging
from pathlib import Path
from types import TracebackType

import aiosqlite

from Put_Scout.config import ScanSettings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
IN_MEMORY = ":memory:"


def migration_files(directory: Path = MIGRATIONS_DIR) -> list[tuple[int, Path]]:
    """Numbered migration scripts in ascending order."""
    found: list[tuple[int, Path]] = []
    for path in directory.glob("*.sql"):
        prefix = path.stem.split("_", 1)[0]
        if not prefix.isdigit():
            logger.warning("Ignoring migration without a numeric prefix: %s", path.name)
            continue
        found.append((int(prefix), path))
    return sorted(found)


class Database:
    """Connection holder used by ``Repository``; open it with ``async with``."""

    def __init__(
        self,
        db_path: str = "data/put_scout.db",
        *,
        wal: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self._db_path = db_path
        self._wal = wal
        self._busy_timeout_ms = busy_timeout_ms
        self._connection: aiosqlite.Connection | None = None

    @classmethod
    def from_settings(cls, settings: ScanSettings) -> "Database":
        return cls(
            settings.db_path,
            wal=settings.db_wal,
            busy_timeout_ms=settings.db_busy_timeout_ms,
        )

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(f"Database {self._db_path} is not connected")
        return self._connection

    async def connect(self) -> None:
        if self._db_path != IN_MEMORY:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self._db_path)
        self._connection = conn
        # In-memory databases ignore WAL and report "memory".
        if self._wal and self._db_path != IN_MEMORY:
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
        await conn.execute("PRAGMA foreign_keys=ON")
        await self._run_migrations()
        logger.info("Opened %s (schema v%d)", self._db_path, await self.schema_version())

    async def close(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.debug("Closed %s", self._db_path)

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def schema_version(self) -> int:
        """Highest applied migration number, 0 for an empty database."""
        cursor = await self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        return int(row[0]) if row is not None and row[0] is not None else 0

    async def _run_migrations(self) -> None:
        conn = self.connection
        await conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
        )
        await conn.commit()
        current = await self.schema_version()

        for version, path in migration_files():
            if version <= current:
                continue
            logger.info("Migrating %s to v%d (%s)", self._db_path, version, path.name)
            # The version row goes in only after the script ran, so a failed
            # script is retried on the next connect.
            await conn.executescript(path.read_text(encoding="utf-8"))
            await conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, datetime.datetime.now(datetime.UTC).isoformat()),
            )
            await conn.commit()
