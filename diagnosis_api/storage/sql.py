"""SQL store implementation (SQLite locally, PostgreSQL in production)."""

import uuid
from datetime import UTC, datetime
from typing import Any

import databases
import sqlalchemy as sa
from loguru import logger

from ..types import CacheRecord


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SQLStore:
    """Diagnosis cache and access log tables using databases."""

    def __init__(self, database_url: str):
        """Initialize SQL store.

        Args:
            database_url: Database connection URL.
        """
        self.database = databases.Database(database_url)
        self.metadata = sa.MetaData()

        self.diagnosis_cache = sa.Table(
            "diagnosis_cache",
            self.metadata,
            sa.Column("id", sa.String, primary_key=True),
            sa.Column("username", sa.String, nullable=False),
            sa.Column("mode", sa.String, nullable=False),
            sa.Column("competitor_id", sa.String, nullable=True),
            sa.Column("diagnosis_result", sa.Text, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Index("idx_diagnosis_cache_lookup", "username", "mode", "competitor_id", "created_at"),
        )

        self.access_logs = sa.Table(
            "access_logs",
            self.metadata,
            sa.Column("id", sa.String, primary_key=True),
            sa.Column("ip_address", sa.String, nullable=False),
            sa.Column("endpoint", sa.String, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Index("idx_access_logs_lookup", "ip_address", "endpoint", "created_at"),
        )

    async def startup(self) -> None:
        """Connect and create tables if they don't exist."""
        await self.database.connect()
        await self._create_tables()
        logger.info("SQL store ready")

    async def shutdown(self) -> None:
        """Close database connection."""
        await self.database.disconnect()

    async def get_latest_diagnosis(
        self,
        username: str,
        mode: str,
        competitor_id: str | None,
        since: datetime,
    ) -> CacheRecord | None:
        """Get the newest diagnosis in the partition created at or after ``since``.

        A ``None`` competitor only matches rows whose competitor column is NULL,
        so solo and comparison diagnoses never share cache rows.
        """
        table = self.diagnosis_cache
        if competitor_id:
            competitor_clause = table.c.competitor_id == competitor_id
        else:
            competitor_clause = table.c.competitor_id.is_(None)

        query = (
            table.select()
            .where(
                table.c.username == username,
                table.c.mode == mode,
                competitor_clause,
                table.c.created_at >= since,
            )
            .order_by(table.c.created_at.desc())
            .limit(1)
        )
        row = await self.database.fetch_one(query)
        if row is None:
            return None

        return {
            "username": row["username"],
            "mode": row["mode"],
            "competitor_id": row["competitor_id"],
            "diagnosis_result": row["diagnosis_result"],
            "created_at": _as_utc(row["created_at"]),
        }

    async def save_diagnosis(
        self,
        username: str,
        mode: str,
        competitor_id: str | None,
        result: str,
    ) -> CacheRecord:
        """Save a diagnosis result.

        Args:
            username: Normalized target username.
            mode: Diagnosis mode value.
            competitor_id: Normalized competitor username or None.
            result: Generated diagnosis text.

        Returns:
            The stored record.
        """
        created_at = datetime.now(UTC)
        query = self.diagnosis_cache.insert().values(
            id=str(uuid.uuid4()),
            username=username,
            mode=mode,
            competitor_id=competitor_id or None,
            diagnosis_result=result,
            created_at=created_at,
        )
        await self.database.execute(query)
        return {
            "username": username,
            "mode": mode,
            "competitor_id": competitor_id or None,
            "diagnosis_result": result,
            "created_at": created_at,
        }

    async def count_access(self, ip_address: str, endpoint: str, since: datetime) -> int:
        """Count access log rows for ip and endpoint created at or after ``since``."""
        table = self.access_logs
        query = (
            sa.select(sa.func.count())
            .select_from(table)
            .where(
                table.c.ip_address == ip_address,
                table.c.endpoint == endpoint,
                table.c.created_at >= since,
            )
        )
        count = await self.database.fetch_val(query)
        return int(count or 0)

    async def record_access(self, ip_address: str, endpoint: str) -> None:
        """Append an access log row."""
        query = self.access_logs.insert().values(
            id=str(uuid.uuid4()),
            ip_address=ip_address,
            endpoint=endpoint,
            created_at=datetime.now(UTC),
        )
        await self.database.execute(query)

    async def fetch_diagnoses(self) -> list[dict[str, Any]]:
        """Return every stored diagnosis, newest first."""
        query = self.diagnosis_cache.select().order_by(self.diagnosis_cache.c.created_at.desc())
        rows = await self.database.fetch_all(query)
        return [
            {
                "username": row["username"],
                "mode": row["mode"],
                "competitor_id": row["competitor_id"],
                "diagnosis_result": row["diagnosis_result"],
                "created_at": _as_utc(row["created_at"]),
            }
            for row in rows
        ]

    async def health_check(self) -> bool:
        """Check if database is accessible.

        Returns:
            True if database is healthy, False otherwise.
        """
        try:
            await self.database.execute("SELECT 1")
            return True
        except (ConnectionError, TimeoutError, OSError):
            logger.exception("Database health check failed")
            return False

    async def _create_tables(self) -> None:
        """Create tables and indexes on the live connection."""
        for table in self.metadata.sorted_tables:
            await self.database.execute(sa.schema.CreateTable(table, if_not_exists=True))
            for index in table.indexes:
                await self.database.execute(sa.schema.CreateIndex(index, if_not_exists=True))
