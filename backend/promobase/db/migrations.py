"""
Schema creation and migration for the relational file.

The schema version lives inside the SQLite file as PRAGMA user_version.
Migration steps only ever add (columns, indexes) and must be safe to re-run.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from promobase.core.logging import get_logger
from promobase.db.base import Base
import promobase.models  # noqa: F401  registers tables on Base.metadata

logger = get_logger(__name__)


SCHEMA_VERSION = 3

SEARCH_TABLE = "contacts_fts"

SEARCH_TABLE_DDL = f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {SEARCH_TABLE} USING fts5(
    id UNINDEXED,
    name,
    email,
    website,
    country,
    type,
    genres_text,
    persons_text
)
"""


@dataclass(frozen=True)
class Migration:
    """One additive schema step."""
    version: int
    description: str
    statements: Tuple[str, ...] = ()


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(1, "baseline schema"),
    Migration(
        2,
        "add contacts.is_favorite",
        ("ALTER TABLE contacts ADD COLUMN is_favorite BOOLEAN NOT NULL DEFAULT 0",),
    ),
    Migration(
        3,
        "contact and child relation indexes",
        (
            "CREATE INDEX IF NOT EXISTS idx_contacts_name ON contacts (name)",
            "CREATE INDEX IF NOT EXISTS idx_contacts_country ON contacts (country)",
            "CREATE INDEX IF NOT EXISTS idx_contacts_type ON contacts (type)",
            "CREATE INDEX IF NOT EXISTS idx_contacts_email ON contacts (email)",
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_contacts_email ON contacts (lower(email)) "
            "WHERE email IS NOT NULL AND email != ''",
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_contacts_website ON contacts (lower(website)) "
            "WHERE website IS NOT NULL AND website != ''",
            "CREATE INDEX IF NOT EXISTS idx_contact_genres_contact ON contact_genres (contact_id)",
            "CREATE INDEX IF NOT EXISTS idx_contact_persons_contact ON contact_persons (contact_id)",
            "CREATE INDEX IF NOT EXISTS idx_social_links_contact ON social_links (contact_id)",
        ),
    ),
)


def _is_duplicate_column(exc: OperationalError) -> bool:
    return "duplicate column name" in str(exc.orig).lower()


class SchemaManager:
    """Creates the schema on first use and advances user_version to the target."""

    def __init__(
        self,
        engine: AsyncEngine,
        target_version: int = SCHEMA_VERSION,
        migrations: Sequence[Migration] = MIGRATIONS,
    ):
        self.engine = engine
        self.target_version = target_version
        self.migrations = sorted(migrations, key=lambda m: m.version)

    async def ensure_schema(self) -> None:
        """Create missing tables, indexes and the search shadow table."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text(SEARCH_TABLE_DDL))
        logger.info("Schema ensured", extra={"search_table": SEARCH_TABLE})

    async def get_version(self) -> int:
        async with self.engine.connect() as conn:
            return await self._read_version(conn)

    async def apply_migrations(self) -> List[int]:
        """
        Apply pending migration steps in ascending order.

        Returns:
            Versions of the steps that ran (empty when already current)
        """
        applied: List[int] = []
        async with self.engine.begin() as conn:
            current = await self._read_version(conn)
            if current >= self.target_version:
                return applied

            for migration in self.migrations:
                if migration.version <= current or migration.version > self.target_version:
                    continue
                await self._apply_step(conn, migration)
                applied.append(migration.version)

            await conn.execute(text(f"PRAGMA user_version = {int(self.target_version)}"))

        logger.info(
            "Migrations applied",
            extra={"from_version": current, "to_version": self.target_version, "steps": applied},
        )
        return applied

    async def search_index_is_stale(self) -> bool:
        """True when contacts exist but the search shadow table is empty."""
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT (SELECT COUNT(*) FROM contacts) AS contacts, "
                    f"(SELECT COUNT(*) FROM {SEARCH_TABLE}) AS indexed"
                )
            )
            row = result.one()
        return row.contacts > 0 and row.indexed == 0

    async def log_index_plans(self) -> None:
        """Log the query plans of the lookups the indexes exist for."""
        probes = {
            "email": "SELECT id FROM contacts WHERE email = 'probe@example.com'",
            "country": "SELECT id FROM contacts WHERE country = 'probe'",
            "type": "SELECT id FROM contacts WHERE type = 'probe'",
        }
        async with self.engine.connect() as conn:
            for name, sql in probes.items():
                result = await conn.execute(text(f"EXPLAIN QUERY PLAN {sql}"))
                plan = [str(row[-1]) for row in result]
                logger.debug("Index plan", extra={"lookup": name, "plan": plan})

    async def _apply_step(self, conn: AsyncConnection, migration: Migration) -> None:
        for statement in migration.statements:
            try:
                await conn.execute(text(statement))
            except OperationalError as exc:
                if not _is_duplicate_column(exc):
                    raise
                logger.info(
                    "Migration column already present",
                    extra={"version": migration.version, "statement": statement},
                )
        logger.info(
            "Migration step applied",
            extra={"version": migration.version, "description": migration.description},
        )

    @staticmethod
    async def _read_version(conn: AsyncConnection) -> int:
        result = await conn.execute(text("PRAGMA user_version"))
        value = result.scalar()
        return int(value or 0)
