"""
Database schema for the voting tables.

Identifiers are stored as INTEGER snowflakes and timestamps as REAL unix
seconds, so cooldown arithmetic keeps sub-second precision without any
string parsing.
"""

import aiosqlite
from tribunal.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the tables, indexes and version marker used by the vote store."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and indexes if they do not exist yet.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS votes (
                vote_id TEXT PRIMARY KEY,
                guild_id INTEGER NOT NULL,
                target_user_id INTEGER NOT NULL,
                initiator_id INTEGER NOT NULL,
                reason TEXT NOT NULL,
                started_at REAL NOT NULL,
                channel_id INTEGER NOT NULL,
                message_id INTEGER UNIQUE,
                completed INTEGER NOT NULL DEFAULT 0,
                ended_at REAL,
                outcome TEXT,
                final_up_votes INTEGER,
                final_down_votes INTEGER,
                final_net_votes INTEGER,
                sanction_applied INTEGER NOT NULL DEFAULT 0,
                sanction_label TEXT,
                sanction_seconds INTEGER NOT NULL DEFAULT 0,
                error TEXT,
                cancelled_by INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # One row per (vote, user): the primary key keeps the three buckets disjoint.
        await db.execute("""
            CREATE TABLE IF NOT EXISTS vote_reactions (
                vote_id TEXT NOT NULL,
                user_id INTEGER NOT NULL,
                kind TEXT NOT NULL CHECK (kind IN ('approve', 'reject', 'abstain')),
                weight INTEGER NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (vote_id, user_id),
                FOREIGN KEY (vote_id) REFERENCES votes(vote_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS vote_cooldowns (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                last_vote_at REAL NOT NULL,
                PRIMARY KEY (guild_id, user_id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS abstain_counters (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                abstain_count INTEGER NOT NULL DEFAULT 0,
                last_abstain_at REAL,
                PRIMARY KEY (guild_id, user_id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        # At most one active vote per target; a second INSERT fails with IntegrityError.
        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_votes_one_active_per_target "
            "ON votes(guild_id, target_user_id) WHERE completed = 0"
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_votes_active ON votes(completed, started_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_vote_reactions_vote ON vote_reactions(vote_id)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
