"""
Async database utilities.
Uses asyncpg for non-blocking PostgreSQL access with connection pooling.

One ``Database`` is created per process by the app lifespan (open on
startup, closed on shutdown) and handed to the store; nothing reaches for a
module-level pool.
"""
import json
import logging
from contextlib import asynccontextmanager

import asyncpg

from .config import Settings

logger = logging.getLogger(__name__)


# Idempotent DDL, applied on startup.
SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id              SERIAL PRIMARY KEY,
    email           TEXT NOT NULL,
    password_hash   TEXT NOT NULL,
    name            TEXT NOT NULL,
    role            TEXT NOT NULL DEFAULT 'voter' CHECK (role IN ('voter', 'admin')),
    is_verified     BOOLEAN NOT NULL DEFAULT FALSE,
    otp             TEXT NULL,
    otp_expires_at  TIMESTAMPTZ NULL,
    voted_elections INTEGER[] NOT NULL DEFAULT '{}',
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT users_email_key UNIQUE (email)
);

CREATE TABLE IF NOT EXISTS elections (
    id               SERIAL PRIMARY KEY,
    title            TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    start_time       TIMESTAMPTZ NOT NULL,
    end_time         TIMESTAMPTZ NOT NULL,
    total_vote_count INTEGER NOT NULL DEFAULT 0 CHECK (total_vote_count >= 0),
    is_active        BOOLEAN NOT NULL DEFAULT TRUE,
    created_by       INTEGER NULL REFERENCES users(id) ON DELETE SET NULL,
    created_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
    deleted_at       TIMESTAMPTZ NULL
);

ALTER TABLE elections ADD COLUMN IF NOT EXISTS deleted_at TIMESTAMPTZ NULL;

CREATE TABLE IF NOT EXISTS candidates (
    id          SERIAL PRIMARY KEY,
    election_id INTEGER NOT NULL REFERENCES elections(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    metadata    JSONB NOT NULL DEFAULT '{}'::jsonb,
    position    INTEGER NOT NULL,
    vote_count  INTEGER NOT NULL DEFAULT 0 CHECK (vote_count >= 0)
);

CREATE TABLE IF NOT EXISTS ballots (
    id           SERIAL PRIMARY KEY,
    election_id  INTEGER NOT NULL REFERENCES elections(id),
    voter_id     INTEGER NOT NULL REFERENCES users(id),
    candidate_id INTEGER NOT NULL REFERENCES candidates(id),
    cast_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT ballots_election_voter_key UNIQUE (election_id, voter_id)
);

CREATE INDEX IF NOT EXISTS idx_candidates_election ON candidates (election_id, position);
CREATE INDEX IF NOT EXISTS idx_ballots_voter ON ballots (voter_id, cast_at DESC);
CREATE INDEX IF NOT EXISTS idx_elections_active ON elections (is_active, created_at DESC);

-- Ballots are append-only.
CREATE OR REPLACE FUNCTION reject_ballot_change() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'Ballots cannot be modified or deleted';
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS prevent_ballot_update ON ballots;
CREATE TRIGGER prevent_ballot_update BEFORE UPDATE ON ballots
    FOR EACH ROW EXECUTE FUNCTION reject_ballot_change();

DROP TRIGGER IF EXISTS prevent_ballot_delete ON ballots;
CREATE TRIGGER prevent_ballot_delete BEFORE DELETE ON ballots
    FOR EACH ROW EXECUTE FUNCTION reject_ballot_change();
"""


class Database:
    """Async database connection pool manager."""

    def __init__(self, settings: Settings | None = None, dsn: str | None = None):
        self.settings = settings or Settings()
        self.dsn = dsn
        self._pool: asyncpg.Pool | None = None

    async def get_pool(self) -> asyncpg.Pool:
        """Return the existing pool or create one lazily."""
        if self._pool is None:
            s = self.settings
            if self.dsn:
                conn_kwargs = {"dsn": self.dsn}
            else:
                conn_kwargs = {
                    "host": s.db_host,
                    "port": s.db_port,
                    "database": s.db_name,
                    "user": s.db_user,
                    "password": s.db_password,
                }
            self._pool = await asyncpg.create_pool(
                **conn_kwargs,
                min_size=s.db_pool_min,
                max_size=s.db_pool_max,
                command_timeout=s.db_command_timeout,
                init=_init_connection,
            )
            logger.info("Database pool opened")
        return self._pool

    async def close(self) -> None:
        """Gracefully close the pool (called on app shutdown)."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    async def init_schema(self) -> None:
        async with self.connection() as conn:
            await conn.execute(SCHEMA)

    @asynccontextmanager
    async def connection(self):
        """Acquire a connection from the pool (auto-released on exit)."""
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        """Acquire a connection and open a transaction (auto-committed/rolled-back)."""
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield conn


async def _init_connection(conn: asyncpg.Connection) -> None:
    # JSONB columns come back as dicts rather than strings.
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )
