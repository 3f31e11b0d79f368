"""
TenantLoop Database Schema Management.

Lightweight migration system:
- Tracks current schema version in a `schema_version` table
- Only runs migrations that haven't been applied yet
- Each migration is a (version, description, SQL) tuple
- Safe for concurrent startup (uses advisory lock)

Every tenant-owned table carries ``tenant_id UUID NOT NULL`` with a
cascading foreign key to ``tenants``, and business keys such as the
conversation id are only unique together with the tenant.

Usage:
    db = Database(dsn="postgresql://...")
    await db.initialize()
    await ensure_schema(db)
"""

import logging
from typing import List, Tuple

from ..constants import DEFAULT_TENANT_ID, SANDBOX_ROLE, SANDBOX_SCHEMA
from .database import Database

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────
# Migration registry
#
# Append-only. Never modify or delete existing entries.
# Each entry: (version, description, sql)
# ──────────────────────────────────────────────────────────────
MIGRATIONS: List[Tuple[int, str, str]] = [
    (
        1,
        "Create tenants and memberships",
        f"""
        CREATE TABLE IF NOT EXISTS tenants (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            display_name TEXT NOT NULL,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS tenant_memberships (
            tenant_id    UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            principal_id TEXT NOT NULL,
            role         TEXT NOT NULL DEFAULT 'member'
                         CHECK (role IN ('owner', 'admin', 'member')),
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (tenant_id, principal_id)
        );
        CREATE INDEX IF NOT EXISTS idx_memberships_principal
            ON tenant_memberships(principal_id);

        INSERT INTO tenants (id, display_name)
        VALUES ('{DEFAULT_TENANT_ID}', 'Default Tenant')
        ON CONFLICT (id) DO NOTHING;
        """,
    ),
    (
        2,
        "Create conversations and conversation members",
        """
        CREATE TABLE IF NOT EXISTS conversations (
            tenant_id          UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            id                 TEXT NOT NULL,
            title              TEXT,
            owner_principal_id TEXT,
            created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (tenant_id, id)
        );

        CREATE TABLE IF NOT EXISTS conversation_members (
            tenant_id       UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            conversation_id TEXT NOT NULL,
            principal_id    TEXT NOT NULL,
            joined_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (tenant_id, conversation_id, principal_id),
            FOREIGN KEY (tenant_id, conversation_id)
                REFERENCES conversations(tenant_id, id) ON DELETE CASCADE
        );
        """,
    ),
    (
        3,
        "Create messages",
        """
        CREATE TABLE IF NOT EXISTS messages (
            id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id           UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            conversation_id     TEXT NOT NULL,
            author_principal_id TEXT NOT NULL,
            role                TEXT NOT NULL
                                CHECK (role IN ('user', 'assistant', 'system', 'system_task')),
            content             TEXT NOT NULL,
            embedding           DOUBLE PRECISION[],
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            FOREIGN KEY (tenant_id, conversation_id)
                REFERENCES conversations(tenant_id, id) ON DELETE CASCADE
        );
        CREATE INDEX IF NOT EXISTS idx_messages_tenant_conversation_created
            ON messages(tenant_id, conversation_id, created_at DESC);
        """,
    ),
    (
        4,
        "Create active prompts",
        """
        CREATE TABLE IF NOT EXISTS active_prompts (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id       UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            conversation_id TEXT NOT NULL,
            content         TEXT NOT NULL,
            version         INTEGER NOT NULL DEFAULT 1,
            is_active       BOOLEAN NOT NULL DEFAULT TRUE,
            description     TEXT,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE UNIQUE INDEX IF NOT EXISTS idx_active_prompts_one_active
            ON active_prompts(tenant_id, conversation_id) WHERE is_active;
        """,
    ),
    (
        5,
        "Create recurring triggers",
        """
        CREATE TABLE IF NOT EXISTS recurring_triggers (
            id               UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id        UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            owning_entity_id TEXT NOT NULL,
            schedule_expr    TEXT NOT NULL,
            timezone         TEXT,
            job_name         TEXT NOT NULL UNIQUE,
            payload          JSONB NOT NULL,
            created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE (tenant_id, owning_entity_id)
        );
        """,
    ),
    (
        6,
        "Create fee, document and notification tables",
        """
        CREATE TABLE IF NOT EXISTS fees (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id       UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            conversation_id TEXT NOT NULL,
            fee_type        TEXT NOT NULL
                            CHECK (fee_type IN ('electricity', 'management', 'water', 'other')),
            due_day         INTEGER NOT NULL CHECK (due_day BETWEEN 1 AND 31),
            amount          NUMERIC(12, 2),
            currency        TEXT NOT NULL DEFAULT 'USD',
            note            TEXT,
            is_active       BOOLEAN NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_fees_tenant_conversation
            ON fees(tenant_id, conversation_id);

        CREATE TABLE IF NOT EXISTS fee_calendar_events (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id         UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            conversation_id   TEXT NOT NULL,
            fee_id            UUID NOT NULL REFERENCES fees(id) ON DELETE CASCADE,
            provider          TEXT,
            external_event_id TEXT NOT NULL,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            UNIQUE (tenant_id, fee_id)
        );

        CREATE TABLE IF NOT EXISTS documents (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id       UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            conversation_id TEXT NOT NULL,
            doc_type        TEXT NOT NULL CHECK (doc_type IN ('contract', 'invoice', 'other')),
            source_kind     TEXT NOT NULL CHECK (source_kind IN ('text', 'url')),
            source_value    TEXT NOT NULL,
            parsed          JSONB,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_documents_tenant_conversation
            ON documents(tenant_id, conversation_id);

        CREATE TABLE IF NOT EXISTS notification_settings (
            tenant_id                UUID NOT NULL REFERENCES tenants(id) ON DELETE CASCADE,
            conversation_id          TEXT NOT NULL,
            email                    TEXT,
            email_enabled            BOOLEAN NOT NULL DEFAULT FALSE,
            calendar_provider        TEXT CHECK (calendar_provider IN ('google', 'outlook')),
            default_reminder_minutes INTEGER NOT NULL DEFAULT 60,
            updated_at               TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (tenant_id, conversation_id)
        );
        """,
    ),
    (
        7,
        "Create sandbox schema for tenant tables",
        f"""
        CREATE SCHEMA IF NOT EXISTS {SANDBOX_SCHEMA};
        """,
    ),
    (
        8,
        "Create restricted role for sandbox statements",
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{SANDBOX_ROLE}') THEN
                CREATE ROLE {SANDBOX_ROLE} NOLOGIN NOINHERIT;
            END IF;
        END
        $$;

        -- The application role switches into it with SET LOCAL ROLE.
        GRANT {SANDBOX_ROLE} TO CURRENT_USER;

        GRANT USAGE, CREATE ON SCHEMA {SANDBOX_SCHEMA} TO {SANDBOX_ROLE};
        GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA {SANDBOX_SCHEMA}
            TO {SANDBOX_ROLE};
        GRANT USAGE, SELECT ON ALL SEQUENCES IN SCHEMA {SANDBOX_SCHEMA} TO {SANDBOX_ROLE};
        ALTER DEFAULT PRIVILEGES IN SCHEMA {SANDBOX_SCHEMA}
            GRANT SELECT, INSERT, UPDATE, DELETE ON TABLES TO {SANDBOX_ROLE};
        ALTER DEFAULT PRIVILEGES IN SCHEMA {SANDBOX_SCHEMA}
            GRANT USAGE, SELECT ON SEQUENCES TO {SANDBOX_ROLE};

        -- Only the tenant foreign key reaches outside the sandbox schema.
        REVOKE ALL ON ALL TABLES IN SCHEMA public FROM {SANDBOX_ROLE};
        GRANT USAGE ON SCHEMA public TO {SANDBOX_ROLE};
        GRANT REFERENCES (id) ON public.tenants TO {SANDBOX_ROLE};
        """,
    ),
]

_BOOTSTRAP_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

# PostgreSQL advisory lock ID (arbitrary constant, unique to this app)
_LOCK_ID = 8_4410_2207


async def ensure_schema(db: Database) -> None:
    """Apply any pending migrations.

    - Creates the ``schema_version`` tracking table if needed
    - Uses a PostgreSQL advisory lock to prevent concurrent migration runs
    - Each migration runs in its own transaction

    Args:
        db: Initialized Database instance.
    """
    async with db.acquire() as conn:
        await conn.execute("SELECT pg_advisory_lock($1)", _LOCK_ID)
        try:
            await conn.execute(_BOOTSTRAP_SQL)
            current = await conn.fetchval(
                "SELECT COALESCE(MAX(version), 0) FROM schema_version"
            )

            pending = [m for m in MIGRATIONS if m[0] > current]
            if not pending:
                logger.debug(f"Schema up to date (version {current})")
                return

            for version, description, sql in pending:
                async with conn.transaction():
                    await conn.execute(sql)
                    await conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES ($1, $2)",
                        version,
                        description,
                    )
                logger.info(f"Migration {version}: {description}")

            logger.info(
                f"Schema migrated {current} -> {pending[-1][0]} "
                f"({len(pending)} migration(s))"
            )
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1)", _LOCK_ID)
