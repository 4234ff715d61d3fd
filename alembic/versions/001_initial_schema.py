"""Initial schema: TTL entries and account records.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Short-lived pairing codes and ephemeral tokens, keyed by "<namespace>:<sha256>"
    op.execute("""
        CREATE TABLE ttl_entries (
            key TEXT PRIMARY KEY,
            value JSONB NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            claimed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE INDEX idx_ttl_entries_expires_at ON ttl_entries(expires_at);
    """)

    # One row per (owner, external account)
    op.execute("""
        CREATE TABLE account_records (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id TEXT NOT NULL,
            external_id TEXT NOT NULL,
            display_name TEXT NOT NULL,
            session_cookie_blob TEXT NOT NULL,
            access_token TEXT,
            csrf_token TEXT,
            secondary_tokens JSONB,
            device_fingerprint JSONB,
            auth_mode TEXT NOT NULL CHECK (auth_mode IN ('oauth', 'cookie_only')),
            token_status TEXT NOT NULL
                CHECK (token_status IN ('valid', 'active', 'cookie_only', 'expired')),
            health_is_healthy BOOLEAN NOT NULL DEFAULT true,
            health_last_error TEXT,
            health_last_error_at TIMESTAMPTZ,
            sync_source TEXT NOT NULL,
            last_sync_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (owner_id, external_id)
        );
    """)

    op.execute("""
        CREATE INDEX idx_account_records_owner ON account_records(owner_id, last_sync_at DESC);
    """)


def downgrade():
    op.execute("DROP TABLE IF EXISTS account_records CASCADE")
    op.execute("DROP TABLE IF EXISTS ttl_entries CASCADE")
