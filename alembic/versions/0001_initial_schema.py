"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-09-28

"""
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions (
          id          UUID PRIMARY KEY,
          status      TEXT NOT NULL DEFAULT 'active',
          created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at  TIMESTAMPTZ NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS transcriptions (
          transcription_id     UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          session_id           UUID NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
          job_id               TEXT NOT NULL,
          text                 TEXT,
          status               TEXT NOT NULL,
          confidence           DOUBLE PRECISION,
          language_code        TEXT NOT NULL DEFAULT 'en',
          word_count           INT NOT NULL DEFAULT 0,
          character_count      INT NOT NULL DEFAULT 0,
          audio_duration_ms    BIGINT,
          error_message        TEXT,
          raw_words            TEXT,
          audio_url            TEXT,
          webhook_status_code  INT,
          created_at           TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at           TIMESTAMPTZ NOT NULL DEFAULT now(),
          CONSTRAINT transcriptions_job_id_uq UNIQUE (job_id),
          CHECK (status IN ('queued', 'processing', 'completed', 'error')),
          CHECK (confidence IS NULL OR (confidence >= 0 AND confidence <= 1))
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS transcriptions_session_updated_idx "
        "ON transcriptions (session_id, updated_at DESC);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transcriptions;")
    op.execute("DROP TABLE IF EXISTS sessions;")
