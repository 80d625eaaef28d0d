"""add failed delivery ledger

Revision ID: 0002_add_transcription_failures
Revises: 0001_initial_schema
Create Date: 2026-10-05

"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "0002_add_transcription_failures"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS transcription_failures (
          failure_id    BIGSERIAL PRIMARY KEY,
          session_id    TEXT NOT NULL,
          job_id        TEXT NOT NULL,
          kind          TEXT NOT NULL,
          error         TEXT,
          payload_json  TEXT NOT NULL,
          created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
          replayed_at   TIMESTAMPTZ
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS transcription_failures_pending_idx "
        "ON transcription_failures (failure_id) WHERE replayed_at IS NULL;"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transcription_failures;")
