"""create jobs table

Revision ID: 3c1f0a9d2b47
Revises:
Create Date: 2026-10-18 09:12:31.417205

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d2b47"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "queue",
            sa.Text,
            nullable=False,
            server_default="default",
            comment="Queue lane",
        ),
        sa.Column("handler", sa.Text, nullable=False, comment="Handler registry key"),
        sa.Column(
            "payload", sa.Text, nullable=True, comment="JSON-encoded job arguments"
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|running|completed|failed|retrying",
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("error", sa.Text, nullable=True, comment="Last failure message"),
        # Scheduling and execution
        sa.Column(
            "scheduled_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time the job may run",
        ),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "lease_expires_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Claim ownership deadline",
        ),
        sa.Column(
            "claim_token",
            sa.Text,
            nullable=True,
            comment="Identifies the claim that owns a running job",
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        # Constraints
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'retrying')",
            name="jobs_status_check",
        ),
    )

    # Claim scan and per-queue stats
    op.create_index("ix_jobs_status_scheduled_at", "jobs", ["status", "scheduled_at"])
    op.create_index("ix_jobs_queue", "jobs", ["queue"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_jobs_queue", table_name="jobs")
    op.drop_index("ix_jobs_status_scheduled_at", table_name="jobs")
    op.drop_table("jobs")
