"""scheduled task claim time

Revision ID: 0002_scheduled_task_claims
Revises: 0001_initial
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0002_scheduled_task_claims"
down_revision = "0001_initial"
branch_labels = None
depends_on = None

def upgrade():
    op.add_column("scheduled_tasks", sa.Column("claimed_at", sa.DateTime, nullable=True))
    # rows claimed before this column existed are treated as abandoned
    op.execute("UPDATE scheduled_tasks SET claimed_at = created_at WHERE status = 'running'")

def downgrade():
    op.drop_column("scheduled_tasks", "claimed_at")
