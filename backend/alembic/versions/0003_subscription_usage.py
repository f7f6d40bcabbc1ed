"""Add subscription_usage table

Revision ID: 0003_subscription_usage
Revises: 0002_subscriptions
Create Date: 2026-09-28

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0003_subscription_usage'
down_revision: Union[str, None] = '0002_subscriptions'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create per-user usage counters."""

    op.create_table(
        'subscription_usage',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('metric_name', sa.String(50), nullable=False),
        sa.Column('current_value', sa.Integer, nullable=False, server_default='0'),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_end', sa.DateTime(timezone=True)),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        # Upsert conflict target
        sa.UniqueConstraint('user_id', 'metric_name', name='uq_subscription_usage_user_metric'),
    )

    # Enable RLS
    op.execute('ALTER TABLE subscription_usage ENABLE ROW LEVEL SECURITY')

    op.execute("""
        CREATE POLICY "Users can view own usage"
        ON subscription_usage FOR SELECT
        TO authenticated
        USING (user_id = auth.uid())
    """)

    op.execute("""
        CREATE POLICY "Service role manages usage"
        ON subscription_usage FOR ALL
        TO service_role
        USING (true)
        WITH CHECK (true)
    """)


def downgrade() -> None:
    """Drop subscription_usage table."""

    op.execute('DROP POLICY IF EXISTS "Users can view own usage" ON subscription_usage')
    op.execute('DROP POLICY IF EXISTS "Service role manages usage" ON subscription_usage')
    op.drop_table('subscription_usage')
