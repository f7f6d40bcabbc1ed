"""Add subscription_plans table

Revision ID: 0001_subscription_plans
Revises:
Create Date: 2026-09-28

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_subscription_plans'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the plan catalogue."""

    op.create_table(
        'subscription_plans',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('description', sa.Text),

        # Pricing (USD)
        sa.Column('price_monthly', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('price_yearly', sa.Numeric(10, 2)),

        # Marketing copy and quota map (-1 = unlimited)
        sa.Column('features', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('limits', postgresql.JSONB, nullable=False, server_default='{}'),

        # Stripe price IDs
        sa.Column('stripe_price_id_monthly', sa.String(255)),
        sa.Column('stripe_price_id_yearly', sa.String(255)),

        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true', index=True),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Enable RLS
    op.execute('ALTER TABLE subscription_plans ENABLE ROW LEVEL SECURITY')

    # RLS Policy: plans are public
    op.execute("""
        CREATE POLICY "Anyone can view plans"
        ON subscription_plans FOR SELECT
        USING (true)
    """)


def downgrade() -> None:
    """Drop subscription_plans table."""

    op.execute('DROP POLICY IF EXISTS "Anyone can view plans" ON subscription_plans')
    op.drop_table('subscription_plans')
