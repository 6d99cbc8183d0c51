"""create users, user_payments and notification

Revision ID: 4c1e2b7a9d10
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1e2b7a9d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(80), nullable=False, unique=True),
        sa.Column('email', sa.String(120), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(256), nullable=False),
        sa.Column('phone', sa.String(32)),
        sa.Column('role', sa.String(20), nullable=False, server_default='staff'),
        sa.Column('approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'user_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_month', sa.Date(), nullable=False),   # first day of the month covered
        sa.Column('status', sa.String(20), nullable=False, server_default='unpaid'),
        sa.Column('payment_method', sa.String(50), server_default='MOMO'),
        sa.Column('paid_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'payment_month', name='unique_user_month'),
        sa.CheckConstraint("status IN ('unpaid', 'paid', 'late')", name='ck_user_payments_status'),
    )
    op.create_index('ix_user_payments_user_id', 'user_payments', ['user_id'])
    op.create_index('ix_user_payments_status', 'user_payments', ['status'])
    op.create_index('ix_user_payments_payment_month', 'user_payments', ['payment_month'])

    op.create_table(
        'notification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message', sa.String(500), nullable=False),
        sa.Column('type', sa.String(50), nullable=False, server_default='info'),
        sa.Column('meta', sa.Text()),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_notification_user_id', 'notification', ['user_id'])
    op.create_index('ix_notification_is_read', 'notification', ['is_read'])
    op.create_index('ix_notification_created_at', 'notification', ['created_at'])


def downgrade():
    op.drop_index('ix_notification_created_at', table_name='notification')
    op.drop_index('ix_notification_is_read', table_name='notification')
    op.drop_index('ix_notification_user_id', table_name='notification')
    op.drop_table('notification')
    op.drop_index('ix_user_payments_payment_month', table_name='user_payments')
    op.drop_index('ix_user_payments_status', table_name='user_payments')
    op.drop_index('ix_user_payments_user_id', table_name='user_payments')
    op.drop_table('user_payments')
    op.drop_table('users')
