"""Create users, plans, subscriptions and history tables; seed the plan catalog

Revision ID: academy_001
Revises:
Create Date: 2025-06-02 09:00:00.000000

"""
import uuid
from datetime import datetime

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'academy_001'
down_revision = None
branch_labels = None
depends_on = None


subscription_status = sa.Enum('PENDING', 'ACTIVE', 'EXPIRED', 'CANCELLED', 'FAILED', name='subscriptionstatus')
billing_cycle = sa.Enum('MONTHLY', 'YEARLY', 'LIFETIME', name='billingcycle')


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=True),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('forum_suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    plans = op.create_table('subscription_plans',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('billing_cycle', billing_cycle, nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_plans_id'), 'subscription_plans', ['id'], unique=False)
    op.create_index(op.f('ix_subscription_plans_name'), 'subscription_plans', ['name'], unique=True)
    op.create_index(op.f('ix_subscription_plans_is_active'), 'subscription_plans', ['is_active'], unique=False)

    op.create_table('user_subscriptions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('plan_id', sa.String(), nullable=False),
        sa.Column('status', subscription_status, nullable=False),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('payment_reference', sa.String(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_subscriptions_id'), 'user_subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_user_subscriptions_user_id'), 'user_subscriptions', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_subscriptions_plan_id'), 'user_subscriptions', ['plan_id'], unique=False)
    op.create_index(op.f('ix_user_subscriptions_status'), 'user_subscriptions', ['status'], unique=False)
    op.create_index(op.f('ix_user_subscriptions_current_period_end'), 'user_subscriptions', ['current_period_end'], unique=False)
    op.create_index(op.f('ix_user_subscriptions_payment_reference'), 'user_subscriptions', ['payment_reference'], unique=False)

    op.create_table('user_subscription_history',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('subscription_id', sa.String(), nullable=True),
        sa.Column('action_type', sa.String(), nullable=False),
        sa.Column('previous_plan_id', sa.String(), nullable=True),
        sa.Column('new_plan_id', sa.String(), nullable=True),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('payment_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('payment_currency', sa.String(), nullable=True),
        sa.Column('payment_status', sa.String(), nullable=True),
        sa.Column('billing_cycle', sa.String(), nullable=True),
        sa.Column('transaction_id', sa.String(), nullable=True),
        sa.Column('gateway_reference', sa.String(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['subscription_id'], ['user_subscriptions.id'], ),
        sa.ForeignKeyConstraint(['previous_plan_id'], ['subscription_plans.id'], ),
        sa.ForeignKeyConstraint(['new_plan_id'], ['subscription_plans.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_subscription_history_id'), 'user_subscription_history', ['id'], unique=False)
    op.create_index(op.f('ix_user_subscription_history_user_id'), 'user_subscription_history', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_subscription_history_subscription_id'), 'user_subscription_history', ['subscription_id'], unique=False)
    op.create_index(op.f('ix_user_subscription_history_action_type'), 'user_subscription_history', ['action_type'], unique=False)
    op.create_index(op.f('ix_user_subscription_history_created_at'), 'user_subscription_history', ['created_at'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_user_id'), 'audit_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)

    # Seed the plan catalog
    now = datetime.utcnow()
    op.bulk_insert(plans, [
        {
            'id': str(uuid.uuid4()), 'name': 'free', 'display_name': 'Free',
            'description': 'Get started with trading', 'price': 0, 'billing_cycle': 'MONTHLY',
            'features': {'features': ['Basic trading introduction', 'Limited course access (3 courses)',
                                      'Community forum access', 'Email support', 'Mobile app access'],
                         'max_courses': 3},
            'is_active': True, 'created_at': now, 'updated_at': now,
        },
        {
            'id': str(uuid.uuid4()), 'name': 'basic', 'display_name': 'Basic',
            'description': 'Perfect for beginners', 'price': 14.99, 'billing_cycle': 'MONTHLY',
            'features': {'features': ['Basic trading strategies', 'Discord community access',
                                      'Weekly market updates', 'Email support', 'Mobile app access']},
            'is_active': True, 'created_at': now, 'updated_at': now,
        },
        {
            'id': str(uuid.uuid4()), 'name': 'pro', 'display_name': 'Pro',
            'description': 'For serious traders', 'price': 24.99, 'billing_cycle': 'MONTHLY',
            'features': {'features': ['All Basic features', 'Advanced trading strategies',
                                      'Live trading sessions (3x/week)', 'Priority Discord support',
                                      '1-on-1 monthly session', 'Trading signals & alerts']},
            'is_active': True, 'created_at': now, 'updated_at': now,
        },
        {
            'id': str(uuid.uuid4()), 'name': 'elite', 'display_name': 'Elite',
            'description': 'Lifetime access', 'price': 499.99, 'billing_cycle': 'LIFETIME',
            'features': {'features': ['All Pro features', 'Lifetime access to all content',
                                      'Exclusive VIP Discord channels', 'Weekly 1-on-1 sessions',
                                      'Portfolio review & optimization', 'Direct access to head trader']},
            'is_active': True, 'created_at': now, 'updated_at': now,
        },
    ])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('user_subscription_history')
    op.drop_table('user_subscriptions')
    op.drop_table('subscription_plans')
    op.drop_table('users')
    subscription_status.drop(op.get_bind(), checkfirst=True)
    billing_cycle.drop(op.get_bind(), checkfirst=True)
