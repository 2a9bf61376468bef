"""create accounting tables

Revision ID: a1c4e2f9b701
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c4e2f9b701'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('trial_days', sa.Integer(), nullable=False),
        sa.Column('max_members', sa.Integer(), nullable=False),
        sa.Column('max_brands', sa.Integer(), nullable=False),
        sa.Column('max_strategic_themes', sa.Integer(), nullable=False),
        sa.Column('max_personas', sa.Integer(), nullable=False),
        sa.Column('quick_content_creations', sa.Integer(), nullable=False),
        sa.Column('custom_content_suggestions', sa.Integer(), nullable=False),
        sa.Column('content_plans', sa.Integer(), nullable=False),
        sa.Column('content_reviews', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plans_id'), 'plans', ['id'], unique=False)
    op.create_index(op.f('ix_plans_name'), 'plans', ['name'], unique=True)
    op.create_index(op.f('ix_plans_is_active'), 'plans', ['is_active'], unique=False)

    op.create_table(
        'teams',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('admin_user_id', sa.Integer(), nullable=True),
        sa.Column('current_plan_id', sa.Integer(), nullable=True),
        sa.Column('credits_quick_content_creations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_custom_content_suggestions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_content_plans', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_content_reviews', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_trial_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['current_plan_id'], ['plans.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_teams_id'), 'teams', ['id'], unique=False)
    op.create_index(op.f('ix_teams_name'), 'teams', ['name'], unique=False)
    op.create_index(op.f('ix_teams_admin_user_id'), 'teams', ['admin_user_id'], unique=False)
    op.create_index(op.f('ix_teams_current_plan_id'), 'teams', ['current_plan_id'], unique=False)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='MEMBER'),
        sa.Column('team_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_team_id'), 'users', ['team_id'], unique=False)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('trial_end_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id'], ),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_subscriptions_team_id'), 'subscriptions', ['team_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_plan_id'), 'subscriptions', ['plan_id'], unique=False)
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'], unique=False)
    op.create_index(op.f('ix_subscriptions_trial_end_date'), 'subscriptions', ['trial_end_date'], unique=False)
    op.create_index(op.f('ix_subscriptions_is_active'), 'subscriptions', ['is_active'], unique=False)

    # At most one active subscription per team (PostgreSQL partial index)
    if op.get_bind().dialect.name == 'postgresql':
        op.create_index(
            'uq_subscriptions_team_active',
            'subscriptions',
            ['team_id'],
            unique=True,
            postgresql_where=sa.text('is_active'),
        )

    op.create_table(
        'usage_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('segment_started_at', sa.DateTime(), nullable=True),
        sa.Column('last_heartbeat_at', sa.DateTime(), nullable=False),
        sa.Column('accumulated_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('end_reason', sa.String(), nullable=True),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_usage_sessions_id'), 'usage_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_usage_sessions_user_id'), 'usage_sessions', ['user_id'], unique=False)
    op.create_index(op.f('ix_usage_sessions_state'), 'usage_sessions', ['state'], unique=False)
    op.create_index(op.f('ix_usage_sessions_date'), 'usage_sessions', ['date'], unique=False)


def downgrade() -> None:
    op.drop_table('usage_sessions')
    if op.get_bind().dialect.name == 'postgresql':
        op.drop_index('uq_subscriptions_team_active', table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_table('users')
    op.drop_table('teams')
    op.drop_table('plans')
