"""Initial gym schema: users, sessions, enquiries, plans, memberships, receipts, activity

Revision ID: g001_initial_gym
Revises:
Create Date: 2026-10-19

This migration adds:
1. users and session_tokens (bearer-token auth, role column)
2. enquiries and enquiry_history (history has no FK so it outlives deletes)
3. membership_plans and members_memberships (version_id optimistic lock)
4. payment_receipts (cascade with membership) and receipt_sequences
5. activities (audit and notification feed)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'g001_initial_gym'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. AUTH
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='STAFF'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)
        batch_op.create_index('ix_users_role_active', ['role', 'is_active'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. ENQUIRIES
    # ==========================================================================
    op.create_table('enquiries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('is_whatsapp_number', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('gender', sa.String(length=16), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('occupation', sa.String(length=100), nullable=True),
        sa.Column('is_converted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('phone'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('enquiries', schema=None) as batch_op:
        batch_op.create_index('ix_enquiries_converted', ['is_converted'], unique=False)

    op.create_table('enquiry_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('enquiry_id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('is_whatsapp_number', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('gender', sa.String(length=16), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('occupation', sa.String(length=100), nullable=True),
        sa.Column('action_taken', sa.String(length=32), nullable=False),
        sa.Column('membership_taken_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modified_by', sa.String(length=255), nullable=True),
        sa.Column('modified_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('enquiry_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_enquiry_history_enquiry_id'), ['enquiry_id'], unique=False)
        batch_op.create_index('ix_enquiry_history_enquiry_modified', ['enquiry_id', 'modified_at'], unique=False)

    # ==========================================================================
    # 3. PLANS AND MEMBERSHIPS
    # ==========================================================================
    op.create_table('membership_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plan_name', sa.String(length=100), nullable=False),
        sa.Column('plan_type', sa.String(length=16), nullable=False, server_default='Monthly'),
        sa.Column('duration_in_months', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('membership_plans', schema=None) as batch_op:
        batch_op.create_index('ix_membership_plans_active_name', ['is_active', 'plan_name'], unique=False)

    op.create_table('members_memberships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('enquiry_id', sa.Integer(), nullable=False),
        sa.Column('membership_plan_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_in_months', sa.Integer(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_payment_due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_inactive', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('paid_amount_cents >= 0', name='ck_members_memberships_paid_non_negative'),
        sa.CheckConstraint('paid_amount_cents <= total_amount_cents', name='ck_members_memberships_paid_within_total'),
        sa.ForeignKeyConstraint(['enquiry_id'], ['enquiries.id'], ),
        sa.ForeignKeyConstraint(['membership_plan_id'], ['membership_plans.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('members_memberships', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_members_memberships_enquiry_id'), ['enquiry_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_members_memberships_membership_plan_id'), ['membership_plan_id'], unique=False)
        batch_op.create_index('ix_members_memberships_due', ['next_payment_due_date'], unique=False)

    # ==========================================================================
    # 4. RECEIPTS
    # ==========================================================================
    op.create_table('payment_receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=50), nullable=False),
        sa.Column('members_membership_id', sa.Integer(), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=50), nullable=False, server_default='Cash'),
        sa.Column('transaction_id', sa.String(length=100), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('previous_paid_cents', sa.Integer(), nullable=False),
        sa.Column('remaining_amount_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('received_by', sa.String(length=255), nullable=True),
        sa.Column('member_name', sa.String(length=200), nullable=True),
        sa.Column('member_email', sa.String(length=255), nullable=True),
        sa.Column('member_phone', sa.String(length=32), nullable=True),
        sa.Column('plan_name', sa.String(length=100), nullable=True),
        sa.Column('html_content', sa.Text(), nullable=True),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['members_membership_id'], ['members_memberships.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_receipts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_receipts_receipt_number'), ['receipt_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_payment_receipts_members_membership_id'), ['members_membership_id'], unique=False)
        batch_op.create_index('ix_payment_receipts_membership_date', ['members_membership_id', 'payment_date'], unique=False)
        batch_op.create_index('ix_payment_receipts_transaction', ['members_membership_id', 'transaction_id'], unique=False)

    op.create_table('receipt_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('year', name='uq_receipt_sequences_year'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 5. ACTIVITY FEED
    # ==========================================================================
    op.create_table('activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('activity_type', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('recipient_name', sa.String(length=200), nullable=True),
        sa.Column('recipient_contact', sa.String(length=255), nullable=True),
        sa.Column('message_content', sa.Text(), nullable=True),
        sa.Column('is_successful', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('performed_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('activities', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_activities_is_successful'), ['is_successful'], unique=False)
        batch_op.create_index('ix_activities_type_created', ['activity_type', 'created_at'], unique=False)
        batch_op.create_index('ix_activities_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index('ix_activities_created', ['created_at'], unique=False)


def downgrade():
    op.drop_table('activities')
    op.drop_table('receipt_sequences')
    op.drop_table('payment_receipts')
    op.drop_table('members_memberships')
    op.drop_table('membership_plans')
    op.drop_table('enquiry_history')
    op.drop_table('enquiries')
    op.drop_table('session_tokens')
    op.drop_table('users')
