"""initial schema

Revision ID: d6d1f6d25483
Revises:
Create Date: 2026-02-07 17:41:12.204118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'd6d1f6d25483'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('uid', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=30), nullable=False),
        sa.Column('institution', sa.String(length=255), nullable=True),
        sa.Column('id_card_url', sa.String(length=1024), nullable=True),
        sa.Column('payment_receipt_image_url', sa.String(length=1024), nullable=True),
        sa.Column('verification_status', sa.String(length=20), nullable=False),
        sa.Column('verified_by', sa.String(length=128), nullable=True),
        sa.Column('verification_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_document_upload_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('uid'),
    )
    op.create_table(
        'roles',
        sa.Column('id', sa.SmallInteger(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('role_id', sa.SmallInteger(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.uid'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('user_id', 'role_id'),
    )
    op.create_table(
        'counters',
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('last_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('name'),
    )
    op.create_table(
        'submissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_uid', sa.String(length=128), nullable=False),
        sa.Column('reference_number', sa.String(length=32), nullable=False),
        sa.Column('submission_type', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('authors', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('pdf_url', sa.String(length=1024), nullable=True),
        sa.Column('doc_name', sa.String(length=255), nullable=True),
        sa.Column('current_version', sa.Integer(), nullable=False),
        sa.Column('review_comments', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=128), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_revision_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['owner_uid'], ['users.uid'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference_number', 'submission_type', name='uq_submissions_reference_type'),
    )
    op.create_index('ix_submissions_owner_uid', 'submissions', ['owner_uid'])
    op.create_index('ix_submissions_reference_number', 'submissions', ['reference_number'])
    op.create_table(
        'paper_versions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('submission_id', sa.Uuid(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('file_url', sa.String(length=1024), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('admin_comment', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=128), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_current', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['submission_id'], ['submissions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('submission_id', 'version', name='uq_paper_versions_submission_version'),
    )
    op.create_index('ix_paper_versions_submission_id', 'paper_versions', ['submission_id'])
    op.create_table(
        'payment_transactions',
        sa.Column('txnid', sa.String(length=64), nullable=False),
        sa.Column('uid', sa.String(length=128), nullable=True),
        sa.Column('submission_id', sa.Uuid(), nullable=True),
        sa.Column('first_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('organization', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('product_info', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=30), nullable=True),
        sa.Column('payment_type', sa.String(length=40), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('gateway_status', sa.String(length=40), nullable=True),
        sa.Column('frontend_url', sa.String(length=1024), nullable=True),
        sa.Column('receipt_number', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['uid'], ['users.uid'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['submission_id'], ['submissions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('txnid'),
    )
    op.create_index('ix_payment_transactions_uid', 'payment_transactions', ['uid'])
    op.create_index('ix_payment_transactions_email', 'payment_transactions', ['email'])
    op.create_index('ix_payment_transactions_created_at', 'payment_transactions', ['created_at'])


def downgrade() -> None:
    op.drop_table('payment_transactions')
    op.drop_table('paper_versions')
    op.drop_table('submissions')
    op.drop_table('counters')
    op.drop_table('user_roles')
    op.drop_table('roles')
    op.drop_table('users')
