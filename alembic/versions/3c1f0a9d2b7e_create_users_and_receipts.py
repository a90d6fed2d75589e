"""create users and receipts

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9d2b7e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
	"""Upgrade schema."""
	op.create_table(
		'users',
		sa.Column('id', sa.String(length=36), nullable=False),
		sa.Column('email', sa.String(), nullable=False),
		sa.Column('name', sa.String(), nullable=False),
		sa.Column('hashed_password', sa.String(), nullable=False),
		sa.Column('is_active', sa.Boolean(), nullable=False),
		sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
		sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
		sa.PrimaryKeyConstraint('id'),
	)
	op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
	op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

	op.create_table(
		'receipts',
		sa.Column('id', sa.String(length=36), nullable=False),
		sa.Column('uid', sa.String(length=36), nullable=False),
		sa.Column('date', sa.DateTime(timezone=True), nullable=False),
		sa.Column('locationName', sa.String(), nullable=False),
		sa.Column('address', sa.String(), nullable=False),
		sa.Column('items', sa.JSON(), nullable=False),
		sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
		sa.Column('imageBucket', sa.String(), nullable=False),
		sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
		sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
		sa.PrimaryKeyConstraint('id'),
	)
	op.create_index(op.f('ix_receipts_id'), 'receipts', ['id'], unique=False)
	op.create_index(op.f('ix_receipts_uid'), 'receipts', ['uid'], unique=False)
	op.create_index('ix_receipts_uid_date', 'receipts', ['uid', 'date'], unique=False)


def downgrade() -> None:
	"""Downgrade schema."""
	op.drop_index('ix_receipts_uid_date', table_name='receipts')
	op.drop_index(op.f('ix_receipts_uid'), table_name='receipts')
	op.drop_index(op.f('ix_receipts_id'), table_name='receipts')
	op.drop_table('receipts')
	op.drop_index(op.f('ix_users_email'), table_name='users')
	op.drop_index(op.f('ix_users_id'), table_name='users')
	op.drop_table('users')
