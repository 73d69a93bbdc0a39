"""Initial schema: deposits table.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Deposits table
    op.create_table(
        'deposits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user', sa.LargeBinary(20), nullable=False),
        sa.Column('salt', sa.LargeBinary(32), nullable=False),
        sa.Column('address', sa.LargeBinary(20), nullable=False),
        sa.Column('balance', sa.LargeBinary(32), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('salt'),
        sa.UniqueConstraint('address'),
        sa.CheckConstraint('length("user") = 20', name='ck_deposits_user_len'),
        sa.CheckConstraint('length(salt) = 32', name='ck_deposits_salt_len'),
        sa.CheckConstraint('length(address) = 20', name='ck_deposits_address_len'),
    )
    op.create_index('ix_deposits_user', 'deposits', ['user'])
    op.create_index('ix_deposits_status', 'deposits', ['status'])


def downgrade() -> None:
    op.drop_index('ix_deposits_status', table_name='deposits')
    op.drop_index('ix_deposits_user', table_name='deposits')
    op.drop_table('deposits')
