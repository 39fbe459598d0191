"""add instance_id to groups_users

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Records which sync instance added a group membership. NULL marks members
added by hand, which cohort sync never removes.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('groups_users', sa.Column('instance_id', sa.Integer(), nullable=True))
    op.create_index('idx_groups_users_instance_id', 'groups_users', ['instance_id'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_groups_users_instance_id', table_name='groups_users')
    op.drop_column('groups_users', 'instance_id')
