"""seed roles and submission reference counter

Revision ID: 79a9b3a8f2a9
Revises: d6d1f6d25483
Create Date: 2026-02-07 17:56:08.949342

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '79a9b3a8f2a9'
down_revision: Union[str, Sequence[str], None] = 'd6d1f6d25483'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

roles = sa.table(
    'roles',
    sa.column('id', sa.SmallInteger),
    sa.column('name', sa.String),
)
counters = sa.table(
    'counters',
    sa.column('name', sa.String),
    sa.column('last_number', sa.Integer),
)


def upgrade() -> None:
    op.bulk_insert(roles, [
        {'id': 1, 'name': 'participant'},
        {'id': 2, 'name': 'org_committee'},
        {'id': 3, 'name': 'admin'},
    ])
    # first allocation yields PREFIX-01
    op.bulk_insert(counters, [{'name': 'submission_ref', 'last_number': 0}])


def downgrade() -> None:
    op.execute(counters.delete().where(counters.c.name == 'submission_ref'))
    op.execute(roles.delete().where(roles.c.id.in_([1, 2, 3])))
