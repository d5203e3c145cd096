"""add student semester and mark clearance fields

Revision ID: 8c4e5f60d2a7
Revises: 3a7d21c0b9e1
Create Date: 2025-10-14 16:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8c4e5f60d2a7'
down_revision = '3a7d21c0b9e1'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('students') as batch_op:
        batch_op.add_column(sa.Column('semester', sa.Integer(), nullable=True))

    with op.batch_alter_table('marks') as batch_op:
        batch_op.add_column(
            sa.Column('assignment_submitted', sa.Boolean(), nullable=False, server_default=sa.false())
        )
        # 0 = fees paid, positive = pending
        batch_op.add_column(
            sa.Column('department_fine', sa.Integer(), nullable=False, server_default=sa.text('0'))
        )


def downgrade():
    with op.batch_alter_table('marks') as batch_op:
        batch_op.drop_column('department_fine')
        batch_op.drop_column('assignment_submitted')

    with op.batch_alter_table('students') as batch_op:
        batch_op.drop_column('semester')
