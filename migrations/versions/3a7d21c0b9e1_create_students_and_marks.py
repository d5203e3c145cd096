"""create students and marks tables

Revision ID: 3a7d21c0b9e1
Revises:
Create Date: 2025-09-02 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a7d21c0b9e1'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'students',
        sa.Column('student_id', sa.Integer(), primary_key=True),
        sa.Column('register_number', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('department', sa.String(length=128), nullable=True),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('register_number'),
    )

    op.create_table(
        'marks',
        sa.Column('mark_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(length=128), nullable=False),
        sa.Column('iat1', sa.Integer(), nullable=True),
        sa.Column('iat2', sa.Integer(), nullable=True),
        sa.Column('model', sa.Integer(), nullable=True),
        sa.Column('signed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['students.student_id']),
        sa.UniqueConstraint('student_id_fk', 'subject', name='uq_mark_student_subject'),
    )


def downgrade():
    op.drop_table('marks')
    op.drop_table('students')
