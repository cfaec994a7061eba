"""Initial migration - create students and transactions tables

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
    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='not_paid'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_students_email', 'students', ['email'], unique=True)
    op.create_index('ix_students_payment_status', 'students', ['payment_status'])

    # The unique constraint on reference is what makes webhook delivery idempotent
    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('reference', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=False, server_default='paystack'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('reference', name='uq_transactions_reference'),
    )
    op.create_index('ix_transactions_student_id', 'transactions', ['student_id'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_student_status', 'transactions', ['student_id', 'status'])


def downgrade() -> None:
    op.drop_index('ix_transactions_student_status', table_name='transactions')
    op.drop_index('ix_transactions_created_at', table_name='transactions')
    op.drop_index('ix_transactions_status', table_name='transactions')
    op.drop_index('ix_transactions_student_id', table_name='transactions')
    op.drop_table('transactions')

    op.drop_index('ix_students_payment_status', table_name='students')
    op.drop_index('ix_students_email', table_name='students')
    op.drop_table('students')
