"""Create course, enrollment and payment ledger tables

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'b7c1d2e3f4a5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENROLLMENT_STATUSES = ('active', 'success', 'paid', 'pending', 'failed')


def upgrade() -> None:
    op.create_table('courses',
    sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('subject', sa.Text(), nullable=True),
    sa.Column('price', sa.Numeric(10, 2), nullable=True),
    sa.Column('discounted_price', sa.Numeric(10, 2), nullable=True),
    sa.Column('exam_category', sa.String(length=100), nullable=True),
    sa.Column('branch', sa.String(length=100), nullable=True),
    sa.Column('level', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint('discounted_price IS NULL OR price IS NULL OR discounted_price <= price',
                       name='ck_courses_discount_not_above_price'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_courses_exam_category'), 'courses', ['exam_category'], unique=False)

    op.create_table('course_addons',
    sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
    sa.Column('course_id', postgresql.UUID(as_uuid=False), nullable=False),
    sa.Column('subject_name', sa.String(length=255), nullable=False),
    sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_course_addons_course_id'), 'course_addons', ['course_id'], unique=False)

    op.create_table('enrollments',
    sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
    sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False),
    sa.Column('course_id', postgresql.UUID(as_uuid=False), nullable=False),
    sa.Column('subject_name', sa.String(length=255), nullable=True),
    sa.Column('amount', sa.Numeric(10, 2), nullable=True),
    sa.Column('status', sa.Enum(*ENROLLMENT_STATUSES, name='enrollmentstatus'), nullable=False),
    sa.Column('order_id', sa.String(length=64), nullable=True),
    sa.Column('payment_id', sa.String(length=64), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('order_created_at', sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_enrollments_user_id'), 'enrollments', ['user_id'], unique=False)
    op.create_index(op.f('ix_enrollments_course_id'), 'enrollments', ['course_id'], unique=False)
    op.create_index(op.f('ix_enrollments_order_id'), 'enrollments', ['order_id'], unique=False)
    op.create_index('ix_enrollments_user_course', 'enrollments', ['user_id', 'course_id'], unique=False)
    op.create_index(
        'uq_enrollments_user_course_subject',
        'enrollments',
        ['user_id', 'course_id', sa.text("coalesce(subject_name, '')")],
        unique=True,
        postgresql_where=sa.text("status <> 'failed'"),
    )

    op.create_table('payments',
    sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
    sa.Column('order_id', sa.String(length=64), nullable=False),
    sa.Column('payment_id', sa.String(length=64), nullable=True),
    sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=True),
    sa.Column('amount', sa.Numeric(10, 2), nullable=False),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('payment_mode', sa.String(length=64), nullable=True),
    sa.Column('payment_group', sa.String(length=64), nullable=True),
    sa.Column('payment_time', sa.String(length=64), nullable=True),
    sa.Column('utr', sa.String(length=128), nullable=True),
    sa.Column('customer_email', sa.String(length=255), nullable=True),
    sa.Column('customer_phone', sa.String(length=32), nullable=True),
    sa.Column('raw_response', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('batch', sa.String(length=255), nullable=True),
    sa.Column('courses', sa.Text(), nullable=True),
    sa.Column('discount_applied', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('discount_type', sa.String(length=64), nullable=True),
    sa.Column('discount_value', sa.Numeric(10, 2), nullable=True),
    sa.Column('coupon_code', sa.String(length=64), nullable=True),
    sa.Column('net_amount', sa.Numeric(10, 2), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_order_id'), 'payments', ['order_id'], unique=True)
    op.create_index(op.f('ix_payments_user_id'), 'payments', ['user_id'], unique=False)

    op.create_table('country_codes',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('code', sa.String(length=2), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('dial_code', sa.String(length=8), nullable=False),
    sa.Column('phone_length', sa.Integer(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('code')
    )
    op.create_index(op.f('ix_country_codes_id'), 'country_codes', ['id'], unique=False)
    op.create_index(op.f('ix_country_codes_dial_code'), 'country_codes', ['dial_code'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_country_codes_dial_code'), table_name='country_codes')
    op.drop_index(op.f('ix_country_codes_id'), table_name='country_codes')
    op.drop_table('country_codes')
    op.drop_index(op.f('ix_payments_user_id'), table_name='payments')
    op.drop_index(op.f('ix_payments_order_id'), table_name='payments')
    op.drop_table('payments')
    op.drop_index('uq_enrollments_user_course_subject', table_name='enrollments')
    op.drop_index('ix_enrollments_user_course', table_name='enrollments')
    op.drop_index(op.f('ix_enrollments_order_id'), table_name='enrollments')
    op.drop_index(op.f('ix_enrollments_course_id'), table_name='enrollments')
    op.drop_index(op.f('ix_enrollments_user_id'), table_name='enrollments')
    op.drop_table('enrollments')
    sa.Enum(*ENROLLMENT_STATUSES, name='enrollmentstatus').drop(op.get_bind(), checkfirst=True)
    op.drop_index(op.f('ix_course_addons_course_id'), table_name='course_addons')
    op.drop_table('course_addons')
    op.drop_index(op.f('ix_courses_exam_category'), table_name='courses')
    op.drop_table('courses')
