"""learning sessions, catalog and orders

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'learning_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('teacher_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('subject_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('attended', sa.Boolean(), nullable=True),
        sa.Column('performance_score', sa.Integer(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=False, server_default='Online'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('end_time > start_time', name='ck_learning_sessions_interval'),
    )
    op.create_index('ix_learning_sessions_id', 'learning_sessions', ['id'])
    op.create_index('ix_learning_sessions_teacher_id', 'learning_sessions', ['teacher_id'])
    op.create_index('ix_learning_sessions_student_id', 'learning_sessions', ['student_id'])
    op.create_index('ix_learning_sessions_subject_id', 'learning_sessions', ['subject_id'])
    op.create_index('ix_learning_sessions_course_id', 'learning_sessions', ['course_id'])
    op.create_index('ix_learning_sessions_start_time', 'learning_sessions', ['start_time'])
    op.create_index('ix_learning_sessions_status', 'learning_sessions', ['status'])
    op.create_index(
        'ix_learning_sessions_teacher_start_end',
        'learning_sessions',
        ['teacher_id', 'start_time', 'end_time'],
    )
    op.create_index('ix_learning_sessions_teacher_status', 'learning_sessions', ['teacher_id', 'status'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=180), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_products_id', 'products', ['id'])
    op.create_index('ix_products_active', 'products', ['active'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('status_id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('payment_reference', sa.String(length=80), nullable=True),
        sa.Column('placed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_owner_id', 'orders', ['owner_id'])
    op.create_index('ix_orders_status_id', 'orders', ['status_id'])
    op.create_index('ix_orders_owner_status', 'orders', ['owner_id', 'status_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(10, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('order_id', 'product_id', name='uq_order_items_order_product'),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'order_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('status_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_order_logs_id', 'order_logs', ['id'])
    op.create_index('ix_order_logs_order_id', 'order_logs', ['order_id'])
    op.create_index('ix_order_logs_order_created', 'order_logs', ['order_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_order_logs_order_created', table_name='order_logs')
    op.drop_index('ix_order_logs_order_id', table_name='order_logs')
    op.drop_index('ix_order_logs_id', table_name='order_logs')
    op.drop_table('order_logs')

    op.drop_index('ix_order_items_product_id', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_index('ix_order_items_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_owner_status', table_name='orders')
    op.drop_index('ix_orders_status_id', table_name='orders')
    op.drop_index('ix_orders_owner_id', table_name='orders')
    op.drop_index('ix_orders_id', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_products_active', table_name='products')
    op.drop_index('ix_products_id', table_name='products')
    op.drop_table('products')

    op.drop_index('ix_learning_sessions_teacher_status', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_teacher_start_end', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_status', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_start_time', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_course_id', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_subject_id', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_student_id', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_teacher_id', table_name='learning_sessions')
    op.drop_index('ix_learning_sessions_id', table_name='learning_sessions')
    op.drop_table('learning_sessions')
