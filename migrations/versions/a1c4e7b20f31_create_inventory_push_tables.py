"""create inventory push tables

Revision ID: a1c4e7b20f31
Revises:
Create Date: 2025-03-20 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision = 'a1c4e7b20f31'
down_revision = None
branch_labels = None
depends_on = None

movement_type = sa.Enum('INGRESO', 'EGRESO', name='movementtype')
movement_status = sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', name='movementstatus')


def upgrade():
    op.create_table(
        'inventory_movements_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('integration_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', movement_type, nullable=False),
        sa.Column('sku', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('order_id', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('event_type', sqlmodel.sql.sqltypes.AutoString(length=50), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('status', movement_status, nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('claimed_by', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
        sa.Column('lease_expires_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_inventory_movements_claim', 'inventory_movements_queue', ['store_id', 'sku', 'created_at'])
    op.create_index(
        'idx_inventory_movements_dedup', 'inventory_movements_queue',
        ['store_id', 'order_id', 'sku', 'movement_type']
    )
    for column in ('tenant_id', 'store_id', 'status', 'next_attempt_at', 'created_at'):
        op.create_index(
            op.f(f'ix_inventory_movements_queue_{column}'), 'inventory_movements_queue', [column]
        )

    op.create_table(
        'inventory_movement_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=False),
        sa.Column('action', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('status', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('execution_time_ms', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['movement_id'], ['inventory_movements_queue.id']),
        sa.PrimaryKeyConstraint('id')
    )
    for column in ('movement_id', 'action', 'timestamp'):
        op.create_index(op.f(f'ix_inventory_movement_logs_{column}'), 'inventory_movement_logs', [column])

    op.create_table(
        'unmapped_skus',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('sku', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('product_name', sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.Column('occurrences', sa.Integer(), nullable=False),
        sa.Column('resolved', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'sku', name='uq_unmapped_skus_store_sku')
    )
    for column in ('tenant_id', 'store_id', 'resolved'):
        op.create_index(op.f(f'ix_unmapped_skus_{column}'), 'unmapped_skus', [column])

    op.create_table(
        'sku_in_flight_locks',
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('sku', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=False),
        sa.Column('lock_owner', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=False),
        sa.Column('locked_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('store_id', 'sku')
    )


def downgrade():
    op.drop_table('sku_in_flight_locks')
    op.drop_table('unmapped_skus')
    op.drop_table('inventory_movement_logs')
    op.drop_table('inventory_movements_queue')

    bind = op.get_bind()
    movement_status.drop(bind, checkfirst=True)
    movement_type.drop(bind, checkfirst=True)
