"""initial lineage indexer schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00

Raw Event Log (append-only, trigger enforced), Asset Projection,
Lineage Closure Index, group relations and the block cursor.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

UINT256 = sa.String(78)  # decimal digits of 2**256 - 1


def upgrade():
    # Raw Event Log
    op.create_table(
        'operation_events',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('source_tx_id', sa.String(66), nullable=False),
        sa.Column('log_position', sa.Integer, nullable=False),
        sa.Column('block_height', sa.BigInteger, nullable=False),
        sa.Column('block_timestamp', sa.BigInteger, nullable=False),
        sa.Column('asset_id', sa.String(66), nullable=False),
        sa.Column('operation', sa.String(20), nullable=False),
        sa.Column('status', sa.Integer, nullable=False),
        sa.Column('channel', sa.String(66), nullable=True),
        sa.Column('owner', sa.String(42), nullable=True),
        sa.Column('location', sa.String, nullable=True),
        sa.Column('amount', UINT256, nullable=False),
        sa.Column('data_hash', sa.String(66), nullable=True),
        sa.Column('processed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('ingested_at', sa.DateTime, nullable=False),
        sa.UniqueConstraint('source_tx_id', 'log_position', name='uq_operation_event_source'),
    )
    op.create_index('ix_operation_events_block_height', 'operation_events', ['block_height'])
    op.create_index('ix_operation_events_block_timestamp', 'operation_events', ['block_timestamp'])
    op.create_index('ix_operation_events_asset_id', 'operation_events', ['asset_id'])
    op.create_index('ix_operation_events_operation', 'operation_events', ['operation'])
    op.create_index('ix_operation_events_processed', 'operation_events', ['processed'])
    op.create_index('ix_operation_events_order', 'operation_events', ['block_height', 'log_position'])
    op.create_index(
        'ix_operation_events_timeline',
        'operation_events',
        ['block_timestamp', 'block_height', 'log_position'],
    )

    op.create_table(
        'operation_event_related_assets',
        sa.Column('event_id', sa.Integer, sa.ForeignKey('operation_events.id'), primary_key=True),
        sa.Column('position', sa.Integer, primary_key=True),
        sa.Column('asset_id', sa.String(66), nullable=True),
        sa.Column('amount', UINT256, nullable=True),
    )
    op.create_index(
        'ix_operation_event_related_assets_asset_id',
        'operation_event_related_assets',
        ['asset_id'],
    )

    # Append-only enforcement: only `processed` may change
    op.execute("""
        CREATE OR REPLACE FUNCTION reject_operation_event_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                RAISE EXCEPTION 'operation_events is append-only. DELETE is forbidden.';
            END IF;
            IF (to_jsonb(NEW) - 'processed') IS DISTINCT FROM (to_jsonb(OLD) - 'processed') THEN
                RAISE EXCEPTION 'operation_events rows are immutable except for processed.';
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER prevent_operation_event_mutation
        BEFORE UPDATE OR DELETE ON operation_events
        FOR EACH ROW EXECUTE FUNCTION reject_operation_event_mutation();
    """)

    # Asset Projection
    op.create_table(
        'assets',
        sa.Column('asset_id', sa.String(66), primary_key=True),
        sa.Column('channel', sa.String(66), nullable=True),
        sa.Column('owner', sa.String(42), nullable=True),
        sa.Column('origin_owner', sa.String(42), nullable=True),
        sa.Column('amount', UINT256, nullable=False),
        sa.Column('location', sa.String, nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('data_hash', sa.String(66), nullable=True),
        sa.Column('parent_asset_id', sa.String(66), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('last_updated', sa.DateTime, nullable=False),
        sa.Column('last_event_id', sa.Integer, sa.ForeignKey('operation_events.id'), nullable=True),
    )
    op.create_index('ix_assets_channel', 'assets', ['channel'])
    op.create_index('ix_assets_owner', 'assets', ['owner'])
    op.create_index('ix_assets_status', 'assets', ['status'])
    op.create_index('ix_assets_parent_asset_id', 'assets', ['parent_asset_id'])
    op.create_index('ix_assets_status_owner', 'assets', ['status', 'owner'])

    # Lineage Closure Index
    op.create_table(
        'lineage_edges',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('ancestor_id', sa.String(66), nullable=False),
        sa.Column('descendant_id', sa.String(66), nullable=False),
        sa.Column('depth', sa.Integer, nullable=False),
        sa.Column('path', sa.Text, nullable=False),
        sa.UniqueConstraint('ancestor_id', 'descendant_id', name='uq_lineage_edge'),
    )
    op.create_index('ix_lineage_edges_ancestor_depth', 'lineage_edges', ['ancestor_id', 'depth'])
    op.create_index('ix_lineage_edges_descendant_depth', 'lineage_edges', ['descendant_id', 'depth'])

    op.create_table(
        'asset_parent_relations',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('parent_asset_id', sa.String(66), nullable=False),
        sa.Column('child_asset_id', sa.String(66), nullable=False),
        sa.Column('source_event_id', sa.Integer, sa.ForeignKey('operation_events.id'), nullable=False),
        sa.Column('contributed_amount', UINT256, nullable=True),
        sa.UniqueConstraint(
            'parent_asset_id', 'child_asset_id', 'source_event_id',
            name='uq_asset_parent_relation',
        ),
    )
    op.create_index('ix_asset_parent_relations_parent_asset_id', 'asset_parent_relations', ['parent_asset_id'])
    op.create_index('ix_asset_parent_relations_child_asset_id', 'asset_parent_relations', ['child_asset_id'])

    # Cursor Store
    op.create_table(
        'block_cursors',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('last_height', sa.BigInteger, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )


def downgrade():
    op.drop_table('block_cursors')
    op.drop_table('asset_parent_relations')
    op.drop_table('lineage_edges')
    op.drop_table('assets')
    op.execute("DROP TRIGGER IF EXISTS prevent_operation_event_mutation ON operation_events")
    op.execute("DROP FUNCTION IF EXISTS reject_operation_event_mutation()")
    op.drop_table('operation_event_related_assets')
    op.drop_table('operation_events')
