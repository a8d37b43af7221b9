"""Lottery reconciliation core: packs, readings, anomalies, day close, postings

Revision ID: 20261019_lottery_core
Revises:
Create Date: 2026-10-19

This migration adds:
1. stores / store_configs (store timezone and per-store lottery settings)
2. lottery_games, lottery_boxes, lottery_packs (reference data + pack lifecycle)
3. lottery_readings, lottery_anomalies (observations and findings)
4. lottery_draw_days, lottery_days (draw entry and per-day version row)
5. lottery_postings, lottery_posting_lines (GL entry sets)
6. lottery_audit_events (append-only domain event log)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_lottery_core'
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text('(CURRENT_TIMESTAMP)')


def upgrade():
    # ==========================================================================
    # 1. STORES
    # ==========================================================================
    op.create_table('stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_stores_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stores', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stores_code'), ['code'], unique=False)

    op.create_table('store_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'key', name='uq_store_configs_store_key'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('store_configs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_store_configs_store_id'), ['store_id'], unique=False)

    # ==========================================================================
    # 2. GAMES, BOXES, PACKS
    # ==========================================================================
    op.create_table('lottery_games',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('ticket_price_cents', sa.Integer(), nullable=False),
        sa.Column('pack_size', sa.Integer(), nullable=False),
        sa.Column('commission_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint('ticket_price_cents > 0', name='ck_lottery_games_price_positive'),
        sa.CheckConstraint('pack_size >= 2', name='ck_lottery_games_pack_size_min'),
        sa.CheckConstraint('commission_rate_bps >= 0', name='ck_lottery_games_rate_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('game_code', name='uq_lottery_games_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_games', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_games_is_active'), ['is_active'], unique=False)

    op.create_table('lottery_boxes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'label', name='uq_lottery_boxes_store_label'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_boxes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_boxes_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_boxes_is_active'), ['is_active'], unique=False)

    op.create_table('lottery_packs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('pack_number', sa.String(length=64), nullable=False),
        sa.Column('game_id', sa.Integer(), nullable=False),
        sa.Column('box_id', sa.Integer(), nullable=True),
        sa.Column('start_ticket', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_ticket', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('activated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('sold_out_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint('start_ticket >= 0', name='ck_lottery_packs_start_nonneg'),
        sa.CheckConstraint('current_ticket >= start_ticket', name='ck_lottery_packs_current_ge_start'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['game_id'], ['lottery_games.id'], ),
        sa.ForeignKeyConstraint(['box_id'], ['lottery_boxes.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'pack_number', name='uq_lottery_packs_store_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_packs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_packs_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_packs_game_id'), ['game_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_packs_box_id'), ['box_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_packs_status'), ['status'], unique=False)
        batch_op.create_index('ix_lottery_packs_box_status', ['box_id', 'status'], unique=False)

    # ==========================================================================
    # 3. READINGS AND ANOMALIES
    # ==========================================================================
    op.create_table('lottery_readings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('pack_id', sa.Integer(), nullable=False),
        sa.Column('box_label', sa.String(length=32), nullable=False),
        sa.Column('ticket_number', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False, server_default='manual'),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint('ticket_number >= 0', name='ck_lottery_readings_ticket_nonneg'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['pack_id'], ['lottery_packs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_readings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_readings_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_readings_pack_id'), ['pack_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_readings_actor_user_id'), ['actor_user_id'], unique=False)
        batch_op.create_index('ix_lottery_readings_pack_captured', ['pack_id', 'captured_at', 'id'], unique=False)
        batch_op.create_index('ix_lottery_readings_store_date', ['store_id', 'business_date'], unique=False)

    op.create_table('lottery_anomalies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('anomaly_type', sa.String(length=32), nullable=False),
        sa.Column('severity', sa.String(length=8), nullable=False),
        sa.Column('detail', sa.Text(), nullable=False),
        sa.Column('pack_id', sa.Integer(), nullable=True),
        sa.Column('box_label', sa.String(length=32), nullable=True),
        sa.Column('reading_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        sa.Column('resolution_note', sa.Text(), nullable=True),
        sa.Column('resolved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acknowledged_by_user_id', sa.Integer(), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('detected_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint(
            "status != 'resolved' OR resolution_note IS NOT NULL",
            name='ck_lottery_anomalies_resolved_note',
        ),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['pack_id'], ['lottery_packs.id'], ),
        sa.ForeignKeyConstraint(['reading_id'], ['lottery_readings.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_anomalies', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_anomalies_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_anomalies_anomaly_type'), ['anomaly_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_anomalies_severity'), ['severity'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_anomalies_pack_id'), ['pack_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_anomalies_reading_id'), ['reading_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_lottery_anomalies_status'), ['status'], unique=False)
        batch_op.create_index(
            'ix_lottery_anomalies_store_date_status', ['store_id', 'business_date', 'status'], unique=False
        )

    # ==========================================================================
    # 4. DRAW DAYS AND THE PER-DAY VERSION ROW
    # ==========================================================================
    op.create_table('lottery_draw_days',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cashed_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('adjustments_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_source', sa.String(length=16), nullable=True),
        sa.Column('commission_amount_cents', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('entered_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'business_date', name='uq_lottery_draw_days_store_date'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_draw_days', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_draw_days_store_id'), ['store_id'], unique=False)

    op.create_table('lottery_days',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('touched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'business_date', name='uq_lottery_days_store_date'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_days', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_days_store_id'), ['store_id'], unique=False)

    # ==========================================================================
    # 5. POSTINGS
    # ==========================================================================
    op.create_table('lottery_postings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('revision', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('instant_face_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('instant_commission_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('draw_net_sale_cents', sa.Integer(), nullable=True),
        sa.Column('draw_commission_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_commission_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('posted_by_user_id', sa.Integer(), nullable=False),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'business_date', name='uq_lottery_postings_store_date'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_postings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_postings_store_id'), ['store_id'], unique=False)

    op.create_table('lottery_posting_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('posting_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('account_name', sa.String(length=128), nullable=False),
        sa.Column('debit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.CheckConstraint('debit_cents >= 0 AND credit_cents >= 0', name='ck_lottery_posting_lines_nonneg'),
        sa.ForeignKeyConstraint(['posting_id'], ['lottery_postings.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('posting_id', 'line_number', name='uq_lottery_posting_lines_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_posting_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_posting_lines_posting_id'), ['posting_id'], unique=False)

    # ==========================================================================
    # 6. AUDIT EVENTS
    # ==========================================================================
    op.create_table('lottery_audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('lottery_audit_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_lottery_audit_events_store_id'), ['store_id'], unique=False)
        batch_op.create_index(
            'ix_lottery_audit_store_date_type', ['store_id', 'business_date', 'event_type'], unique=False
        )
        batch_op.create_index('ix_lottery_audit_entity', ['entity_type', 'entity_id'], unique=False)


def downgrade():
    for table in (
        'lottery_audit_events',
        'lottery_posting_lines',
        'lottery_postings',
        'lottery_days',
        'lottery_draw_days',
        'lottery_anomalies',
        'lottery_readings',
        'lottery_packs',
        'lottery_boxes',
        'lottery_games',
        'store_configs',
        'stores',
    ):
        op.drop_table(table)
