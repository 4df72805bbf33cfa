"""initial ledger schema

Revision ID: s1a2l3o4n5p6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the salon POS schema from scratch:
- clients: clients and their parent/dependent links
- pos_transactions: append-only sales and refunds (amounts in cents)
- pos_transaction_clients: clients attached to a transaction, one primary max
- client_history: per-client projection of the ledger
- cash_closures: one drawer reconciliation per local date
- audit_logs: append-only operator actions
- document_sequences: sequential transaction / client numbers
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's1a2l3o4n5p6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # clients: salon clients, dependents point at their parent
    # ============================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_number', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False),
        sa.Column('last_name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('is_independent', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('became_independent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_visit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['parent_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_number', name='uq_clients_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('clients', schema=None) as batch_op:
        batch_op.create_index('ix_clients_name', ['last_name', 'first_name'], unique=False)
        batch_op.create_index(batch_op.f('ix_clients_parent_id'), ['parent_id'], unique=False)

    # ============================================================================
    # pos_transactions: append-only ledger (signed cents)
    # ============================================================================
    op.create_table(
        'pos_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=32), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('total_net_cents', sa.Integer(), nullable=True),
        sa.Column('total_vat_cents', sa.Integer(), nullable=True),
        sa.Column('total_gross_cents', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('parent_transaction_id', sa.Integer(), nullable=True),
        sa.Column('refund_reason', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('photo_url', sa.String(length=1024), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['parent_transaction_id'], ['pos_transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_number', name='uq_pos_transactions_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('pos_transactions', schema=None) as batch_op:
        batch_op.create_index('ix_pos_transactions_method_status_created',
                              ['payment_method', 'payment_status', 'created_at'], unique=False)
        batch_op.create_index('ix_pos_transactions_type_created',
                              ['transaction_type', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_pos_transactions_transaction_type'), ['transaction_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_pos_transactions_payment_method'), ['payment_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_pos_transactions_payment_status'), ['payment_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_pos_transactions_client_id'), ['client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_pos_transactions_parent_transaction_id'),
                              ['parent_transaction_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_pos_transactions_created_at'), ['created_at'], unique=False)

    # ============================================================================
    # pos_transaction_clients: at most one primary (payer) per transaction
    # ============================================================================
    op.create_table(
        'pos_transaction_clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['pos_transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'client_id', name='uq_tx_clients_tx_client'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('pos_transaction_clients', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_pos_transaction_clients_transaction_id'),
                              ['transaction_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_pos_transaction_clients_client_id'), ['client_id'], unique=False)
    op.create_index(
        'uq_tx_clients_one_primary',
        'pos_transaction_clients',
        ['transaction_id'],
        unique=True,
        sqlite_where=sa.text('is_primary = 1'),
        postgresql_where=sa.text('is_primary'),
    )

    # ============================================================================
    # client_history: derived from the ledger, regenerable
    # ============================================================================
    op.create_table(
        'client_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('action_type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['pos_transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'transaction_id', 'action_type',
                            name='uq_client_history_client_tx_action'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('client_history', schema=None) as batch_op:
        batch_op.create_index('ix_client_history_client_created', ['client_id', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_client_history_client_id'), ['client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_client_history_action_type'), ['action_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_client_history_transaction_id'), ['transaction_id'], unique=False)

    # ============================================================================
    # cash_closures: one row per local date
    # ============================================================================
    op.create_table(
        'cash_closures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('closure_date', sa.Date(), nullable=False),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=False),
        sa.Column('cash_in_calculated_cents', sa.Integer(), nullable=False),
        sa.Column('cash_out_manual_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expected_cash_cents', sa.Integer(), nullable=False),
        sa.Column('counted_cash_cents', sa.Integer(), nullable=False),
        sa.Column('delta_cents', sa.Integer(), nullable=False),
        sa.Column('cash_transactions_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('closed_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('closure_date', name='uq_cash_closures_date'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # audit_logs: append-only
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index('ix_audit_logs_action_created', ['action', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_actor'), ['actor'], unique=False)

    # ============================================================================
    # document_sequences: atomic counters
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', name='uq_doc_sequences_type'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('document_sequences')

    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_audit_logs_actor'))
        batch_op.drop_index('ix_audit_logs_action_created')
        batch_op.drop_index('ix_audit_logs_entity')
    op.drop_table('audit_logs')

    op.drop_table('cash_closures')

    with op.batch_alter_table('client_history', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_client_history_transaction_id'))
        batch_op.drop_index(batch_op.f('ix_client_history_action_type'))
        batch_op.drop_index(batch_op.f('ix_client_history_client_id'))
        batch_op.drop_index('ix_client_history_client_created')
    op.drop_table('client_history')

    op.drop_index('uq_tx_clients_one_primary', table_name='pos_transaction_clients')
    with op.batch_alter_table('pos_transaction_clients', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_pos_transaction_clients_client_id'))
        batch_op.drop_index(batch_op.f('ix_pos_transaction_clients_transaction_id'))
    op.drop_table('pos_transaction_clients')

    op.drop_table('pos_transactions')

    with op.batch_alter_table('clients', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_clients_parent_id'))
        batch_op.drop_index('ix_clients_name')
    op.drop_table('clients')
