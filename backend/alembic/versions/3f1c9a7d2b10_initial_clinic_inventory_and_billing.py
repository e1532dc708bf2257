"""initial clinic inventory and billing schema

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('updated_by', sa.String(), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('min_quantity', sa.Integer(), nullable=False),
        sa.Column('max_quantity', sa.Integer(), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('supplier', sa.String(), nullable=True),
        sa.Column('supplier_contact', sa.String(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('batch_number', sa.String(), nullable=True),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', 'DISCONTINUED', name='inventoryitemstatus'), nullable=False),
        sa.Column('last_restocked', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint('sku', 'tenant_id', name='_inventory_items_sku_tenant_uc'),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_non_negative'),
    )
    op.create_index('ix_inventory_items_id', 'inventory_items', ['id'])
    op.create_index('ix_inventory_items_tenant_id', 'inventory_items', ['tenant_id'])
    op.create_index('ix_inventory_items_category', 'inventory_items', ['category'])
    op.create_index('ix_inventory_items_status', 'inventory_items', ['status'])
    op.create_index('ix_inventory_items_stock', 'inventory_items', ['quantity', 'min_quantity'])

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('inventory_items.id'), nullable=False),
        sa.Column('type', sa.Enum('IN', 'OUT', 'ADJUSTMENT', name='transactiontype'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reference', sa.String(), nullable=True),
        sa.Column('performed_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('previous_quantity + quantity = new_quantity', name='ck_inventory_transactions_delta'),
        sa.CheckConstraint('new_quantity >= 0', name='ck_inventory_transactions_new_quantity_non_negative'),
    )
    op.create_index('ix_inventory_transactions_id', 'inventory_transactions', ['id'])
    op.create_index('ix_inventory_transactions_tenant_id', 'inventory_transactions', ['tenant_id'])
    op.create_index('ix_inventory_transactions_type', 'inventory_transactions', ['type'])
    op.create_index('ix_inventory_transactions_performed_by', 'inventory_transactions', ['performed_by'])
    op.create_index('ix_inventory_transactions_item_created', 'inventory_transactions', ['item_id', 'created_at'])

    op.create_table(
        'bills',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('bill_sequence', sa.Integer(), nullable=False),
        sa.Column('bill_number', sa.String(), nullable=False),
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('doctor_id', sa.String(), nullable=False),
        sa.Column('appointment_id', sa.String(), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('tax', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.Enum('DRAFT', 'SENT', 'PAID', 'OVERDUE', 'CANCELLED', name='billstatus'), nullable=False),
        sa.Column('payment_method', sa.Enum('CASH', 'CARD', 'INSURANCE', 'BANK_TRANSFER', 'OTHER', name='paymentmethod'), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(), nullable=True),
        sa.UniqueConstraint('tenant_id', 'bill_sequence', name='_tenant_bill_sequence_uc'),
        sa.UniqueConstraint('tenant_id', 'bill_number', name='_tenant_bill_number_uc'),
    )
    op.create_index('ix_bills_id', 'bills', ['id'])
    op.create_index('ix_bills_tenant_id', 'bills', ['tenant_id'])
    op.create_index('ix_bills_bill_number', 'bills', ['bill_number'])
    op.create_index('ix_bills_patient_id', 'bills', ['patient_id'])
    op.create_index('ix_bills_doctor_id', 'bills', ['doctor_id'])
    op.create_index('ix_bills_status', 'bills', ['status'])

    op.create_table(
        'bill_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bill_id', sa.Integer(), sa.ForeignKey('bills.id'), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), sa.ForeignKey('inventory_items.id'), nullable=True),
    )
    op.create_index('ix_bill_items_id', 'bill_items', ['id'])
    op.create_index('ix_bill_items_tenant_id', 'bill_items', ['tenant_id'])

    op.create_table(
        'clinic_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('value', sa.String(255), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint('name', 'tenant_id', name='_clinic_config_name_tenant_uc'),
    )
    op.create_index('ix_clinic_config_id', 'clinic_config', ['id'])
    op.create_index('ix_clinic_config_name', 'clinic_config', ['name'])
    op.create_index('ix_clinic_config_tenant_id', 'clinic_config', ['tenant_id'])

    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.String(), nullable=True),
        sa.Column('table_name', sa.String(), nullable=False),
        sa.Column('record_id', sa.String(), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('changed_by', sa.String(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
    )
    op.create_index('ix_audit_log_id', 'audit_log', ['id'])
    op.create_index('ix_audit_log_tenant_id', 'audit_log', ['tenant_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_log')
    op.drop_table('clinic_config')
    op.drop_table('bill_items')
    op.drop_table('bills')
    op.drop_table('inventory_transactions')
    op.drop_table('inventory_items')
    for enum_name in ('paymentmethod', 'billstatus', 'transactiontype', 'inventoryitemstatus'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
