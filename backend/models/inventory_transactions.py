from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from database import Base
import enum
from utils.timezone import now_local


class TransactionType(enum.Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class InventoryTransaction(Base):
    """Append-only ledger row. Nothing in the code base updates or deletes these."""
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        CheckConstraint('previous_quantity + quantity = new_quantity', name='ck_inventory_transactions_delta'),
        CheckConstraint('new_quantity >= 0', name='ck_inventory_transactions_new_quantity_non_negative'),
        Index('ix_inventory_transactions_item_created', 'item_id', 'created_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, index=True, nullable=False)
    item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False)
    type = Column(Enum(TransactionType), nullable=False, index=True)
    quantity = Column(Integer, nullable=False) # signed delta actually applied
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    reference = Column(String, nullable=True) # bill number, purchase order, ...
    performed_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=now_local, nullable=False)

    item = relationship("InventoryItem", back_populates="transactions")
