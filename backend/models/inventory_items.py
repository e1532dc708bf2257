from sqlalchemy import Column, Integer, String, Text, Numeric, Date, DateTime, Enum, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import relationship
from database import Base
import enum
from models.audit_mixin import TimestampMixin


class InventoryItemStatus(enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"


class StockLevel(enum.Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


def classify_stock(quantity: int, min_quantity: int) -> StockLevel:
    """Zero is always out of stock; anything up to and including the minimum is low."""
    if quantity <= 0:
        return StockLevel.OUT_OF_STOCK
    if quantity <= min_quantity:
        return StockLevel.LOW_STOCK
    return StockLevel.IN_STOCK


class InventoryItem(Base, TimestampMixin):
    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint('sku', 'tenant_id', name='_inventory_items_sku_tenant_uc'),
        CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_non_negative'),
        Index('ix_inventory_items_stock', 'quantity', 'min_quantity'),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True) # e.g., "Medicine", "Consumables", "Equipment"
    sku = Column(String, nullable=False) # always upper-case
    # Cached running total of the ledger; only the adjustment service writes it
    quantity = Column(Integer, default=0, nullable=False)
    min_quantity = Column(Integer, default=10, nullable=False)
    max_quantity = Column(Integer, nullable=True)
    unit_price = Column(Numeric(12, 2), default=0, nullable=False)
    supplier = Column(String, nullable=True)
    supplier_contact = Column(String, nullable=True)
    expiry_date = Column(Date, nullable=True)
    batch_number = Column(String, nullable=True)
    location = Column(String, nullable=True)
    status = Column(Enum(InventoryItemStatus), default=InventoryItemStatus.ACTIVE, nullable=False, index=True)
    last_restocked = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    transactions = relationship("InventoryTransaction", back_populates="item", order_by="InventoryTransaction.id")

    @property
    def stock_level(self) -> StockLevel:
        return classify_stock(self.quantity or 0, self.min_quantity or 0)
