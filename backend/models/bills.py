from sqlalchemy import Column, Integer, String, Text, Numeric, Date, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
import enum
from models.audit_mixin import AuditMixin


class BillStatus(enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(enum.Enum):
    CASH = "cash"
    CARD = "card"
    INSURANCE = "insurance"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class Bill(Base, AuditMixin):
    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'bill_sequence', name='_tenant_bill_sequence_uc'),
        UniqueConstraint('tenant_id', 'bill_number', name='_tenant_bill_number_uc'),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String, index=True, nullable=False)
    bill_sequence = Column(Integer, nullable=False) # Tenant-specific sequential number
    bill_number = Column(String, nullable=False, index=True) # BILL-000001
    # Identity-provider references; patients, doctors and appointments live elsewhere
    patient_id = Column(String, nullable=False, index=True)
    doctor_id = Column(String, nullable=False, index=True)
    appointment_id = Column(String, nullable=False)
    subtotal = Column(Numeric(12, 2), default=0, nullable=False)
    tax_percent = Column(Numeric(5, 2), default=0, nullable=False)
    tax = Column(Numeric(12, 2), default=0, nullable=False) # tax amount
    discount_percent = Column(Numeric(5, 2), default=0, nullable=False)
    discount = Column(Numeric(12, 2), default=0, nullable=False) # discount amount
    total_amount = Column(Numeric(12, 2), default=0, nullable=False)
    status = Column(Enum(BillStatus), default=BillStatus.DRAFT, nullable=False, index=True)
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    # Relationships
    items = relationship("BillItem", back_populates="bill", cascade="all, delete-orphan", order_by="BillItem.id")


class BillItem(Base):
    __tablename__ = "bill_items"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False)
    tenant_id = Column(String, index=True, nullable=False)
    description = Column(String, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False) # quantity * unit_price, stored for convenience
    inventory_item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=True)

    # Relationships
    bill = relationship("Bill", back_populates="items")
