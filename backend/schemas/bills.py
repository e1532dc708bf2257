from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from decimal import Decimal
from datetime import date, datetime

from models.bills import BillStatus, PaymentMethod
from schemas.pagination import Pagination


class BillItemBase(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    unit_price: Decimal = Field(..., ge=0)
    # Set to dispense stock from this inventory item when the bill is created
    inventory_item_id: Optional[int] = None


class BillItemCreate(BillItemBase):
    pass


class BillItem(BillItemBase):
    id: int
    total: Decimal

    class Config:
        from_attributes = True


class BillLineTotal(BaseModel):
    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal


class BillTotals(BaseModel):
    items: List[BillLineTotal]
    subtotal: Decimal
    tax_percent: Decimal
    tax: Decimal
    discount_percent: Decimal
    discount: Decimal
    total: Decimal


class BillPreviewRequest(BaseModel):
    items: List[BillItemCreate]
    tax_percent: Decimal = Decimal("0")
    discount_percent: Decimal = Decimal("0")


class BillCreate(BaseModel):
    patient_id: str = Field(..., min_length=1)
    doctor_id: str = Field(..., min_length=1)
    appointment_id: str = Field(..., min_length=1)
    items: List[BillItemCreate]
    tax_percent: Optional[Decimal] = None # falls back to the clinic default
    discount_percent: Decimal = Decimal("0")
    due_date: Optional[date] = None # falls back to today + bill_due_days
    notes: Optional[str] = None
    dispense_stock: bool = False


class BillUpdate(BaseModel):
    items: Optional[List[BillItemCreate]] = None
    tax_percent: Optional[Decimal] = None
    discount_percent: Optional[Decimal] = None
    status: Optional[BillStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class Bill(BaseModel):
    id: int
    bill_number: str
    patient_id: str
    doctor_id: str
    appointment_id: str
    items: List[BillItem] = []
    subtotal: Decimal
    tax_percent: Decimal
    tax: Decimal
    discount_percent: Decimal
    discount: Decimal
    total_amount: Decimal
    status: BillStatus
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    due_date: date
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BillPage(BaseModel):
    bills: List[Bill]
    pagination: Pagination


class BillStatusSummary(BaseModel):
    count: int
    total_amount: Decimal


class RevenueSummary(BaseModel):
    total: Decimal
    count: int


class MonthlyRevenue(BaseModel):
    year: int
    month: int
    revenue: Decimal
    count: int


class RecentBill(BaseModel):
    id: int
    bill_number: str
    patient_id: str
    doctor_id: str
    total_amount: Decimal
    status: BillStatus
    created_at: datetime

    class Config:
        from_attributes = True


class BillStats(BaseModel):
    total_bills: int
    bills_by_status: Dict[str, BillStatusSummary]
    monthly_revenue: RevenueSummary
    overdue_bills: int
    recent_bills: List[RecentBill]
    monthly_trend: List[MonthlyRevenue]
