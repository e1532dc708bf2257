from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from decimal import Decimal
from datetime import date, datetime

from models.inventory_items import InventoryItemStatus, StockLevel
from schemas.pagination import Pagination


def _non_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class InventoryItemBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: str = Field(..., min_length=1) # e.g., "Medicine", "Consumables"
    sku: str = Field(..., min_length=1)
    min_quantity: Optional[int] = Field(None, ge=0) # falls back to the clinic default
    max_quantity: Optional[int] = Field(None, ge=0)
    unit_price: Decimal = Field(..., ge=0)
    supplier: Optional[str] = None
    supplier_contact: Optional[str] = None
    expiry_date: Optional[date] = None
    batch_number: Optional[str] = None
    location: Optional[str] = None
    status: InventoryItemStatus = InventoryItemStatus.ACTIVE

    @field_validator("name", "category")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return _non_blank(value)

    @field_validator("sku")
    @classmethod
    def normalise_sku(cls, value: str) -> str:
        return _non_blank(value).upper()


class InventoryItemCreate(InventoryItemBase):
    # Opening stock; recorded as an "Initial stock" ledger entry
    quantity: int = Field(0, ge=0)


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    sku: Optional[str] = None
    # quantity is ledger-managed and cannot be updated through this schema
    min_quantity: Optional[int] = Field(None, ge=0)
    max_quantity: Optional[int] = Field(None, ge=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    supplier: Optional[str] = None
    supplier_contact: Optional[str] = None
    expiry_date: Optional[date] = None
    batch_number: Optional[str] = None
    location: Optional[str] = None
    status: Optional[InventoryItemStatus] = None

    # None leaves the column untouched; anything sent must still be non-blank
    @field_validator("name", "category")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _non_blank(value) if value is not None else None

    @field_validator("sku")
    @classmethod
    def normalise_sku(cls, value: Optional[str]) -> Optional[str]:
        return _non_blank(value).upper() if value is not None else None


class InventoryItem(InventoryItemBase):
    id: int
    tenant_id: str
    quantity: int
    min_quantity: int
    stock_level: StockLevel
    last_restocked: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InventoryItemPage(BaseModel):
    items: List[InventoryItem]
    pagination: Pagination


class InventoryItemDeleteResult(BaseModel):
    id: int
    retired: bool # True when ledger rows exist and the item was discontinued instead
    message: str
