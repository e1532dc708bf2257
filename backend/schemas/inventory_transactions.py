from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from models.inventory_transactions import TransactionType
from schemas.inventory_items import InventoryItem
from schemas.pagination import Pagination


class InventoryAdjustmentRequest(BaseModel):
    """
    A quantity change. ``in`` adds a positive quantity, ``out`` removes the
    magnitude of ``quantity``, ``adjustment`` applies the signed value as-is.
    """
    type: TransactionType
    quantity: int
    reason: str
    notes: Optional[str] = None
    reference: Optional[str] = None


class InventoryQuantitySet(BaseModel):
    """Absolute stock count, e.g. after a physical stock-take."""
    quantity: int = Field(..., ge=0)
    reason: str = "Manual adjustment"
    notes: Optional[str] = None


class InventoryTransaction(BaseModel):
    id: int
    item_id: int
    type: TransactionType
    quantity: int
    previous_quantity: int
    new_quantity: int
    reason: str
    notes: Optional[str] = None
    reference: Optional[str] = None
    performed_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class InventoryAdjustmentResult(BaseModel):
    item: InventoryItem
    transaction: InventoryTransaction


class InventoryTransactionPage(BaseModel):
    transactions: List[InventoryTransaction]
    pagination: Pagination


class LedgerCheck(BaseModel):
    item_id: int
    quantity: int
    ledger_quantity: int
    consistent: bool
