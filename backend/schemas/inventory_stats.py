from pydantic import BaseModel
from typing import List
from decimal import Decimal


class CategoryStats(BaseModel):
    category: str
    count: int
    total_quantity: int
    total_value: Decimal


class InventoryStats(BaseModel):
    total_items: int = 0
    low_stock_items: int = 0
    out_of_stock_items: int = 0
    total_value: Decimal = Decimal("0.00")
    category_stats: List[CategoryStats] = []
