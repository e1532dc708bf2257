from io import BytesIO
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter
from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from models.inventory_items import InventoryItem, InventoryItemStatus
from schemas.inventory_stats import CategoryStats, InventoryStats
from utils.formatting import to_money
from utils.timezone import now_local

logger = logging.getLogger("inventory_stats")

REPORT_TYPES = ("summary", "category")


def get_stats(db: Session, tenant_id: str, include_inactive: bool = False) -> InventoryStats:
    """
    Dashboard figures over the tenant's items.

    Low stock is 0 < quantity <= min_quantity; out of stock is quantity == 0.
    Only active items count unless ``include_inactive`` is set.
    """
    value_expr = InventoryItem.quantity * InventoryItem.unit_price
    low_expr = case(
        (and_(InventoryItem.quantity > 0, InventoryItem.quantity <= InventoryItem.min_quantity), 1),
        else_=0,
    )
    out_expr = case((InventoryItem.quantity == 0, 1), else_=0)

    query = db.query(
        InventoryItem.category,
        func.count(InventoryItem.id),
        func.coalesce(func.sum(InventoryItem.quantity), 0),
        func.coalesce(func.sum(value_expr), 0),
        func.coalesce(func.sum(low_expr), 0),
        func.coalesce(func.sum(out_expr), 0),
    ).filter(InventoryItem.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(InventoryItem.status == InventoryItemStatus.ACTIVE)
    rows = query.group_by(InventoryItem.category).all()

    stats = InventoryStats()
    categories = []
    total_value = to_money(0)
    for category, count, total_quantity, category_value, low, out in rows:
        category_value = to_money(category_value)
        categories.append(CategoryStats(
            category=category,
            count=int(count),
            total_quantity=int(total_quantity),
            total_value=category_value,
        ))
        stats.total_items += int(count)
        stats.low_stock_items += int(low)
        stats.out_of_stock_items += int(out)
        total_value += category_value

    stats.total_value = total_value
    stats.category_stats = sorted(categories, key=lambda c: (-c.count, c.category))
    return stats


def build_stats_workbook(stats: InventoryStats, report: str = "summary") -> BytesIO:
    """Render the stats as an .xlsx file: one summary sheet or a per-category sheet."""
    if report not in REPORT_TYPES:
        raise ValueError(f"Unknown report type '{report}'")

    wb = Workbook()
    ws = wb.active
    header_fill = PatternFill(start_color="92D050", end_color="92D050", fill_type="solid")
    bold_font = Font(bold=True)

    if report == "category":
        ws.title = "Category Report"
        headers = ["Category", "Item Count", "Total Quantity", "Total Value"]
        ws.append(headers)
        for cat in stats.category_stats:
            ws.append([cat.category, cat.count, cat.total_quantity, float(cat.total_value)])
        value_columns = [4]
    else:
        ws.title = "Summary Report"
        headers = ["Metric", "Value"]
        ws.append(headers)
        ws.append(["Total Items", stats.total_items])
        ws.append(["Low Stock Items", stats.low_stock_items])
        ws.append(["Out of Stock Items", stats.out_of_stock_items])
        ws.append(["Total Inventory Value", float(stats.total_value)])
        value_columns = []
        ws.cell(row=ws.max_row, column=2).number_format = "#,##0.00"

    for col_idx in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=col_idx)
        cell.font = bold_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")
        ws.column_dimensions[get_column_letter(col_idx)].width = 22

    for col_idx in value_columns:
        for row_idx in range(2, ws.max_row + 1):
            ws.cell(row=row_idx, column=col_idx).number_format = "#,##0.00"

    ws.append([])
    ws.append([f"Generated {now_local().strftime('%d-%m-%Y %H:%M')}"])

    output = BytesIO()
    wb.save(output)
    output.seek(0)
    logger.info(f"Built inventory {report} workbook ({stats.total_items} items)")
    return output
