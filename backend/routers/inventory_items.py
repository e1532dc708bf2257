from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db
from crud import inventory_items as crud_inventory_items
from crud import inventory_stats as crud_inventory_stats
from crud import inventory_transactions as crud_inventory_transactions
from crud.audit_log import get_audit_logs
from models.inventory_items import InventoryItemStatus
from models.inventory_transactions import TransactionType
from schemas.actor import Actor, ADMIN_ROLES, STAFF_ROLES
from schemas.audit_log import AuditLog
from schemas.inventory_items import InventoryItem, InventoryItemCreate, InventoryItemDeleteResult, InventoryItemPage, InventoryItemUpdate
from schemas.inventory_stats import InventoryStats
from schemas.inventory_transactions import (
    InventoryAdjustmentRequest,
    InventoryAdjustmentResult,
    InventoryQuantitySet,
    InventoryTransactionPage,
    LedgerCheck,
)
from schemas.pagination import Pagination
from utils.auth_utils import require_role
from utils.tenancy import get_tenant_id
from utils.timezone import now_local

router = APIRouter(prefix="/inventory-items", tags=["Inventory Items"])
logger = logging.getLogger("inventory_items")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("/", response_model=InventoryItem, status_code=status.HTTP_201_CREATED)
def create_inventory_item(
    item: InventoryItemCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Create a new inventory item. Opening stock is written to the ledger."""
    return crud_inventory_items.create_inventory_item(db=db, item=item, tenant_id=tenant_id, actor=actor)


@router.get("/", response_model=InventoryItemPage)
def read_inventory_items(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[InventoryItemStatus] = None,
    low_stock: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Retrieve a page of inventory items, with optional search and filters."""
    items, total = crud_inventory_items.get_inventory_items(
        db, tenant_id, page=page, limit=limit, search=search,
        category=category, status=status, low_stock=low_stock,
    )
    return InventoryItemPage(items=items, pagination=Pagination.build(page, limit, total))


@router.get("/stats", response_model=InventoryStats)
def read_inventory_stats(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    return crud_inventory_stats.get_stats(db, tenant_id, include_inactive=include_inactive)


@router.get("/stats/export")
def export_inventory_stats(
    report: str = Query("summary", description="summary or category"),
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Download the inventory summary or category report as an Excel workbook."""
    if report not in crud_inventory_stats.REPORT_TYPES:
        raise HTTPException(status_code=400, detail=f"report must be one of: {', '.join(crud_inventory_stats.REPORT_TYPES)}")
    stats = crud_inventory_stats.get_stats(db, tenant_id, include_inactive=include_inactive)
    output = crud_inventory_stats.build_stats_workbook(stats, report)
    filename = f"inventory-{report}-report-{now_local().strftime('%Y-%m-%d')}.xlsx"
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/transactions", response_model=InventoryTransactionPage)
def read_all_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    item_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Retrieve the tenant's stock ledger, newest first."""
    rows, total = crud_inventory_transactions.get_transactions(db, tenant_id, item_id=item_id, tx_type=type, page=page, limit=limit)
    return InventoryTransactionPage(transactions=rows, pagination=Pagination.build(page, limit, total))


@router.get("/{item_id}", response_model=InventoryItem)
def read_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Retrieve a single inventory item by ID."""
    return crud_inventory_items.get_inventory_item_or_404(db, item_id, tenant_id)


@router.patch("/{item_id}", response_model=InventoryItem)
def update_inventory_item(
    item_id: int,
    item: InventoryItemUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Update item details. Stock levels change only through /adjust."""
    return crud_inventory_items.update_inventory_item(db=db, item_id=item_id, item=item, tenant_id=tenant_id, actor=actor)


@router.delete("/{item_id}", response_model=InventoryItemDeleteResult)
def delete_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Delete an inventory item. Items with ledger history are discontinued instead."""
    _, retired = crud_inventory_items.delete_inventory_item(db=db, item_id=item_id, tenant_id=tenant_id, actor=actor)
    message = "Inventory item has stock history and was discontinued" if retired else "Inventory item deleted successfully"
    return InventoryItemDeleteResult(id=item_id, retired=retired, message=message)


@router.post("/{item_id}/adjust", response_model=InventoryAdjustmentResult)
def adjust_inventory_quantity(
    item_id: int,
    adjustment: InventoryAdjustmentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Apply a stock in/out/adjustment and record it in the ledger."""
    item, transaction = crud_inventory_transactions.adjust_quantity(db, tenant_id, item_id, adjustment, actor)
    return InventoryAdjustmentResult(item=item, transaction=transaction)


@router.put("/{item_id}/quantity", response_model=InventoryAdjustmentResult)
def set_inventory_quantity(
    item_id: int,
    request: InventoryQuantitySet,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Set an absolute stock count; the difference is recorded in the ledger."""
    item, transaction = crud_inventory_transactions.set_quantity(db, tenant_id, item_id, request, actor)
    return InventoryAdjustmentResult(item=item, transaction=transaction)


@router.get("/{item_id}/transactions", response_model=InventoryTransactionPage)
def read_item_transactions(
    item_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Retrieve the ledger for a specific inventory item."""
    crud_inventory_items.get_inventory_item_or_404(db, item_id, tenant_id)
    rows, total = crud_inventory_transactions.get_transactions(db, tenant_id, item_id=item_id, page=page, limit=limit)
    return InventoryTransactionPage(transactions=rows, pagination=Pagination.build(page, limit, total))


@router.get("/{item_id}/ledger-check", response_model=LedgerCheck)
def check_item_ledger(
    item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Compare the cached quantity with the sum of the item's ledger."""
    item = crud_inventory_items.get_inventory_item_or_404(db, item_id, tenant_id)
    ledger_quantity = crud_inventory_transactions.replay_quantity(db, tenant_id, item_id)
    if ledger_quantity != item.quantity:
        logger.warning(f"Ledger mismatch on inventory item {item_id} for tenant {tenant_id}: cached {item.quantity}, ledger {ledger_quantity}")
    return LedgerCheck(item_id=item_id, quantity=item.quantity, ledger_quantity=ledger_quantity, consistent=ledger_quantity == item.quantity)


@router.get("/{item_id}/audit", response_model=List[AuditLog])
def get_inventory_item_audit_history(
    item_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """
    Retrieve the detail changes and retirement recorded for a specific inventory item.
    """
    crud_inventory_items.get_inventory_item_or_404(db, item_id, tenant_id)
    return get_audit_logs(db, tenant_id, "inventory_items", str(item_id))
