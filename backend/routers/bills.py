from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database import get_db
from crud import bills as crud_bills
from crud.audit_log import get_audit_logs
from models.bills import BillStatus
from schemas.actor import Actor, ADMIN_ROLES, ALL_ROLES, STAFF_ROLES
from schemas.audit_log import AuditLog
from schemas.bills import Bill, BillCreate, BillPage, BillPreviewRequest, BillStats, BillTotals, BillUpdate
from schemas.pagination import Pagination
from utils.auth_utils import require_role
from utils.tenancy import get_tenant_id

router = APIRouter(prefix="/bills", tags=["Bills"])
logger = logging.getLogger("bills")


@router.post("/", response_model=Bill, status_code=status.HTTP_201_CREATED)
def create_bill(
    bill: BillCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Create a bill; totals and the bill number are computed server-side."""
    return crud_bills.create_bill(db, tenant_id, bill, actor)


@router.post("/preview", response_model=BillTotals)
def preview_bill_totals(
    request: BillPreviewRequest,
    actor: Actor = Depends(require_role(STAFF_ROLES)),
):
    """Compute totals for a draft bill without saving anything."""
    return crud_bills.compute_totals(request.items, request.tax_percent, request.discount_percent)


@router.get("/", response_model=BillPage)
def read_bills(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[BillStatus] = None,
    patient_id: Optional[str] = None,
    doctor_id: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ALL_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Retrieve bills visible to the caller, newest first."""
    bills, total = crud_bills.get_bills(
        db, tenant_id, actor, status=status, patient_id=patient_id,
        doctor_id=doctor_id, page=page, limit=limit,
    )
    return BillPage(bills=bills, pagination=Pagination.build(page, limit, total))


@router.get("/stats", response_model=BillStats)
def read_bill_stats(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ALL_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    return crud_bills.get_bill_stats(db, tenant_id, actor)


@router.get("/{bill_id}", response_model=Bill)
def read_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ALL_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    return crud_bills.get_bill(db, tenant_id, bill_id, actor)


@router.patch("/{bill_id}", response_model=Bill)
def update_bill(
    bill_id: int,
    update: BillUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(STAFF_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """Update a bill. Totals are recalculated when items or percentages change."""
    return crud_bills.update_bill(db, tenant_id, bill_id, update, actor)


@router.delete("/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    crud_bills.delete_bill(db, tenant_id, bill_id, actor)


@router.get("/{bill_id}/audit", response_model=List[AuditLog])
def get_bill_audit_history(
    bill_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    bill = crud_bills.get_bill(db, tenant_id, bill_id, actor)
    return get_audit_logs(db, tenant_id, "bills", str(bill.id))
