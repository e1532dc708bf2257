from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional
import logging

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from crud import clinic_config as crud_clinic_config
from crud.audit_log import create_audit_log
from crud.inventory_transactions import apply_adjustment, lock_inventory_item
from exceptions import (
    ClinicError,
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from models.bills import Bill, BillItem, BillStatus
from models.inventory_items import InventoryItem
from models.inventory_transactions import InventoryTransaction, TransactionType
from schemas.actor import Actor, Role
from schemas.audit_log import AuditLogCreate
from schemas.bills import (
    BillCreate,
    BillItemCreate,
    BillLineTotal,
    BillStats,
    BillStatusSummary,
    BillTotals,
    BillUpdate,
    MonthlyRevenue,
    RecentBill,
    RevenueSummary,
)
from utils import sqlalchemy_to_dict
from utils.formatting import format_currency, to_money
from utils.timezone import APP_TIMEZONE, now_local

logger = logging.getLogger("bills")

HUNDRED = Decimal("100")
TREND_MONTHS = 6


def _as_percent(name: str, value) -> Decimal:
    try:
        value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not value.is_finite() or value < 0 or value > HUNDRED:
        raise ValidationError(f"{name} must be between 0 and 100")
    return value


def compute_totals(items: Iterable[BillItemCreate], tax_percent=0, discount_percent=0) -> BillTotals:
    """
    subtotal = sum(quantity * unit_price); tax and discount are percentages of
    the subtotal; total = subtotal + tax - discount.

    Money is Decimal throughout. Line totals, subtotal, tax and discount are
    each rounded half-up to 2 places; the total is exact arithmetic on those.
    """
    tax_percent = _as_percent("Tax percent", tax_percent)
    discount_percent = _as_percent("Discount percent", discount_percent)

    lines = []
    subtotal = Decimal("0")
    for item in items:
        if item.quantity is None or item.quantity <= 0:
            raise ValidationError(f"Quantity for '{item.description}' must be positive")
        unit_price = to_money(item.unit_price)
        if unit_price < 0:
            raise ValidationError(f"Unit price for '{item.description}' must not be negative")
        line_total = to_money(Decimal(item.quantity) * unit_price)
        subtotal += line_total
        lines.append(BillLineTotal(description=item.description, quantity=item.quantity, unit_price=unit_price, total=line_total))

    subtotal = to_money(subtotal)
    tax = to_money(subtotal * tax_percent / HUNDRED)
    discount = to_money(subtotal * discount_percent / HUNDRED)
    return BillTotals(
        items=lines,
        subtotal=subtotal,
        tax_percent=tax_percent,
        tax=tax,
        discount_percent=discount_percent,
        discount=discount,
        total=subtotal + tax - discount,
    )


def _apply_totals(bill: Bill, totals: BillTotals):
    bill.subtotal = totals.subtotal
    bill.tax_percent = totals.tax_percent
    bill.tax = totals.tax
    bill.discount_percent = totals.discount_percent
    bill.discount = totals.discount
    bill.total_amount = totals.total


def _build_items(items, totals: BillTotals, tenant_id: str):
    return [
        BillItem(
            tenant_id=tenant_id,
            description=item.description,
            quantity=item.quantity,
            unit_price=line.unit_price,
            total=line.total,
            inventory_item_id=item.inventory_item_id,
        )
        for item, line in zip(items, totals.items)
    ]


def _scoped_query(db: Session, tenant_id: str, actor: Actor):
    """Bills visible to the actor: admins see all, doctors see their own, patients see theirs."""
    query = db.query(Bill).filter(Bill.tenant_id == tenant_id)
    if actor.is_admin:
        return query
    if actor.role == Role.DOCTOR:
        return query.filter(Bill.doctor_id == actor.id)
    return query.filter(Bill.patient_id == actor.id)


def _check_access(bill: Bill, actor: Actor):
    if actor.is_admin:
        return
    if actor.role == Role.PATIENT and bill.patient_id != actor.id:
        raise PermissionDeniedError("You can only view your own bills")
    if actor.role == Role.DOCTOR and bill.doctor_id != actor.id:
        raise PermissionDeniedError("You can only access bills you issued")


def _check_linked_items(db: Session, tenant_id: str, items: Iterable[BillItemCreate]):
    """Every inventory_item_id on the lines must name an item of this tenant."""
    ids = {item.inventory_item_id for item in items if item.inventory_item_id is not None}
    if not ids:
        return
    found = {
        row.id for row in db.query(InventoryItem.id)
        .filter(InventoryItem.id.in_(ids), InventoryItem.tenant_id == tenant_id)
        .all()
    }
    missing = sorted(ids - found)
    if missing:
        raise NotFoundError(f"Inventory item {missing[0]} not found")


def _has_dispensed_stock(db: Session, tenant_id: str, bill: Bill) -> bool:
    return db.query(InventoryTransaction.id).filter(
        InventoryTransaction.tenant_id == tenant_id,
        InventoryTransaction.reference == bill.bill_number,
        InventoryTransaction.type == TransactionType.OUT,
    ).first() is not None


def _next_bill_sequence(db: Session, tenant_id: str) -> int:
    # deleted bills keep their numbers
    last = (
        db.query(func.max(Bill.bill_sequence))
        .filter(Bill.tenant_id == tenant_id)
        .execution_options(include_deleted=True)
        .scalar()
    )
    return (last or 0) + 1


def format_bill_number(sequence: int) -> str:
    return f"BILL-{sequence:06d}"


def get_bill(db: Session, tenant_id: str, bill_id: int, actor: Actor) -> Bill:
    bill = (
        db.query(Bill)
        .options(selectinload(Bill.items))
        .filter(Bill.id == bill_id, Bill.tenant_id == tenant_id)
        .first()
    )
    if bill is None:
        raise NotFoundError("Bill not found")
    _check_access(bill, actor)
    return bill


def get_bills(
    db: Session,
    tenant_id: str,
    actor: Actor,
    status: Optional[BillStatus] = None,
    patient_id: Optional[str] = None,
    doctor_id: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
):
    """Returns (bills, total), newest first."""
    query = _scoped_query(db, tenant_id, actor)
    if status:
        query = query.filter(Bill.status == status)
    if patient_id:
        query = query.filter(Bill.patient_id == patient_id)
    if doctor_id:
        query = query.filter(Bill.doctor_id == doctor_id)

    total = query.count()
    bills = (
        query.options(selectinload(Bill.items))
        .order_by(Bill.created_at.desc(), Bill.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return bills, total


def create_bill(db: Session, tenant_id: str, bill_in: BillCreate, actor: Actor) -> Bill:
    if actor.role == Role.DOCTOR and bill_in.doctor_id != actor.id:
        raise PermissionDeniedError("Doctors can only issue bills in their own name")
    if not bill_in.items:
        raise ValidationError("A bill must contain at least one item")

    tax_percent = bill_in.tax_percent
    if tax_percent is None:
        tax_percent = crud_clinic_config.get_value(db, tenant_id, "default_tax_percent")
    totals = compute_totals(bill_in.items, tax_percent, bill_in.discount_percent)

    due_date = bill_in.due_date
    if due_date is None:
        due_date = now_local().date() + timedelta(days=crud_clinic_config.get_value(db, tenant_id, "bill_due_days"))

    sequence = _next_bill_sequence(db, tenant_id)
    bill = Bill(
        tenant_id=tenant_id,
        bill_sequence=sequence,
        bill_number=format_bill_number(sequence),
        patient_id=bill_in.patient_id,
        doctor_id=bill_in.doctor_id,
        appointment_id=bill_in.appointment_id,
        due_date=due_date,
        notes=bill_in.notes,
        created_by=actor.id,
        updated_by=actor.id,
    )
    _apply_totals(bill, totals)
    bill.items = _build_items(bill_in.items, totals, tenant_id)

    locked = {}
    try:
        if bill_in.dispense_stock:
            for item in bill_in.items:
                if item.inventory_item_id is None:
                    continue
                # one lock per item; later lines draw down the staged quantity
                stock_item = locked.get(item.inventory_item_id)
                if stock_item is None:
                    stock_item = lock_inventory_item(db, item.inventory_item_id, tenant_id)
                    locked[item.inventory_item_id] = stock_item
                apply_adjustment(
                    db, stock_item, -item.quantity, TransactionType.OUT,
                    f"Dispensed on bill {bill.bill_number}", actor,
                    reference=bill.bill_number,
                )
        else:
            _check_linked_items(db, tenant_id, bill_in.items)
        db.add(bill)
        db.commit()
    except ClinicError:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        raise ConflictError("Bill number already taken, please retry")
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to create bill for tenant {tenant_id}")
        raise PersistenceError(f"Could not create bill: {e.__class__.__name__}")

    db.refresh(bill)
    logger.info(f"Bill {bill.bill_number} ({format_currency(bill.total_amount)}) created for patient {bill.patient_id} by user {actor.id} for tenant {tenant_id}")
    return bill


def update_bill(db: Session, tenant_id: str, bill_id: int, update: BillUpdate, actor: Actor) -> Bill:
    bill = get_bill(db, tenant_id, bill_id, actor)
    old_values = sqlalchemy_to_dict(bill)
    data = update.model_dump(exclude_unset=True)

    tax_percent = data.get("tax_percent")
    if tax_percent is None:
        tax_percent = bill.tax_percent
    discount_percent = data.get("discount_percent")
    if discount_percent is None:
        discount_percent = bill.discount_percent

    if update.items is not None:
        if not update.items:
            raise ValidationError("A bill must contain at least one item")
        # the ledger's dispensing rows point at the current lines
        if _has_dispensed_stock(db, tenant_id, bill):
            raise InvalidOperationError("Items cannot be replaced on a bill that dispensed stock")
        _check_linked_items(db, tenant_id, update.items)
        totals = compute_totals(update.items, tax_percent, discount_percent)
        _apply_totals(bill, totals)
        bill.items = _build_items(update.items, totals, tenant_id)
    elif "tax_percent" in data or "discount_percent" in data:
        totals = compute_totals(bill.items, tax_percent, discount_percent)
        _apply_totals(bill, totals)

    for field in ("status", "payment_method", "payment_date", "due_date", "notes"):
        if field in data:
            if field in ("status", "due_date") and data[field] is None:
                continue
            setattr(bill, field, data[field])

    if bill.status == BillStatus.PAID and bill.payment_date is None:
        bill.payment_date = now_local()
    bill.updated_by = actor.id

    try:
        db.flush()
        create_audit_log(db, AuditLogCreate(
            tenant_id=tenant_id,
            table_name='bills',
            record_id=str(bill.id),
            changed_by=actor.id,
            action='UPDATE',
            old_values=old_values,
            new_values=sqlalchemy_to_dict(bill),
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to update bill {bill_id} for tenant {tenant_id}")
        raise PersistenceError(f"Could not update bill: {e.__class__.__name__}")

    db.refresh(bill)
    logger.info(f"Bill {bill.bill_number} updated by user {actor.id} for tenant {tenant_id}")
    return bill


def delete_bill(db: Session, tenant_id: str, bill_id: int, actor: Actor):
    bill = get_bill(db, tenant_id, bill_id, actor)
    old_values = sqlalchemy_to_dict(bill)
    bill.deleted_at = now_local()
    bill.deleted_by = actor.id
    try:
        db.flush()
        create_audit_log(db, AuditLogCreate(
            tenant_id=tenant_id,
            table_name='bills',
            record_id=str(bill.id),
            changed_by=actor.id,
            action='DELETE',
            old_values=old_values,
            new_values=None,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to delete bill {bill_id} for tenant {tenant_id}")
        raise PersistenceError(f"Could not delete bill: {e.__class__.__name__}")
    logger.info(f"Bill {bill.bill_number} deleted by user {actor.id} for tenant {tenant_id}")


def _to_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        return APP_TIMEZONE.localize(value)
    return value.astimezone(APP_TIMEZONE)


def _trend_months(today: date):
    months = []
    year, month = today.year, today.month
    for _ in range(TREND_MONTHS):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def get_bill_stats(db: Session, tenant_id: str, actor: Actor, today: Optional[date] = None) -> BillStats:
    today = today or now_local().date()
    base = _scoped_query(db, tenant_id, actor)

    total_bills = base.count()

    by_status = {}
    status_rows = (
        base.with_entities(Bill.status, func.count(Bill.id), func.coalesce(func.sum(Bill.total_amount), 0))
        .group_by(Bill.status)
        .all()
    )
    for status, count, amount in status_rows:
        by_status[status.value] = BillStatusSummary(count=int(count), total_amount=to_money(amount))

    overdue_bills = base.filter(or_(
        Bill.status == BillStatus.OVERDUE,
        and_(Bill.status.in_([BillStatus.DRAFT, BillStatus.SENT]), Bill.due_date < today),
    )).count()

    recent = base.order_by(Bill.created_at.desc(), Bill.id.desc()).limit(5).all()

    months = _trend_months(today)
    window_start = APP_TIMEZONE.localize(datetime(months[0][0], months[0][1], 1))
    paid = (
        base.filter(Bill.status == BillStatus.PAID, Bill.payment_date.isnot(None), Bill.payment_date >= window_start)
        .with_entities(Bill.payment_date, Bill.total_amount)
        .all()
    )
    trend = {key: [Decimal("0"), 0] for key in months}
    for payment_date, amount in paid:
        local = _to_local(payment_date)
        key = (local.year, local.month)
        if key in trend:
            trend[key][0] += to_money(amount)
            trend[key][1] += 1

    current = trend[(today.year, today.month)]
    return BillStats(
        total_bills=total_bills,
        bills_by_status=by_status,
        monthly_revenue=RevenueSummary(total=to_money(current[0]), count=current[1]),
        overdue_bills=overdue_bills,
        recent_bills=[RecentBill.model_validate(b) for b in recent],
        monthly_trend=[
            MonthlyRevenue(year=year, month=month, revenue=to_money(revenue), count=count)
            for (year, month), (revenue, count) in trend.items()
        ],
    )
