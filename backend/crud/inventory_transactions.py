"""
Inventory ledger: the only code path that changes an item's quantity.

Every change reads the item under ``SELECT ... FOR UPDATE``, computes the new
quantity, updates the item and appends one ``InventoryTransaction`` row, and
commits both in a single database transaction. The item also carries an
optimistic ``version`` column; a concurrent writer that slips past the row
lock (e.g. on SQLite, which ignores FOR UPDATE) makes the flush raise
``StaleDataError`` and the whole unit is retried from a fresh read.
"""

from typing import Optional, Tuple
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from exceptions import ClinicError, InvalidOperationError, NotFoundError, PersistenceError, ValidationError
from models.inventory_items import InventoryItem
from models.inventory_transactions import InventoryTransaction, TransactionType
from schemas.actor import Actor
from schemas.inventory_transactions import InventoryAdjustmentRequest, InventoryQuantitySet
from utils.timezone import now_local

logger = logging.getLogger("inventory_transactions")

MAX_ADJUST_ATTEMPTS = 3


def signed_delta(tx_type: TransactionType, quantity: int) -> int:
    """Turn a requested quantity into the signed change it applies to stock."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer")
    if quantity == 0:
        raise ValidationError("Quantity must be a non-zero integer")
    if tx_type == TransactionType.IN:
        if quantity < 0:
            raise ValidationError("Stock-in quantity must be positive")
        return quantity
    if tx_type == TransactionType.OUT:
        # "remove 5" may be sent as 5 or -5
        return -abs(quantity)
    return quantity


def _require_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for every stock change")
    return reason


def lock_inventory_item(db: Session, item_id: int, tenant_id: str) -> InventoryItem:
    item = (
        db.query(InventoryItem)
        .filter(InventoryItem.id == item_id, InventoryItem.tenant_id == tenant_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def apply_adjustment(
    db: Session,
    item: InventoryItem,
    delta: int,
    tx_type: TransactionType,
    reason: str,
    actor: Actor,
    notes: Optional[str] = None,
    reference: Optional[str] = None,
) -> InventoryTransaction:
    """
    Stage a quantity change and its ledger row on ``db`` without committing.

    The caller owns the transaction: it must hold ``item`` locked and commit
    (or roll back) once all of its changes are staged. Raises
    InvalidOperationError before touching anything if stock would go negative.
    """
    previous_quantity = item.quantity or 0
    new_quantity = previous_quantity + delta
    if new_quantity < 0:
        raise InvalidOperationError(
            f"Cannot reduce '{item.name}' below zero: {previous_quantity} in stock, {abs(delta)} requested"
        )

    item.quantity = new_quantity
    item.updated_by = actor.id
    if tx_type == TransactionType.IN:
        item.last_restocked = now_local()

    transaction = InventoryTransaction(
        tenant_id=item.tenant_id,
        item_id=item.id,
        type=tx_type,
        quantity=delta,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        reason=reason,
        notes=notes,
        reference=reference,
        performed_by=actor.id,
    )
    db.add(transaction)
    return transaction


def _run_adjustment(
    db: Session,
    tenant_id: str,
    item_id: int,
    actor: Actor,
    stage,
) -> Tuple[InventoryItem, InventoryTransaction]:
    """Lock, stage and commit as one unit, retrying on optimistic-lock conflicts."""
    for attempt in range(1, MAX_ADJUST_ATTEMPTS + 1):
        try:
            item = lock_inventory_item(db, item_id, tenant_id)
            transaction = stage(item)
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning(f"Inventory item {item_id} changed concurrently (attempt {attempt}/{MAX_ADJUST_ATTEMPTS}), retrying")
            continue
        except ClinicError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to record stock change for inventory item {item_id} (tenant {tenant_id})")
            raise PersistenceError(f"Could not record stock change: {e.__class__.__name__}")
        db.refresh(item)
        db.refresh(transaction)
        logger.info(
            f"Inventory item '{item.name}' (ID: {item.id}) {transaction.type.value} {transaction.quantity:+d}: "
            f"{transaction.previous_quantity} -> {transaction.new_quantity} by user {actor.id} for tenant {tenant_id}"
        )
        return item, transaction

    raise PersistenceError("Inventory item is being modified concurrently, please retry")


def adjust_quantity(
    db: Session,
    tenant_id: str,
    item_id: int,
    adjustment: InventoryAdjustmentRequest,
    actor: Actor,
) -> Tuple[InventoryItem, InventoryTransaction]:
    delta = signed_delta(adjustment.type, adjustment.quantity)
    reason = _require_reason(adjustment.reason)

    def stage(item: InventoryItem) -> InventoryTransaction:
        return apply_adjustment(
            db, item, delta, adjustment.type, reason, actor,
            notes=adjustment.notes, reference=adjustment.reference,
        )

    try:
        return _run_adjustment(db, tenant_id, item_id, actor, stage)
    except InvalidOperationError as e:
        logger.warning(f"Rejected stock change on inventory item {item_id} by user {actor.id}: {e.message}")
        raise


def set_quantity(
    db: Session,
    tenant_id: str,
    item_id: int,
    request: InventoryQuantitySet,
    actor: Actor,
) -> Tuple[InventoryItem, InventoryTransaction]:
    """Move stock to an absolute count, recorded as an in/out ledger entry for the difference."""
    reason = _require_reason(request.reason)
    if request.quantity < 0:
        raise InvalidOperationError("Quantity cannot be negative")

    def stage(item: InventoryItem) -> InventoryTransaction:
        delta = request.quantity - (item.quantity or 0)
        if delta == 0:
            raise ValidationError(f"'{item.name}' already has {request.quantity} in stock")
        tx_type = TransactionType.IN if delta > 0 else TransactionType.OUT
        return apply_adjustment(db, item, delta, tx_type, reason, actor, notes=request.notes)

    return _run_adjustment(db, tenant_id, item_id, actor, stage)


def get_transactions(
    db: Session,
    tenant_id: str,
    item_id: Optional[int] = None,
    tx_type: Optional[TransactionType] = None,
    page: int = 1,
    limit: int = 20,
):
    """Ledger rows, newest first. Returns (rows, total)."""
    query = db.query(InventoryTransaction).filter(InventoryTransaction.tenant_id == tenant_id)
    if item_id is not None:
        query = query.filter(InventoryTransaction.item_id == item_id)
    if tx_type is not None:
        query = query.filter(InventoryTransaction.type == tx_type)

    total = query.count()
    rows = (
        query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def replay_quantity(db: Session, tenant_id: str, item_id: int) -> int:
    """Sum of every delta in the ledger for an item."""
    total = (
        db.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(InventoryTransaction.tenant_id == tenant_id, InventoryTransaction.item_id == item_id)
        .scalar()
    )
    return int(total or 0)


def count_transactions(db: Session, tenant_id: str, item_id: int) -> int:
    return (
        db.query(func.count(InventoryTransaction.id))
        .filter(InventoryTransaction.tenant_id == tenant_id, InventoryTransaction.item_id == item_id)
        .scalar()
    )
