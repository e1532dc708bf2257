from typing import Optional
import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from crud import clinic_config as crud_clinic_config
from crud.audit_log import create_audit_log
from crud.inventory_transactions import apply_adjustment, count_transactions
from exceptions import ConflictError, NotFoundError, PersistenceError
from models.bills import BillItem
from models.inventory_items import InventoryItem, InventoryItemStatus
from models.inventory_transactions import TransactionType
from schemas.actor import Actor
from schemas.audit_log import AuditLogCreate
from schemas.inventory_items import InventoryItemCreate, InventoryItemUpdate
from utils import sqlalchemy_to_dict

logger = logging.getLogger("inventory_items")


def get_inventory_item(db: Session, item_id: int, tenant_id: str):
    return db.query(InventoryItem).filter(InventoryItem.id == item_id, InventoryItem.tenant_id == tenant_id).first()


def get_inventory_item_or_404(db: Session, item_id: int, tenant_id: str) -> InventoryItem:
    db_item = get_inventory_item(db, item_id, tenant_id)
    if db_item is None:
        raise NotFoundError("Inventory item not found")
    return db_item


def _get_by_sku(db: Session, sku: str, tenant_id: str):
    return db.query(InventoryItem).filter(InventoryItem.sku == sku, InventoryItem.tenant_id == tenant_id).first()


def get_inventory_items(
    db: Session,
    tenant_id: str,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[InventoryItemStatus] = None,
    low_stock: bool = False,
):
    """Filtered, paginated item list, most recently touched first. Returns (items, total)."""
    query = db.query(InventoryItem).filter(InventoryItem.tenant_id == tenant_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            InventoryItem.name.ilike(pattern),
            InventoryItem.sku.ilike(pattern),
            InventoryItem.description.ilike(pattern),
        ))
    if category:
        query = query.filter(InventoryItem.category == category)
    if status:
        query = query.filter(InventoryItem.status == status)
    if low_stock:
        # includes out-of-stock items, as the dashboard's "needs reorder" list does
        query = query.filter(InventoryItem.quantity <= InventoryItem.min_quantity)

    total = query.count()
    items = (
        query.order_by(func.coalesce(InventoryItem.updated_at, InventoryItem.created_at).desc(), InventoryItem.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def create_inventory_item(db: Session, item: InventoryItemCreate, tenant_id: str, actor: Actor) -> InventoryItem:
    if _get_by_sku(db, item.sku, tenant_id):
        raise ConflictError("SKU already exists")

    data = item.model_dump(exclude={"quantity"})
    if data.get("min_quantity") is None:
        data["min_quantity"] = crud_clinic_config.get_value(db, tenant_id, "default_min_quantity")

    db_item = InventoryItem(**data, quantity=0, tenant_id=tenant_id, created_by=actor.id, updated_by=actor.id)
    try:
        db.add(db_item)
        db.flush() # Flush to get db_item.id before writing the ledger
        if item.quantity > 0:
            apply_adjustment(db, db_item, item.quantity, TransactionType.IN, "Initial stock", actor)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("SKU already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to create inventory item '{item.name}' for tenant {tenant_id}")
        raise PersistenceError(f"Could not create inventory item: {e.__class__.__name__}")

    db.refresh(db_item)
    logger.info(f"Inventory item '{db_item.name}' ({db_item.sku}) created with {db_item.quantity} in stock by user {actor.id} for tenant {tenant_id}")
    return db_item


def update_inventory_item(db: Session, item_id: int, item: InventoryItemUpdate, tenant_id: str, actor: Actor) -> InventoryItem:
    db_item = get_inventory_item_or_404(db, item_id, tenant_id)

    update_data = item.model_dump(exclude_unset=True)
    # Required columns cannot be cleared
    for key in ("name", "category", "sku", "unit_price", "min_quantity", "status"):
        if key in update_data and update_data[key] is None:
            update_data.pop(key)

    new_sku = update_data.get("sku")
    if new_sku and new_sku != db_item.sku and _get_by_sku(db, new_sku, tenant_id):
        raise ConflictError("SKU already exists")

    old_values = sqlalchemy_to_dict(db_item)
    for key, value in update_data.items():
        setattr(db_item, key, value)
    db_item.updated_by = actor.id
    try:
        db.flush()
        create_audit_log(db, AuditLogCreate(
            tenant_id=tenant_id,
            table_name='inventory_items',
            record_id=str(item_id),
            changed_by=actor.id,
            action='UPDATE',
            old_values=old_values,
            new_values=sqlalchemy_to_dict(db_item),
        ))
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("SKU already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to update inventory item {item_id} for tenant {tenant_id}")
        raise PersistenceError(f"Could not update inventory item: {e.__class__.__name__}")

    db.refresh(db_item)
    logger.info(f"Inventory item '{db_item.name}' (ID: {item_id}) updated by user {actor.id} for tenant {tenant_id}")
    return db_item


def delete_inventory_item(db: Session, item_id: int, tenant_id: str, actor: Actor):
    """
    Remove an item. An item referenced by ledger rows or bill lines is retired (status
    discontinued) instead, so its history stays intact. Returns (item, retired).
    """
    db_item = get_inventory_item_or_404(db, item_id, tenant_id)
    old_values = sqlalchemy_to_dict(db_item)
    retired = (
        count_transactions(db, tenant_id, item_id) > 0
        or db.query(BillItem.id).filter(BillItem.inventory_item_id == item_id, BillItem.tenant_id == tenant_id).first() is not None
    )

    try:
        if retired:
            db_item.status = InventoryItemStatus.DISCONTINUED
            db_item.updated_by = actor.id
            db.flush()
            new_values = sqlalchemy_to_dict(db_item)
        else:
            db.delete(db_item)
            new_values = None
        create_audit_log(db, AuditLogCreate(
            tenant_id=tenant_id,
            table_name='inventory_items',
            record_id=str(item_id),
            changed_by=actor.id,
            action='RETIRE' if retired else 'DELETE',
            old_values=old_values,
            new_values=new_values,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to delete inventory item {item_id} for tenant {tenant_id}")
        raise PersistenceError(f"Could not delete inventory item: {e.__class__.__name__}")

    logger.info(f"Inventory item '{old_values['name']}' (ID: {item_id}) {'retired' if retired else 'deleted'} by user {actor.id} for tenant {tenant_id}")
    return db_item, retired
