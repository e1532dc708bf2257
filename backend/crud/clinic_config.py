from decimal import Decimal, InvalidOperation
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from crud.audit_log import create_audit_log
from exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from models.clinic_config import ClinicConfig
from schemas.actor import Actor
from schemas.audit_log import AuditLogCreate
from schemas.clinic_config import ClinicConfigOut
from utils import sqlalchemy_to_dict
from utils.timezone import now_local

logger = logging.getLogger("clinic_config")

DEFAULT_CONFIGS = {
    "default_min_quantity": "10",
    "default_tax_percent": "0",
    "bill_due_days": "30",
}


def _parse_non_negative_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be a whole number")
    if parsed < 0:
        raise ValidationError(f"'{name}' must not be negative")
    return parsed


def _parse_percent(name: str, value: str) -> Decimal:
    try:
        parsed = Decimal(value)
    except (TypeError, InvalidOperation):
        raise ValidationError(f"'{name}' must be a number")
    if not Decimal("0") <= parsed <= Decimal("100"):
        raise ValidationError(f"'{name}' must be between 0 and 100")
    return parsed


PARSERS = {
    "default_min_quantity": _parse_non_negative_int,
    "default_tax_percent": _parse_percent,
    "bill_due_days": _parse_non_negative_int,
}


def _get_row(db: Session, tenant_id: str, name: str):
    return db.query(ClinicConfig).filter(ClinicConfig.name == name, ClinicConfig.tenant_id == tenant_id).first()


def get_configs(db: Session, tenant_id: str):
    """Every known setting, with tenant overrides applied over the defaults."""
    rows = {c.name: c for c in db.query(ClinicConfig).filter(ClinicConfig.tenant_id == tenant_id).all()}
    result = []
    for name, default in DEFAULT_CONFIGS.items():
        row = rows.get(name)
        if row is None:
            result.append(ClinicConfigOut(name=name, value=default, is_default=True))
        else:
            result.append(ClinicConfigOut(name=name, value=row.value, updated_by=row.updated_by or row.created_by, updated_at=row.updated_at or row.created_at))
    return result


def get_value(db: Session, tenant_id: str, name: str):
    """Parsed value of a setting for the tenant."""
    if name not in DEFAULT_CONFIGS:
        raise NotFoundError(f"Unknown configuration '{name}'")
    row = _get_row(db, tenant_id, name)
    raw = row.value if row else DEFAULT_CONFIGS[name]
    return PARSERS[name](name, raw)


def set_value(db: Session, tenant_id: str, name: str, value: str, actor: Actor) -> ClinicConfigOut:
    if name not in DEFAULT_CONFIGS:
        raise NotFoundError(f"Unknown configuration '{name}'")
    value = value.strip()
    PARSERS[name](name, value)

    db_config = _get_row(db, tenant_id, name)
    if db_config:
        old_values = sqlalchemy_to_dict(db_config)
        db_config.value = value
        db_config.updated_at = now_local()
        db_config.updated_by = actor.id
        action = 'UPDATE'
    else:
        db_config = ClinicConfig(name=name, value=value, tenant_id=tenant_id, created_by=actor.id, updated_by=actor.id)
        db.add(db_config)
        old_values = {}
        action = 'CREATE'

    try:
        db.flush()
        create_audit_log(db, AuditLogCreate(
            tenant_id=tenant_id,
            table_name='clinic_config',
            record_id=str(db_config.id),
            changed_by=actor.id,
            action=action,
            old_values=old_values,
            new_values=sqlalchemy_to_dict(db_config),
        ))
        db.commit()
    except IntegrityError:
        # another request created the same setting first
        db.rollback()
        raise ConflictError(f"Configuration '{name}' was changed concurrently, please retry")
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to set configuration '{name}' for tenant {tenant_id}")
        raise PersistenceError(f"Could not save configuration: {e.__class__.__name__}")

    db.refresh(db_config)
    logger.info(f"Configuration '{name}' set to '{value}' by user {actor.id} for tenant {tenant_id}")
    return ClinicConfigOut(name=db_config.name, value=db_config.value, updated_by=db_config.updated_by, updated_at=db_config.updated_at)
