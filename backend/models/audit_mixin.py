from sqlalchemy import Column, DateTime, String

from utils.timezone import now_local


class TimestampMixin:
    """Mixin that provides created/updated timestamps and user info.

    This is the minimal mixin used for most models. It does NOT include soft-delete
    columns so models can safely be deleted and recreated without unique-constraint
    collisions (e.g. inventory items keyed by sku + tenant).
    """
    # DateTime(timezone=True) ensures the timezone info is persisted in the database.
    created_at = Column(DateTime(timezone=True), default=now_local)
    updated_at = Column(DateTime(timezone=True), onupdate=now_local)
    created_by = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)


class SoftDeleteMixin:
    """Mixin for soft-delete columns (deleted_at, deleted_by).

    Apply this only to models where soft-delete is absolutely necessary (audit trails,
    financial records, immutable historical data). Rows carrying it are hidden from
    every SELECT by the listener in database.py.
    """
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String, nullable=True)


class AuditMixin(TimestampMixin, SoftDeleteMixin):
    """Timestamps + soft-delete, used by financial records such as bills."""
    pass
