from pydantic import BaseModel
from datetime import datetime
from typing import Optional, Dict, Any


class AuditLogCreate(BaseModel):
    tenant_id: Optional[str] = None
    table_name: str
    record_id: str
    changed_by: str
    action: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None


class AuditLog(AuditLogCreate):
    id: int
    changed_at: datetime

    class Config:
        from_attributes = True
