from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class ClinicConfigUpdate(BaseModel):
    value: str


class ClinicConfigOut(BaseModel):
    name: str
    value: str
    is_default: bool = False # True when the tenant has not overridden the built-in value
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
