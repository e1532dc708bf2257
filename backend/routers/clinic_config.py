from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
import logging

from database import get_db
from crud import clinic_config as crud_clinic_config
from schemas.actor import Actor, ADMIN_ROLES, ALL_ROLES
from schemas.clinic_config import ClinicConfigOut, ClinicConfigUpdate
from utils.auth_utils import require_role
from utils.tenancy import get_tenant_id

router = APIRouter(prefix="/clinic-config", tags=["Clinic Configuration"])
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[ClinicConfigOut])
def get_configs(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ALL_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    """All clinic settings, with built-in defaults for anything not overridden."""
    return crud_clinic_config.get_configs(db, tenant_id)


@router.put("/{name}", response_model=ClinicConfigOut)
def update_config(
    name: str,
    config: ClinicConfigUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(ADMIN_ROLES)),
    tenant_id: str = Depends(get_tenant_id)
):
    return crud_clinic_config.set_value(db, tenant_id, name, config.value, actor)
