from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from crud import clinic_config as crud_clinic_config
from crud.audit_log import get_audit_logs
from exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from models.clinic_config import ClinicConfig

TENANT_ID = "clinic-a"


def test_defaults_apply_until_overridden(db_session, admin):
    assert crud_clinic_config.get_value(db_session, TENANT_ID, "default_min_quantity") == 10
    assert crud_clinic_config.get_value(db_session, TENANT_ID, "default_tax_percent") == Decimal("0")

    crud_clinic_config.set_value(db_session, TENANT_ID, "default_tax_percent", " 12.5 ", admin)

    assert crud_clinic_config.get_value(db_session, TENANT_ID, "default_tax_percent") == Decimal("12.5")
    assert crud_clinic_config.get_value(db_session, "clinic-b", "default_tax_percent") == Decimal("0")


def test_changes_are_audited(db_session, admin):
    first = crud_clinic_config.set_value(db_session, TENANT_ID, "bill_due_days", "14", admin)
    crud_clinic_config.set_value(db_session, TENANT_ID, "bill_due_days", "21", admin)

    configs = {c.name: c for c in crud_clinic_config.get_configs(db_session, TENANT_ID)}
    assert configs["bill_due_days"].value == "21"
    assert configs["bill_due_days"].is_default is False
    assert configs["default_min_quantity"].is_default is True

    logs = get_audit_logs(db_session, TENANT_ID, "clinic_config", str(_row_id(db_session)))
    assert [l.action for l in logs] == ["CREATE", "UPDATE"]
    assert logs[1].old_values["value"] == "14"
    assert logs[1].new_values["value"] == "21"
    assert first.updated_by == admin.id


def _row_id(db):
    return db.query(ClinicConfig.id).filter(ClinicConfig.name == "bill_due_days").scalar()


@pytest.mark.parametrize("name, value", [
    ("default_min_quantity", "-1"),
    ("default_min_quantity", "ten"),
    ("bill_due_days", "2.5"),
    ("default_tax_percent", "101"),
    ("default_tax_percent", "abc"),
])
def test_invalid_values_are_rejected(db_session, admin, name, value):
    with pytest.raises(ValidationError):
        crud_clinic_config.set_value(db_session, TENANT_ID, name, value, admin)


def test_unknown_setting(db_session, admin):
    with pytest.raises(NotFoundError):
        crud_clinic_config.set_value(db_session, TENANT_ID, "currency", "INR", admin)
    with pytest.raises(NotFoundError):
        crud_clinic_config.get_value(db_session, TENANT_ID, "currency")


def test_concurrent_first_write_is_a_conflict(db_session, session_factory, admin, monkeypatch):
    other = session_factory()
    try:
        crud_clinic_config.set_value(other, TENANT_ID, "bill_due_days", "21", admin)
    finally:
        other.close()

    # this request looked the setting up before the other one committed
    monkeypatch.setattr(crud_clinic_config, "_get_row", lambda db, tenant_id, name: None)
    with pytest.raises(ConflictError):
        crud_clinic_config.set_value(db_session, TENANT_ID, "bill_due_days", "14", admin)

    monkeypatch.undo()
    assert crud_clinic_config.get_value(db_session, TENANT_ID, "bill_due_days") == 21
    assert db_session.query(ClinicConfig).count() == 1


def test_store_failure_is_reported(db_session, admin, monkeypatch):
    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db_session, "commit", broken_commit)
    with pytest.raises(PersistenceError):
        crud_clinic_config.set_value(db_session, TENANT_ID, "default_min_quantity", "4", admin)


def test_config_endpoints(client, login):
    resp = client.put("/clinic-config/default_min_quantity", json={"value": "5"})
    assert resp.status_code == 200
    assert resp.json()["value"] == "5"

    login("doctor-1", "doctor")
    listed = {c["name"]: c["value"] for c in client.get("/clinic-config/").json()}
    assert listed == {"default_min_quantity": "5", "default_tax_percent": "0", "bill_due_days": "30"}
    assert client.put("/clinic-config/default_min_quantity", json={"value": "6"}).status_code == 403


def test_bad_value_over_http(client):
    resp = client.put("/clinic-config/default_tax_percent", json={"value": "250"})

    assert resp.status_code == 400
    assert "between 0 and 100" in resp.json()["detail"]
