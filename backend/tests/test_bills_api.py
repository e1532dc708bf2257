from datetime import timedelta
from decimal import Decimal

import pytest

from utils.timezone import now_local


def bill_payload(**overrides):
    payload = {
        "patient_id": "patient-1",
        "doctor_id": "doctor-1",
        "appointment_id": "appt-1",
        "items": [
            {"description": "Consultation", "quantity": 2, "unit_price": "10.00"},
            {"description": "Dressing", "quantity": 1, "unit_price": "5.00"},
        ],
        "tax_percent": "10",
    }
    payload.update(overrides)
    return payload


def create_item(client, sku="GAUZE", quantity=10, tenant_id="clinic-a"):
    return client.post("/inventory-items/", headers={"X-Tenant-ID": tenant_id}, json={
        "name": "Gauze pad",
        "category": "Consumables",
        "sku": sku,
        "quantity": quantity,
        "min_quantity": 2,
        "unit_price": "0.50",
    }).json()


def test_create_bill_computes_totals(client):
    resp = client.post("/bills/", json=bill_payload())

    assert resp.status_code == 201
    body = resp.json()
    assert body["bill_number"] == "BILL-000001"
    assert body["status"] == "draft"
    assert Decimal(body["subtotal"]) == Decimal("25")
    assert Decimal(body["tax"]) == Decimal("2.5")
    assert Decimal(body["discount"]) == Decimal("0")
    assert Decimal(body["total_amount"]) == Decimal("27.5")
    assert [Decimal(i["total"]) for i in body["items"]] == [Decimal("20"), Decimal("5")]


def test_bill_defaults_come_from_clinic_config(client):
    client.put("/clinic-config/default_tax_percent", json={"value": "18"})
    client.put("/clinic-config/bill_due_days", json={"value": "7"})
    payload = bill_payload(items=[{"description": "Consultation", "unit_price": "100"}])
    del payload["tax_percent"]

    body = client.post("/bills/", json=payload).json()

    assert Decimal(body["tax_percent"]) == Decimal("18")
    assert Decimal(body["total_amount"]) == Decimal("118")
    assert body["due_date"] == str(now_local().date() + timedelta(days=7))


def test_bill_numbers_are_sequential_and_never_reused(client):
    first = client.post("/bills/", json=bill_payload()).json()
    second = client.post("/bills/", json=bill_payload()).json()
    assert (first["bill_number"], second["bill_number"]) == ("BILL-000001", "BILL-000002")

    client.delete(f"/bills/{second['id']}")

    assert client.post("/bills/", json=bill_payload()).json()["bill_number"] == "BILL-000003"


def test_bill_needs_items(client):
    resp = client.post("/bills/", json=bill_payload(items=[]))

    assert resp.status_code == 400


@pytest.mark.parametrize("field, value", [("tax_percent", "120"), ("discount_percent", "-5")])
def test_percentages_must_be_in_range(client, field, value):
    assert client.post("/bills/", json=bill_payload(**{field: value})).status_code == 400


def test_preview_saves_nothing(client):
    resp = client.post("/bills/preview", json={
        "items": [{"description": "X-ray", "quantity": 1, "unit_price": "80.00"}],
        "tax_percent": "5",
        "discount_percent": "10",
    })

    assert resp.status_code == 200
    assert Decimal(resp.json()["total"]) == Decimal("76.00")
    assert client.get("/bills/").json()["bills"] == []


def test_dispensing_draws_down_stock_in_the_same_transaction(client):
    item = create_item(client, quantity=10)
    payload = bill_payload(dispense_stock=True, items=[
        {"description": "Gauze pad", "quantity": 3, "unit_price": "0.50", "inventory_item_id": item["id"]},
        {"description": "Gauze pad (extra)", "quantity": 2, "unit_price": "0.50", "inventory_item_id": item["id"]},
    ])

    bill = client.post("/bills/", json=payload).json()

    assert client.get(f"/inventory-items/{item['id']}").json()["quantity"] == 5
    rows = client.get(f"/inventory-items/{item['id']}/transactions").json()["transactions"]
    dispensed = [r for r in rows if r["type"] == "out"]
    assert sorted(r["quantity"] for r in dispensed) == [-3, -2]
    assert {r["reference"] for r in dispensed} == {bill["bill_number"]}
    check = client.get(f"/inventory-items/{item['id']}/ledger-check").json()
    assert check["consistent"] is True


def test_dispensing_more_than_stock_creates_nothing(client):
    item = create_item(client, quantity=2)
    payload = bill_payload(dispense_stock=True, items=[
        {"description": "Gauze pad", "quantity": 3, "unit_price": "0.50", "inventory_item_id": item["id"]},
    ])

    resp = client.post("/bills/", json=payload)

    assert resp.status_code == 422
    assert client.get(f"/inventory-items/{item['id']}").json()["quantity"] == 2
    assert client.get("/bills/").json()["bills"] == []


def test_linking_without_dispensing_leaves_stock_alone(client):
    item = create_item(client, quantity=4)
    payload = bill_payload(items=[
        {"description": "Gauze pad", "quantity": 3, "unit_price": "0.50", "inventory_item_id": item["id"]},
    ])

    resp = client.post("/bills/", json=payload)

    assert resp.status_code == 201
    assert resp.json()["items"][0]["inventory_item_id"] == item["id"]
    assert client.get(f"/inventory-items/{item['id']}").json()["quantity"] == 4


def test_linking_to_an_unknown_item_is_404(client):
    payload = bill_payload(items=[{"description": "Ghost", "unit_price": "1", "inventory_item_id": 999}])

    assert client.post("/bills/", json=payload).status_code == 404


def test_lines_cannot_link_another_tenants_item(client):
    foreign = create_item(client, sku="B-GAUZE", quantity=0, tenant_id="clinic-b")
    line = {"description": "Gauze pad", "quantity": 1, "unit_price": "0.50", "inventory_item_id": foreign["id"]}

    assert client.post("/bills/", json=bill_payload(items=[line])).status_code == 404

    bill_id = client.post("/bills/", json=bill_payload()).json()["id"]
    for item_id in (foreign["id"], 9999):
        resp = client.patch(f"/bills/{bill_id}", json={"items": [dict(line, inventory_item_id=item_id)]})
        assert resp.status_code == 404
    assert [i["description"] for i in client.get(f"/bills/{bill_id}").json()["items"]] == ["Consultation", "Dressing"]

    # nothing in clinic-a points at it, so clinic-b can still remove it outright
    resp = client.delete(f"/inventory-items/{foreign['id']}", headers={"X-Tenant-ID": "clinic-b"})
    assert resp.json()["retired"] is False


def test_replacement_lines_may_link_own_items(client):
    item = create_item(client, quantity=4)
    bill_id = client.post("/bills/", json=bill_payload()).json()["id"]

    resp = client.patch(f"/bills/{bill_id}", json={"items": [
        {"description": "Gauze pad", "quantity": 2, "unit_price": "0.50", "inventory_item_id": item["id"]},
    ]})

    assert resp.status_code == 200
    assert resp.json()["items"][0]["inventory_item_id"] == item["id"]
    assert client.get(f"/inventory-items/{item['id']}").json()["quantity"] == 4


def test_update_recomputes_totals_and_records_payment(client):
    bill_id = client.post("/bills/", json=bill_payload()).json()["id"]

    resp = client.patch(f"/bills/{bill_id}", json={"discount_percent": "20"})
    assert Decimal(resp.json()["discount"]) == Decimal("5")
    assert Decimal(resp.json()["total_amount"]) == Decimal("22.5")

    resp = client.patch(f"/bills/{bill_id}", json={"status": "paid", "payment_method": "card"})
    assert resp.json()["status"] == "paid"
    assert resp.json()["payment_date"] is not None


def test_update_replaces_items(client):
    bill_id = client.post("/bills/", json=bill_payload()).json()["id"]

    resp = client.patch(f"/bills/{bill_id}", json={"items": [{"description": "Follow-up", "quantity": 1, "unit_price": "40"}]})

    body = resp.json()
    assert [i["description"] for i in body["items"]] == ["Follow-up"]
    assert Decimal(body["subtotal"]) == Decimal("40")
    assert Decimal(body["total_amount"]) == Decimal("44")


def test_items_of_a_dispensing_bill_are_fixed(client):
    item = create_item(client, quantity=10)
    bill = client.post("/bills/", json=bill_payload(dispense_stock=True, items=[
        {"description": "Gauze pad", "quantity": 3, "unit_price": "0.50", "inventory_item_id": item["id"]},
    ])).json()

    resp = client.patch(f"/bills/{bill['id']}", json={"items": [{"description": "Follow-up", "unit_price": "40"}]})

    assert resp.status_code == 422
    assert resp.json()["detail"] == "Items cannot be replaced on a bill that dispensed stock"
    assert [i["description"] for i in client.get(f"/bills/{bill['id']}").json()["items"]] == ["Gauze pad"]
    assert client.get(f"/inventory-items/{item['id']}").json()["quantity"] == 7

    resp = client.patch(f"/bills/{bill['id']}", json={"notes": "Paid at the desk", "status": "paid"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "paid"


def test_deleted_bills_disappear(client):
    keep = client.post("/bills/", json=bill_payload()).json()["id"]
    gone = client.post("/bills/", json=bill_payload()).json()["id"]

    assert client.delete(f"/bills/{gone}").status_code == 204

    assert client.get(f"/bills/{gone}").status_code == 404
    assert [b["id"] for b in client.get("/bills/").json()["bills"]] == [keep]


def test_only_admins_delete_bills(client, login):
    bill_id = client.post("/bills/", json=bill_payload()).json()["id"]
    login("doctor-1", "doctor")

    assert client.delete(f"/bills/{bill_id}").status_code == 403


def test_doctors_bill_in_their_own_name(client, login):
    login("doctor-1", "doctor")

    assert client.post("/bills/", json=bill_payload()).status_code == 201
    assert client.post("/bills/", json=bill_payload(doctor_id="doctor-2")).status_code == 403


def test_patients_cannot_create_bills(client, login):
    login("patient-1", "patient")

    assert client.post("/bills/", json=bill_payload()).status_code == 403


def test_visibility_is_scoped_by_role(client, login):
    mine = client.post("/bills/", json=bill_payload()).json()["id"]
    theirs = client.post("/bills/", json=bill_payload(patient_id="patient-2", doctor_id="doctor-2")).json()["id"]

    login("patient-1", "patient")
    assert [b["id"] for b in client.get("/bills/").json()["bills"]] == [mine]
    assert client.get(f"/bills/{mine}").status_code == 200
    assert client.get(f"/bills/{theirs}").status_code == 403

    login("doctor-2", "doctor")
    assert [b["id"] for b in client.get("/bills/").json()["bills"]] == [theirs]
    assert client.patch(f"/bills/{mine}", json={"notes": "x"}).status_code == 403

    login("admin-1", "admin")
    assert {b["id"] for b in client.get("/bills/").json()["bills"]} == {mine, theirs}


def test_stats_endpoint_for_patient(client, login):
    client.post("/bills/", json=bill_payload())
    client.post("/bills/", json=bill_payload(patient_id="patient-2"))

    login("patient-1", "patient")
    body = client.get("/bills/stats").json()

    assert body["total_bills"] == 1
    assert body["bills_by_status"]["draft"]["count"] == 1
    assert len(body["monthly_trend"]) == 6


def test_bill_audit_history(client, login):
    bill_id = client.post("/bills/", json=bill_payload()).json()["id"]
    client.patch(f"/bills/{bill_id}", json={"discount_percent": "20"})
    client.patch(f"/bills/{bill_id}", json={"status": "sent"})

    history = client.get(f"/bills/{bill_id}/audit").json()

    assert [h["action"] for h in history] == ["UPDATE", "UPDATE"]
    assert Decimal(history[0]["old_values"]["discount"]) == Decimal("0")
    assert Decimal(history[0]["new_values"]["discount"]) == Decimal("5")
    assert history[1]["new_values"]["status"] == "sent"

    login("doctor-1", "doctor")
    assert client.get(f"/bills/{bill_id}/audit").status_code == 403
