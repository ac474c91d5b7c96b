from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from dental_ledger.db.session import get_db
from dental_ledger.main import app


@pytest.fixture()
def api_client(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _crown_payload(lab_id):
    return {
        "tooth_name": "Lower left first molar",
        "treatment_type": "crown_ceramic",
        "treatment_category": "prosthetic",
        "cost": "500",
        "lab_id": lab_id,
        "lab_cost": "150",
    }


def _create(api_client, patient_id, tooth_number=36, **payload):
    body = {
        "tooth_name": "Lower left first molar",
        "treatment_type": "filling_cosmetic",
        "treatment_category": "restorative",
        "cost": "120",
    }
    body.update(payload)
    response = api_client.post(f"/patients/{patient_id}/teeth/{tooth_number}/treatments", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(api_client):
    response = api_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_returns_report_and_single_notification(api_client, patient, lab):
    response = api_client.post(
        f"/patients/{patient.id}/teeth/36/treatments",
        json=_crown_payload(lab.id),
        headers={"X-Actor": "dr.pop"},
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["report"]["outcome"] == "success"
    assert body["treatment"]["priority"] == 1
    assert Decimal(body["treatment"]["cost"]) == Decimal("500")
    assert body["notifications"] == [{"level": "success", "message": "Treatment added"}]

    treatment_id = body["treatment"]["id"]
    billing = api_client.get(f"/tooth-treatments/{treatment_id}/billing").json()
    assert billing["entry_count"] == 1
    assert billing["status"] == "pending"
    lab_order = api_client.get(f"/tooth-treatments/{treatment_id}/lab-order").json()
    assert Decimal(lab_order["cost"]) == Decimal("150")
    assert lab_order["lab_name"] == "Dental Art Lab"


def test_create_missing_lab_is_unprocessable(api_client, patient, lab):
    payload = _crown_payload(None)

    response = api_client.post(f"/patients/{patient.id}/teeth/36/treatments", json=payload)

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["report"]["outcome"] == "error"
    assert detail["notifications"][0]["level"] == "error"
    assert api_client.get(f"/patients/{patient.id}/tooth-treatments").json() == []


def test_create_for_unknown_patient_is_not_found(api_client):
    response = api_client.post(
        "/patients/4040/teeth/11/treatments",
        json={"tooth_name": "x", "treatment_type": "cleaning", "treatment_category": "preventive"},
    )

    assert response.status_code == 404


def test_reorder_and_move(api_client, patient):
    ids = [_create(api_client, patient.id)["treatment"]["id"] for _ in range(3)]
    base = f"/patients/{patient.id}/teeth/36/treatments"

    response = api_client.put(f"{base}/order", json={"treatment_ids": [ids[2], ids[0], ids[1]]})
    assert response.status_code == 200, response.text
    assert [t["id"] for t in response.json()["treatments"]] == [ids[2], ids[0], ids[1]]

    response = api_client.post(f"{base}/0/move-down")
    assert [t["id"] for t in response.json()["treatments"]] == [ids[0], ids[2], ids[1]]
    assert [t["priority"] for t in response.json()["treatments"]] == [1, 2, 3]

    response = api_client.post(f"{base}/0/move-up")
    assert response.status_code == 200
    assert response.json()["notifications"][0]["level"] == "info"

    response = api_client.put(f"{base}/order", json={"treatment_ids": ids[:2]})
    assert response.status_code == 422


def test_patch_cost_mirrors_billing(api_client, patient):
    treatment_id = _create(api_client, patient.id)["treatment"]["id"]
    api_client.post(f"/tooth-treatments/{treatment_id}/payments", json={"amount": "120"})

    response = api_client.patch(f"/tooth-treatments/{treatment_id}", json={"cost": "80"})

    assert response.status_code == 200, response.text
    assert response.json()["report"]["outcome"] == "success"
    billing = api_client.get(f"/tooth-treatments/{treatment_id}/billing").json()
    assert billing["status"] == "completed"
    assert {entry["status"] for entry in billing["entries"]} == {"completed"}
    assert {Decimal(entry["remaining_balance"]) for entry in billing["entries"]} == {Decimal("0")}


def test_payment_endpoint(api_client, patient):
    treatment_id = _create(api_client, patient.id)["treatment"]["id"]

    response = api_client.post(
        f"/tooth-treatments/{treatment_id}/payments",
        json={"amount": "20", "payment_method": "bank_transfer"},
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["billing"]["status"] == "partial"
    assert Decimal(body["billing"]["remaining_balance"]) == Decimal("100")

    response = api_client.post(f"/tooth-treatments/{treatment_id}/payments", json={"amount": "0"})
    assert response.status_code == 422


def test_delete_detaches_billing(api_client, patient):
    treatment_id = _create(api_client, patient.id)["treatment"]["id"]

    response = api_client.delete(f"/tooth-treatments/{treatment_id}")

    assert response.status_code == 200
    assert response.json()["treatment"] is None
    assert api_client.get(f"/tooth-treatments/{treatment_id}").status_code == 404
    assert api_client.delete(f"/tooth-treatments/{treatment_id}").status_code == 404


def test_session_routes(api_client, patient):
    treatment_id = _create(api_client, patient.id)["treatment"]["id"]
    base = f"/tooth-treatments/{treatment_id}/sessions"

    created = api_client.post(
        base,
        json={"session_type": "visit", "session_title": "First visit", "session_date": "2026-05-04"},
    )
    assert created.status_code == 201, created.text
    session_id = created.json()["id"]
    assert created.json()["session_number"] == 1

    patched = api_client.patch(f"{base}/{session_id}", json={"session_status": "completed"})
    assert patched.json()["session_status"] == "completed"

    assert api_client.delete(f"{base}/{session_id}").status_code == 204
    assert api_client.get(base).json() == []
    assert api_client.get("/tooth-treatments/999/sessions").status_code == 404


def test_relink_and_sweep(api_client, patient):
    treatment_id = _create(api_client, patient.id)["treatment"]["id"]

    relink = api_client.post(f"/tooth-treatments/{treatment_id}/lab-order/relink")
    assert relink.status_code == 200
    assert relink.json()["notifications"][0]["level"] == "info"

    sweep = api_client.post("/reconciliation/sweep")
    assert sweep.status_code == 200
    assert sweep.json()["billing_rows"] == 0
    assert sweep.json()["lab_orders"] == 0
