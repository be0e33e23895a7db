from pathlib import Path

import pytest

from ledger import LedgerStorageError


@pytest.fixture(autouse=True)
def fixed_clock(app, clock):
    app.extensions["recorder"].clock = clock


def login(client, password="secret"):
    return client.post("/login", json={"username": "admin", "password": password})


def save(client, **overrides):
    body = {"studentName": "Asha", "className": "Admission Fee", "amount": 1000}
    body.update(overrides)
    return client.post("/api/transactions", json=body)


def test_save_transaction(client):
    response = save(client)

    assert response.status_code == 201
    data = response.get_json()
    assert data["success"] is True
    assert data["billNumber"] == "2026030001"
    assert data["date"] == "2026-03-14 10:15:00"
    assert isinstance(data["id"], int)


def test_save_with_effective_date_backdates(client):
    data = save(client, effectiveDate="2026-02-20").get_json()
    assert data["billNumber"] == "2026020001"
    assert data["date"] == "2026-02-20 10:15:00"


@pytest.mark.parametrize("body, message", [
    ({"studentName": "  "}, "Student name is required"),
    ({"className": ""}, "Course is required"),
    ({"amount": -5}, "Amount cannot be negative"),
    ({"amount": "abc"}, "Invalid amount provided"),
    ({"amount": 2 ** 63}, "Amount is too large"),
    ({"studentName": 42}, "Student name is required"),
    ({"effectiveDate": "14/03/2026"}, "Invalid effectiveDate: expected YYYY-MM-DD"),
])
def test_save_rejects_invalid_input(client, store, body, message):
    response = save(client, **body)

    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": message}
    assert store.read_all() == []


def test_record_sale_from_catalog(client):
    response = client.post("/api/sales", json={
        "studentName": "Asha",
        "items": [{"courseId": 1}, {"courseId": 10}, {"className": "Admission Fee", "amount": 1000}],
    })

    assert response.status_code == 201
    data = response.get_json()
    assert [line["billNumber"] for line in data["lines"]] == ["2026030001", "2026030002", "2026030003"]
    assert data["billRange"] == "2026030001 - 2026030003"
    assert data["total"] == 7000


def test_record_sale_requires_items(client):
    response = client.post("/api/sales", json={"studentName": "Asha", "items": []})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Please select at least one course"


def test_record_sale_unknown_course(client):
    response = client.post("/api/sales", json={"studentName": "Asha", "items": [{"courseId": 99}]})
    assert response.status_code == 400


@pytest.mark.parametrize("url", ["/api/transactions", "/api/sales"])
@pytest.mark.parametrize("body", [["Asha"], "Asha", 7])
def test_non_object_body_is_rejected(client, store, url, body):
    response = client.post(url, json=body)

    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": "Request body must be a JSON object"}
    assert store.read_all() == []


def test_record_sale_rejects_non_object_item(client, store):
    response = client.post("/api/sales", json={"studentName": "Asha", "items": ["Admission Fee"]})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid cart item"
    assert store.read_all() == []


def test_atomic_sale_rolls_back_every_line(client, store, monkeypatch):
    # every line gets the same number, so the second insert hits the unique constraint
    monkeypatch.setattr("billing.next_bill_number", lambda records, day: "2026030001")

    response = client.post("/api/sales", json={
        "studentName": "Asha",
        "items": [{"courseId": 1}, {"courseId": 10}],
        "atomic": True,
    })

    assert response.status_code == 500
    assert response.get_json()["success"] is False
    assert store.read_all() == []


def test_non_atomic_sale_keeps_lines_before_the_failure(client, store, monkeypatch):
    monkeypatch.setattr("billing.next_bill_number", lambda records, day: "2026030001")

    response = client.post("/api/sales", json={
        "studentName": "Asha",
        "items": [{"courseId": 1}, {"courseId": 10}],
    })

    assert response.status_code == 500
    assert [r.bill_number for r in store.read_all()] == ["2026030001"]


def test_get_transactions_filters_and_sorts(client):
    save(client)
    save(client, studentName="Ravi", className="N5 Japanese", amount=5000)
    save(client, studentName="Kamal", className="N5 Japanese", amount=5000, effectiveDate="2026-02-01")

    everything = client.get("/api/transactions").get_json()
    assert len(everything) == 3

    march = client.get("/api/transactions?month=2026-03&sort=bill_number&order=desc").get_json()
    assert [r["bill_number"] for r in march] == ["2026030002", "2026030001"]

    n5 = client.get("/api/transactions?course=N5%20Japanese&search=ravi").get_json()
    assert [r["student_name"] for r in n5] == ["Ravi"]

    ranged = client.get("/api/transactions?start=2026-02-01&end=2026-02-01").get_json()
    assert [r["student_name"] for r in ranged] == ["Kamal"]


def test_get_transactions_rejects_bad_sort_key(client):
    assert client.get("/api/transactions?sort=price").status_code == 400


def test_delete_requires_admin_login(client, store):
    record_id = save(client).get_json()["id"]

    response = client.delete(f"/api/transactions/{record_id}")

    assert response.status_code == 401
    assert len(store.read_all()) == 1


def test_login_with_wrong_password(client):
    assert login(client, password="nope").status_code == 401


def test_delete_transaction(client, store):
    first = save(client).get_json()
    second = save(client, className="N5 Japanese", amount=5000).get_json()
    login(client)

    response = client.delete(f"/api/transactions/{first['id']}")

    assert response.get_json() == {"success": True}
    [remaining] = store.read_all()
    assert (remaining.id, remaining.bill_number) == (second["id"], second["billNumber"])


def test_delete_missing_transaction(client, store):
    save(client)
    login(client)

    response = client.delete("/api/transactions/4242")

    assert response.status_code == 404
    assert response.get_json()["success"] is False
    assert len(store.read_all()) == 1


def test_bill_numbers_are_not_reused_after_delete_of_earlier_bill(client):
    first = save(client).get_json()
    save(client)
    login(client)
    client.delete(f"/api/transactions/{first['id']}")

    assert save(client).get_json()["billNumber"] == "2026030003"


def test_export(client, app):
    save(client)
    save(client, effectiveDate="2026-04-02")

    response = client.get("/api/transactions/export?start=2026-03-01&end=2026-03-31")

    data = response.get_json()
    assert data["success"] is True
    path = Path(data["filePath"])
    assert path.exists()
    assert path.parent == Path(app.config["EXPORT_DIR"])


def test_export_requires_dates(client):
    response = client.get("/api/transactions/export?start=2026-03-01")
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_revenue(client):
    save(client)
    save(client, className="N5 Japanese", amount=5000)
    save(client)
    save(client, className="N5 Japanese", amount=5000, effectiveDate="2026-05-10")

    monthly = client.get("/api/revenue?year=2026&month=3").get_json()
    assert monthly["period"] == "2026-03"
    assert monthly["summary"] == {
        "total": 7000,
        "count": 3,
        "byCourse": {"Admission Fee": 2000, "N5 Japanese": 5000},
    }
    assert monthly["months"]["2026-05"] == 5000

    yearly = client.get("/api/revenue?year=2026&course=N5%20Japanese").get_json()
    assert yearly["period"] == "2026"
    assert yearly["summary"]["total"] == 10000


def test_revenue_rejects_bad_month(client):
    assert client.get("/api/revenue?year=2026&month=13").status_code == 400


def test_courses(client):
    courses = client.get("/api/courses?q=japanese").get_json()
    assert [c["name"] for c in courses] == ["N5 Japanese", "N4 Japanese"]
    assert len(client.get("/api/courses").get_json()) == 13


def test_storage_failure_is_reported(client, app, monkeypatch):
    def broken():
        raise LedgerStorageError("Cannot read ledger: disk I/O error")

    monkeypatch.setattr(app.extensions["ledger"], "read_all", broken)

    response = save(client)

    assert response.status_code == 500
    assert response.get_json() == {"success": False, "error": "Cannot read ledger: disk I/O error"}
