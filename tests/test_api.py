from datetime import timedelta
from decimal import Decimal


def _invoice(client, today, subtotal="1000.00", **extra):
    body = {
        "client_name": "Acme Corp",
        "subtotal": subtotal,
        "due_date": (today + timedelta(days=30)).isoformat(),
        **extra,
    }
    res = client.post("/invoices/", json=body)
    assert res.status_code == 201, res.text
    return res.json()


def _payment(client, today, amount="500.00", **extra):
    body = {"amount": amount, "payment_date": today.isoformat(), "method": "ach", **extra}
    res = client.post("/payments/", json=body)
    assert res.status_code == 201, res.text
    return res.json()


def test_health_check(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_link_then_unmatch(client, today):
    invoice = _invoice(client, today)
    payment = _payment(client, today, "400.00")

    res = client.post("/payments/link", json={"payment_id": payment["id"], "invoice_id": invoice["id"], "amount": "400.00"})
    assert res.status_code == 201, res.text
    allocation = res.json()
    assert allocation["invoice"]["status"] == "partial"

    body = client.get(f"/invoices/{invoice['id']}").json()
    assert Decimal(body["paid_amount"]) == Decimal("400.00")

    res = client.delete(f"/payments/{payment['id']}/match/{allocation['id']}")
    assert res.status_code == 200
    assert res.json()["status"] == "pending"


def test_over_allocation_renders_error_body(client, today):
    x = _invoice(client, today)
    y = _invoice(client, today)
    payment = _payment(client, today, "500.00")
    client.post("/payments/link", json={"payment_id": payment["id"], "invoice_id": x["id"], "amount": "500.00"})

    res = client.post("/payments/link", json={"payment_id": payment["id"], "invoice_id": y["id"], "amount": "1.00"})

    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "over_allocation"
    assert body["retryable"] is False
    assert Decimal(body["available"]) == Decimal("0")
    assert Decimal(body["requested"]) == Decimal("1.00")


def test_error_codes(client, today):
    invoice = _invoice(client, today)
    bound = _payment(client, today, "100.00", invoice_id=invoice["id"])

    res = client.get("/payments/999")
    assert res.status_code == 404
    assert res.json()["error"] == "not_found"

    res = client.post("/payments/link", json={"payment_id": bound["id"], "invoice_id": invoice["id"], "amount": "10.00"})
    assert res.status_code == 409
    assert res.json()["error"] == "already_directly_bound"

    res = client.post(f"/invoices/{invoice['id']}/layaway-plan", json={"months": 3})
    assert res.status_code == 400
    assert res.json()["error"] == "not_layaway"


def test_batch_match_endpoint(client, today):
    a = _invoice(client, today, "300.00")
    b = _invoice(client, today, "200.00")
    payment = _payment(client, today, "500.00")

    res = client.post(
        f"/payments/{payment['id']}/match",
        json={"matches": [{"invoice_id": a["id"], "amount": "300.00"}, {"invoice_id": b["id"], "amount": "200.00"}]},
    )

    assert res.status_code == 201, res.text
    assert len(res.json()) == 2
    assert client.get(f"/payments/{payment['id']}").json()["is_matched"] is True
    assert client.get("/payments/unmatched").json()["summary"]["count"] == 0


def test_empty_batch_is_rejected(client, today):
    payment = _payment(client, today)
    res = client.post(f"/payments/{payment['id']}/match", json={"matches": []})
    assert res.status_code == 422


def test_suggestions_endpoint(client, today):
    _invoice(client, today, "1000.00")
    target = _invoice(client, today, "250.00")
    payment = _payment(client, today, "250.00")

    res = client.get(f"/payments/{payment['id']}/suggestions")

    assert res.status_code == 200
    body = res.json()
    assert body["suggestions"][0]["invoice"]["id"] == target["id"]
    assert body["suggestions"][0]["confidence"] == 95
    assert body["suggestions"][0]["reason"] == "Exact amount match"


def test_unmatched_payments(client, today):
    invoice = _invoice(client, today)
    _payment(client, today, "100.00", invoice_id=invoice["id"])
    loose = _payment(client, today, "250.00")

    body = client.get("/payments/unmatched").json()

    assert [p["id"] for p in body["payments"]] == [loose["id"]]
    assert Decimal(body["summary"]["total_unallocated"]) == Decimal("250.00")


def test_delete_payment_recomputes_invoice(client, today):
    invoice = _invoice(client, today)
    payment = _payment(client, today, "1000.00", invoice_id=invoice["id"])
    assert client.get(f"/invoices/{invoice['id']}").json()["status"] == "paid"

    assert client.delete(f"/payments/{payment['id']}").status_code == 204

    assert client.get(f"/invoices/{invoice['id']}").json()["status"] == "pending"


def test_customer_crud(client, today):
    res = client.post("/customers/", json={"name": "Globex", "email": "billing@globex.com"})
    assert res.status_code == 201
    customer = res.json()
    _invoice(client, today, "500.00", customer_id=customer["id"])

    detail = client.get(f"/customers/{customer['id']}").json()
    assert detail["stats"]["invoice_count"] == 1
    assert detail["stats"]["health_score"] == "red"

    res = client.put(f"/customers/{customer['id']}", json={"name": "Globex Corp"})
    assert res.json()["name"] == "Globex Corp"

    listing = client.get("/customers/", params={"sort": "name"}).json()
    assert [c["name"] for c in listing["customers"]] == ["Globex Corp"]

    assert client.delete(f"/customers/{customer['id']}").status_code == 204
    assert client.get(f"/customers/{customer['id']}").status_code == 404


def test_invalid_email_is_rejected(client):
    res = client.post("/customers/", json={"name": "Globex", "email": "not-an-email"})
    assert res.status_code == 422


def test_layaway_flow(client, today):
    invoice = _invoice(client, today, "300.00", is_layaway=True)
    preview = client.get(
        f"/invoices/{invoice['id']}/layaway-plan/preview",
        params={"months": 3, "first_due_date": today.isoformat()},
    ).json()
    assert sum(Decimal(entry["amount"]) for entry in preview) == Decimal("300.00")

    res = client.post(
        f"/invoices/{invoice['id']}/layaway-plan",
        json={"months": 3, "installments": preview},
    )
    assert res.status_code == 201, res.text
    plan = res.json()

    installment = plan["installments"][0]
    res = client.patch(f"/layaway/installments/{installment['id']}", json={"paid": True})
    assert res.status_code == 200
    assert res.json()["is_paid"] is True
    assert Decimal(client.get(f"/invoices/{invoice['id']}").json()["paid_amount"]) == Decimal("0")

    res = client.post(f"/invoices/{invoice['id']}/layaway-plan", json={"months": 3})
    assert res.status_code == 409
    assert res.json()["error"] == "conflict"

    res = client.patch(f"/invoices/{invoice['id']}/layaway-plan", json={"is_cancelled": True})
    assert res.json()["is_cancelled"] is True


def test_past_due_endpoint(client, today):
    _invoice(client, today, "100.00", due_date=(today - timedelta(days=5)).isoformat())

    body = client.get("/invoices/past-due").json()

    assert body["total"] == 1
    assert body["items"][0]["aging_bucket"] == "current"


def test_patch_with_null_money_or_date_is_rejected(client, today):
    invoice = _invoice(client, today, "100.00", tax="5.00")

    for body in ({"subtotal": None}, {"due_date": None}, {"client_name": None}, {"tax": "-5.00"}):
        res = client.patch(f"/invoices/{invoice['id']}", json=body)
        assert res.status_code == 422, body

    unchanged = client.get(f"/invoices/{invoice['id']}").json()
    assert Decimal(unchanged["amount"]) == Decimal("105.00")
    assert Decimal(unchanged["subtotal"]) == Decimal("100.00")
    assert unchanged["due_date"] == invoice["due_date"]
