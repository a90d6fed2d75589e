from conftest import make_jpeg


def _headers(client):
    client.post("/auth/register", json={"email": "alice@mail.com", "name": "Alice", "password": "correct-horse"})
    resp = client.post("/auth/login", data={"username": "alice@mail.com", "password": "correct-horse"})
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_receipt_id_path_injection_is_not_found(client):
    headers = _headers(client)

    resp = client.get("/receipts/1' OR '1'='1", headers=headers)

    assert resp.status_code == 404


def test_login_email_injection_is_rejected(client):
    resp = client.post("/auth/login", data={"username": "' OR 1=1;--", "password": "x"})

    assert resp.status_code == 422


def test_text_fields_are_stored_verbatim(client):
    headers = _headers(client)
    hostile = "Cafe'); DROP TABLE receipts;--"

    resp = client.post(
        "/receipts",
        headers=headers,
        data={"date": "2024-01-01T00:00:00Z", "location_name": hostile, "amount": "1.00"},
        files={"file": ("receipt.jpg", make_jpeg(), "image/jpeg")},
    )

    assert resp.status_code == 201, resp.text
    receipts = client.get("/receipts", headers=headers).json()
    assert [receipt["location_name"] for receipt in receipts] == [hostile]
