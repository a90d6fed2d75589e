import logging


def test_correlation_id_header_present_on_404(client):
    resp = client.get("/this-path-does-not-exist")
    assert resp.status_code == 404
    assert "X-Correlation-ID" in resp.headers


def test_incoming_correlation_id_is_echoed(client):
    resp = client.get("/dashboard", headers={"X-Correlation-ID": "trace-123"})

    assert resp.status_code == 401
    assert resp.headers["X-Correlation-ID"] == "trace-123"


def test_request_line_is_logged_with_status(client, caplog):
    with caplog.at_level(logging.INFO, logger="app.requests"):
        client.get("/dashboard", headers={"X-Correlation-ID": "trace-456"})

    records = [record for record in caplog.records if record.name == "app.requests"]
    assert records
    assert records[-1].status_code == 401
    assert records[-1].correlation_id == "trace-456"
    assert records[-1].method == "GET"


def test_storage_calls_are_logged_as_outbound(image_store, jpeg_bytes, caplog):
    with caplog.at_level(logging.INFO, logger="app.outbound"):
        key = image_store.upload(jpeg_bytes, "u1")

    records = [record for record in caplog.records if record.name == "app.outbound"]
    assert [record.operation for record in records] == ["upload"]
    assert records[0].provider == "minio"
    assert records[0].target == key
    assert records[0].error_code is None
