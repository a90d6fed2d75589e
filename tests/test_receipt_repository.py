import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.repositories.receipt import ReceiptRepository
from app.services.exceptions import AmountParseError, ReceiptNotFoundError


@pytest.fixture
def repo(db_env, image_store):
    db = db_env.session_factory()
    yield ReceiptRepository(db, image_store, db_env.change_feed)
    db.close()


class Recorder:
    def __init__(self):
        self.deliveries = []
        self.loading = []

    def on_update(self, receipts):
        self.deliveries.append(receipts)

    def on_loading_change(self, is_loading):
        self.loading.append(is_loading)

    @property
    def latest(self):
        return self.deliveries[-1]


def _add(repo, uid, date, amount, bucket_ref="u1/2024-01-01T00:00:00Z.jpg", items=("coffee",)):
    receipt = repo.add(uid, date, "Cafe", "1 Main St", list(items), amount, bucket_ref)
    repo.db.commit()
    return receipt


def test_subscribe_delivers_empty_list_and_finishes_loading_once(repo):
    recorder = Recorder()

    unsubscribe = repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)
    _add(repo, "u1", datetime(2024, 1, 1, tzinfo=timezone.utc), "1.00")

    assert recorder.deliveries[0] == []
    assert recorder.loading == [False]
    unsubscribe()


def test_committed_add_is_delivered_with_fields_and_image_url(repo, image_store, jpeg_bytes):
    recorder = Recorder()
    repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)
    key = image_store.upload(jpeg_bytes, "u1")

    _add(repo, "u1", datetime(2024, 1, 1), "12.50", bucket_ref=key)

    assert len(recorder.latest) == 1
    receipt = recorder.latest[0]
    assert receipt.uid == "u1"
    assert receipt.date == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert receipt.location_name == "Cafe"
    assert receipt.address == "1 Main St"
    assert receipt.items == ["coffee"]
    assert receipt.amount == Decimal("12.50")
    assert receipt.image_bucket == key
    assert receipt.image_url.startswith(f"http://minio.test/receipts/{key}")


def test_delivery_is_ordered_newest_first(repo):
    recorder = Recorder()
    repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)

    for day in (3, 1, 5, 2):
        _add(repo, "u1", datetime(2024, 1, day, tzinfo=timezone.utc), "1.00")

    dates = [receipt.date.day for receipt in recorder.latest]
    assert dates == [5, 3, 2, 1]


def test_writes_in_one_transaction_coalesce_into_one_delivery(repo):
    recorder = Recorder()
    repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)

    repo.add("u1", datetime(2024, 1, 1), "", "", [], "1.00", "u1/a.jpg")
    repo.add("u1", datetime(2024, 1, 2), "", "", [], "2.00", "u1/b.jpg")
    repo.db.commit()

    assert len(recorder.deliveries) == 2
    assert len(recorder.latest) == 2


def test_rolled_back_write_is_not_delivered(repo):
    recorder = Recorder()
    repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)

    repo.add("u1", datetime(2024, 1, 1), "", "", [], "1.00", "u1/a.jpg")
    repo.db.rollback()

    assert len(recorder.deliveries) == 1
    assert recorder.latest == []


def test_other_users_writes_are_not_delivered(repo):
    recorder = Recorder()
    repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)

    _add(repo, "u2", datetime(2024, 1, 1), "9.99", bucket_ref="u2/a.jpg")

    assert len(recorder.deliveries) == 1
    assert recorder.latest == []


def test_unsubscribe_stops_deliveries_and_is_idempotent(repo, db_env, caplog):
    recorder = Recorder()
    unsubscribe = repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)

    unsubscribe()
    _add(repo, "u1", datetime(2024, 1, 1), "1.00")

    assert len(recorder.deliveries) == 1
    assert db_env.change_feed.listener_count("u1") == 0

    with caplog.at_level(logging.WARNING):
        unsubscribe()
    assert "disposed twice" in caplog.text


def test_failing_listener_does_not_fail_the_writer(repo, db_env):
    def _broken():
        raise RuntimeError("listener exploded")

    recorder = Recorder()
    db_env.change_feed.listen("u1", _broken)
    repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)

    _add(repo, "u1", datetime(2024, 1, 1), "3.00")

    assert len(recorder.latest) == 1


def test_dangling_image_reference_keeps_receipt_without_url(repo):
    recorder = Recorder()
    repo.subscribe("u1", recorder.on_update, recorder.on_loading_change)

    _add(repo, "u1", datetime(2024, 1, 1), "4.00", bucket_ref="u1/missing.jpg")

    assert len(recorder.latest) == 1
    assert recorder.latest[0].image_url is None


def test_update_overwrites_every_field(repo):
    receipt = _add(repo, "u1", datetime(2024, 1, 1), "12.50")

    repo.update_receipt(
        receipt.id, "u1", datetime(2024, 2, 2), "Bakery", "2 High St", ["bread"], "20.00", "u1/new.jpg"
    )
    repo.db.commit()

    stored = repo.get_by_id_and_user(receipt.id, "u1")
    assert stored.location_name == "Bakery"
    assert stored.address == "2 High St"
    assert stored.items == ["bread"]
    assert Decimal(str(stored.amount)) == Decimal("20.00")
    assert stored.image_bucket == "u1/new.jpg"


def test_update_of_unknown_receipt_raises_not_found(repo):
    with pytest.raises(ReceiptNotFoundError):
        repo.update_receipt("missing", "u1", datetime(2024, 1, 1), "", "", [], "1.00", "u1/a.jpg")


def test_delete_of_unknown_receipt_raises_not_found(repo):
    with pytest.raises(ReceiptNotFoundError):
        repo.delete_receipt("missing")


def test_add_rejects_unparseable_amount(repo):
    with pytest.raises(AmountParseError):
        repo.add("u1", datetime(2024, 1, 1), "", "", [], "twelve", "u1/a.jpg")


def test_sum_spent_is_per_user_and_zero_when_empty(repo):
    assert repo.sum_spent("u1") == Decimal("0.00")

    _add(repo, "u1", datetime(2024, 1, 1), "12.50")
    _add(repo, "u1", datetime(2024, 1, 2), "0.25")
    _add(repo, "u2", datetime(2024, 1, 3), "100.00", bucket_ref="u2/a.jpg")

    assert repo.sum_spent("u1") == Decimal("12.75")
    assert repo.sum_spent("u2") == Decimal("100.00")
