"""Tests for the in-memory backend client."""

from datetime import datetime, timedelta, timezone

import pytest

from oona.models import ChangeEventType, ORDERS_TABLE
from oona.services.backend import BUCKET_NOT_FOUND, Filter, MockBackendService


def test_filter_rejects_unknown_operator():
    with pytest.raises(ValueError):
        Filter("status", "like", "pend%")


def test_filter_wire_value_serializes_datetimes():
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert Filter("created_at", "gte", moment).wire_value == "2024-01-02T03:04:05+00:00"


async def test_insert_assigns_id_and_timestamps(backend):
    result = await backend.insert(ORDERS_TABLE, [{"table_number": 3, "total": 10}])

    row = result.data[0]
    assert row["id"]
    assert row["created_at"] == row["updated_at"]


async def test_filters_and_ordering(backend):
    await backend.insert(ORDERS_TABLE, [
        {"table_number": 1, "total": 10, "status": "pending"},
        {"table_number": 2, "total": 30, "status": "accepted"},
        {"table_number": 3, "total": 20, "status": "pending"},
    ])

    result = await backend.select(
        ORDERS_TABLE,
        columns="table_number",
        filters=[Filter("status", "eq", "pending")],
        order_by="total",
        ascending=False,
    )
    assert result.data == [{"table_number": 3}, {"table_number": 1}]

    result = await backend.select(ORDERS_TABLE, filters=[Filter("table_number", "in", [1, 2])])
    assert len(result.data) == 2

    result = await backend.count(ORDERS_TABLE, [Filter("total", "gte", 20)])
    assert result.count == 2


async def test_null_never_matches(backend):
    await backend.insert(ORDERS_TABLE, [{"table_number": 1, "customer_notes": None}])

    result = await backend.select(ORDERS_TABLE, filters=[Filter("customer_notes", "neq", "x")])
    assert result.data == []


async def test_datetime_filters_compare_instants(backend):
    await backend.insert(ORDERS_TABLE, [{"table_number": 1}])

    since = datetime.now(timezone.utc) - timedelta(minutes=1)
    assert (await backend.count(ORDERS_TABLE, [Filter("created_at", "gte", since)])).count == 1
    later = datetime.now(timezone.utc) + timedelta(minutes=1)
    assert (await backend.count(ORDERS_TABLE, [Filter("created_at", "gte", later)])).count == 0


async def test_update_returns_only_matched_rows(backend):
    inserted = await backend.insert(ORDERS_TABLE, [{"table_number": 1, "status": "pending"}])
    order_id = inserted.data[0]["id"]

    missed = await backend.update(
        ORDERS_TABLE, {"status": "completed"},
        [Filter("id", "eq", order_id), Filter("status", "eq", "accepted")],
    )
    assert missed.success and missed.data == []

    hit = await backend.update(
        ORDERS_TABLE, {"status": "accepted"},
        [Filter("id", "eq", order_id), Filter("status", "eq", "pending")],
    )
    assert hit.data[0]["status"] == "accepted"


async def test_change_notifications_are_delivered_after_the_call(backend):
    events = []
    subscription = await backend.subscribe(ORDERS_TABLE, events.append)

    result = await backend.insert(ORDERS_TABLE, [{"table_number": 4}])
    assert events == []

    await backend.wait_for_deliveries()
    assert [e.event_type for e in events] == [ChangeEventType.INSERT]
    assert events[0].new["id"] == result.data[0]["id"]

    await backend.delete(ORDERS_TABLE, [Filter("table_number", "eq", 4)])
    await backend.wait_for_deliveries()
    assert events[-1].event_type == ChangeEventType.DELETE

    await subscription.unsubscribe()
    assert not subscription.active
    await backend.insert(ORDERS_TABLE, [{"table_number": 5}])
    await backend.wait_for_deliveries()
    assert len(events) == 2


async def test_failing_callback_does_not_break_delivery(backend):
    received = []

    def broken(event):
        raise RuntimeError("boom")

    await backend.subscribe(ORDERS_TABLE, broken)
    await backend.subscribe(ORDERS_TABLE, received.append)
    await backend.insert(ORDERS_TABLE, [{"table_number": 1}])
    await backend.wait_for_deliveries()

    assert len(received) == 1


async def test_bucket_policy_is_enforced(backend):
    missing = await backend.upload("photos", "a.png", b"x", "image/png")
    assert missing.error_code == BUCKET_NOT_FOUND

    await backend.create_bucket("photos", public=True, allowed_mime_types=["image/*"], file_size_limit=4)

    assert (await backend.upload("photos", "a.txt", b"x", "text/plain")).error_code == "invalid_mime_type"
    assert (await backend.upload("photos", "a.png", b"12345", "image/png")).error_code == "payload_too_large"
    assert (await backend.upload("photos", "a.png", b"1234", "image/png")).success
    assert (await backend.upload("photos", "a.png", b"1234", "image/png")).error_code == "duplicate"
    assert (await backend.create_bucket("photos", True, ["image/*"], 4)).error_code == "duplicate"


async def test_private_bucket_is_not_downloadable(backend):
    await backend.create_bucket("private", public=False, allowed_mime_types=[], file_size_limit=100)
    await backend.upload("private", "doc", b"secret", "text/plain")

    assert not (await backend.download("private", "doc")).success


async def test_simulated_failures_are_tagged_results():
    backend = MockBackendService(failure_rate=1.0)

    result = await backend.select(ORDERS_TABLE)
    assert not result.success
    assert result.error_code == "service_unavailable"

    assert not (await backend.insert(ORDERS_TABLE, [{"table_number": 1}])).success


async def test_health_check(backend):
    assert await backend.health_check()
    assert backend.provider_name == "mock"
