"""Tests for completion verdicts over the divisions of a split order."""
import itertools

import pytest
from sqlalchemy.exc import OperationalError

from orderhub.models.order import OrderStatus
from orderhub.schemas.division import CompletionStatus
from orderhub.services.division_completion_service import (
    DivisionCompletionService,
    ERROR_LABEL,
    NO_DIVISIONS_LABEL,
    build_completion_verdict,
    classify_response,
)


# ─── Pure verdict ──────────────────────────────────────────────────────────────
@pytest.mark.parametrize("response, bucket", [
    ("available", "accepted"),
    ("accepted", "accepted"),
    ("unavailable", "rejected"),
    ("rejected", "rejected"),
    ("pending", "pending"),
    (None, "pending"),
    ("customer_rejected", "pending"),
    ("something-else", "pending"),
])
def test_classify_response(response, bucket):
    assert classify_response(response) == bucket


def test_precedence_for_three_divisions():
    completed = build_completion_verdict(["available", "accepted", "available"])
    assert completed.status == CompletionStatus.COMPLETED
    assert completed.is_complete is True
    assert completed.status_label == "completed — all stores accepted"
    assert completed.completion_percentage == 100

    all_rejected = build_completion_verdict(["unavailable", "rejected", "unavailable"])
    assert all_rejected.status == CompletionStatus.INCOMPLETE
    assert all_rejected.is_complete is False
    assert all_rejected.status_label == "incomplete — all stores rejected"

    mixed = build_completion_verdict(["available", "available", "unavailable"])
    assert mixed.status == CompletionStatus.PARTIALLY_COMPLETED
    assert mixed.status_label == "partially completed — 2 of 3 stores accepted"
    assert mixed.completion_percentage == 67

    waiting = build_completion_verdict(["available", None, "pending"])
    assert waiting.status == CompletionStatus.INCOMPLETE
    assert waiting.pending_divisions == 2
    assert waiting.status_label == "incomplete — 2 stores have not responded yet"


def test_zero_divisions_verdict():
    verdict = build_completion_verdict([])
    assert verdict.total_divisions == 0
    assert verdict.accepted_divisions == 0
    assert verdict.completion_percentage == 0
    assert verdict.status == CompletionStatus.INCOMPLETE
    assert verdict.is_complete is False
    assert verdict.status_label == NO_DIVISIONS_LABEL


def test_counts_always_add_up():
    responses = ["available", "unavailable", "pending", None]
    for size in range(1, 5):
        for combo in itertools.product(responses, repeat=size):
            verdict = build_completion_verdict(combo)
            assert verdict.total_divisions == size
            assert (
                verdict.accepted_divisions + verdict.rejected_divisions + verdict.pending_divisions
                == verdict.total_divisions
            )
            expected = int(100 * verdict.accepted_divisions / size + 0.5)
            assert verdict.completion_percentage == expected
            assert verdict.is_complete == (verdict.status == CompletionStatus.COMPLETED)


def test_half_percent_rounds_up():
    assert build_completion_verdict(["available", "pending"]).completion_percentage == 50
    assert build_completion_verdict(["available"] + ["pending"] * 7).completion_percentage == 13


# ─── Service ───────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_unknown_original_is_not_an_error(db_session):
    service = DivisionCompletionService(db_session)
    verdict = await service.compute_completion("ORD-DOES-NOT-EXIST")
    assert verdict.total_divisions == 0
    assert verdict.status_label == NO_DIVISIONS_LABEL


@pytest.mark.asyncio
async def test_matching_is_anchored(db_session, add_store, add_division):
    store_a = await add_store("Store A")
    store_b = await add_store("Store B")
    await add_division("ORD-1", store=store_a, response="available")
    await add_division("ORD-10", store=store_b, response="unavailable")
    await add_division("ORD-10", store=store_a, response="unavailable", legacy=True)

    service = DivisionCompletionService(db_session)

    short = await service.get_divisions_with_completion("ORD-1")
    assert short.completion.total_divisions == 1
    assert short.completion.status == CompletionStatus.COMPLETED

    longer = await service.compute_completion("ORD-10")
    assert longer.total_divisions == 2
    assert longer.status_label == "incomplete — all stores rejected"


@pytest.mark.asyncio
async def test_legacy_marker_only_divisions_are_found(db_session, add_store, add_division):
    store = await add_store("Store A")
    await add_division("ORD-7", store=store, response="available", legacy=True)
    await add_division("ORD-7", store=None, response=None, legacy=True)

    details = await DivisionCompletionService(db_session).get_divisions_with_completion("ORD-7")
    assert details.completion.total_divisions == 2
    assert details.completion.pending_divisions == 1
    assert {d.store_name for d in details.divisions} == {"Store A", "unknown store"}


@pytest.mark.asyncio
async def test_divisions_and_verdict_share_one_fetch(db_session, add_store, add_division):
    store_a = await add_store("Store A")
    store_b = await add_store("Store B")
    await add_division("ORD-5", store=store_a, response="available")
    await add_division("ORD-5", store=store_b, response="unavailable")

    details = await DivisionCompletionService(db_session).get_divisions_with_completion("ORD-5")
    assert len(details.divisions) == details.completion.total_divisions == 2
    assert details.completion.status == CompletionStatus.PARTIALLY_COMPLETED
    assert details.completion.status_label == "partially completed — 1 of 2 stores accepted"


@pytest.mark.asyncio
async def test_fetch_failure_degrades_to_error_verdict(db_session, monkeypatch):
    async def broken_fetch(self, original_ref):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(DivisionCompletionService, "_fetch_divisions", broken_fetch)

    service = DivisionCompletionService(db_session)
    verdict = await service.compute_completion("ORD-1")
    assert verdict.status_label == ERROR_LABEL
    assert verdict.total_divisions == 0
    assert verdict.is_complete is False

    details = await service.get_divisions_with_completion("ORD-1")
    assert details.divisions == []
    assert details.completion.status_label == ERROR_LABEL


# ─── Original order sync ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_sync_updates_surviving_original(db_session, add_store, add_order, add_division):
    store_a = await add_store("Store A")
    store_b = await add_store("Store B")
    original = await add_order(order_code="ORD-20260101-0003")
    await add_division("ORD-20260101-0003", store=store_a, response="available")
    await add_division("ORD-20260101-0003", store=store_b, response="available")

    service = DivisionCompletionService(db_session)
    synced = await service.sync_original_order("ORD-20260101-0003")

    assert synced is not None
    assert synced.id == original.id
    assert synced.order_status == OrderStatus.ASSIGNED.value
    assert "division sync: completed — all stores accepted" in synced.details

    # Second run has nothing to change
    assert await service.sync_original_order("ORD-20260101-0003") is None


@pytest.mark.asyncio
async def test_sync_marks_original_rejected_when_every_store_declined(db_session, add_store, add_order, add_division):
    store_a = await add_store("Store A")
    original = await add_order(order_code="ORD-20260101-0004", order_status=OrderStatus.ASSIGNED.value)
    await add_division("ORD-20260101-0004", store=store_a, response="unavailable")

    synced = await DivisionCompletionService(db_session).sync_original_order("ORD-20260101-0004")
    assert synced.id == original.id
    assert synced.order_status == OrderStatus.REJECTED.value


@pytest.mark.asyncio
async def test_sync_without_original_is_a_no_op(db_session, add_store, add_division):
    store = await add_store("Store A")
    await add_division("ORD-GONE", store=store, response="available")

    assert await DivisionCompletionService(db_session).sync_original_order("ORD-GONE") is None
