"""Tests for recording delivery outcomes against a claimed row."""

from datetime import timedelta

import pytest

from ledger_relay.forwarder.claims import ClaimManager
from ledger_relay.forwarder.outcome import Outcome, OutcomeRecorder
from tests.conftest import NOW

pytestmark = pytest.mark.integration


@pytest.fixture
def claims(session_factory) -> ClaimManager:
    return ClaimManager(session_factory)


@pytest.fixture
def recorder(session_factory) -> OutcomeRecorder:
    return OutcomeRecorder(session_factory, max_attempts=3)


async def test_success_marks_forwarded_and_clears_lease(claims, recorder, insert_event, fetch_event):
    event_id = await insert_event()
    row = await claims.claim(event_id, "claim-a", NOW)

    outcome = await recorder.record_success(row, "claim-a", NOW)

    assert outcome is Outcome.FORWARDED
    stored = await fetch_event(event_id)
    assert stored.forwarded_at is not None
    assert stored.claimed_at is None
    assert stored.claim_id is None
    assert stored.deadletter_at is None


async def test_failure_releases_lease_for_retry(claims, recorder, insert_event, fetch_event):
    event_id = await insert_event()
    row = await claims.claim(event_id, "claim-a", NOW)

    outcome = await recorder.record_failure(row, "claim-a", "HTTP 503", NOW)

    assert outcome is Outcome.RETRY
    stored = await fetch_event(event_id)
    assert stored.forward_error == "HTTP 503"
    assert stored.claimed_at is None
    assert stored.claim_id is None
    assert stored.deadletter_at is None
    assert stored.forwarded_at is None
    assert [c.id for c in await claims.select_candidates(10)] == [event_id]


async def test_failure_on_last_attempt_deadletters(claims, recorder, insert_event, fetch_event):
    event_id = await insert_event(attempts=2)
    row = await claims.claim(event_id, "claim-a", NOW)
    assert row.attempts == 3

    outcome = await recorder.record_failure(row, "claim-a", "timeout after 2.0s", NOW)

    assert outcome is Outcome.DEADLETTERED
    stored = await fetch_event(event_id)
    assert stored.deadletter_at is not None
    assert stored.forwarded_at is None
    assert stored.attempts >= recorder.max_attempts
    assert await claims.select_candidates(10) == []


async def test_forward_error_truncated(claims, recorder, insert_event, fetch_event):
    event_id = await insert_event()
    row = await claims.claim(event_id, "claim-a", NOW)

    await recorder.record_failure(row, "claim-a", "x" * 1000, NOW)

    assert len((await fetch_event(event_id)).forward_error) == 200


async def test_late_outcome_from_reclaimed_lease_is_noop(claims, recorder, insert_event, fetch_event):
    event_id = await insert_event()
    slow_row = await claims.claim(event_id, "slow-worker", NOW - timedelta(minutes=10))

    # Lease expires, another worker reclaims and claims the row
    await claims.reclaim_stale(NOW, timedelta(minutes=5))
    await claims.claim(event_id, "new-worker", NOW)

    outcome = await recorder.record_success(slow_row, "slow-worker", NOW)

    assert outcome is Outcome.STALE
    stored = await fetch_event(event_id)
    assert stored.forwarded_at is None
    assert stored.claim_id == "new-worker"
    assert stored.attempts == 2


async def test_late_failure_after_reclaim_does_not_deadletter(claims, recorder, insert_event, fetch_event):
    event_id = await insert_event(attempts=2)
    slow_row = await claims.claim(event_id, "slow-worker", NOW - timedelta(minutes=10))
    await claims.reclaim_stale(NOW, timedelta(minutes=5))

    outcome = await recorder.record_failure(slow_row, "slow-worker", "HTTP 500", NOW)

    assert outcome is Outcome.STALE
    stored = await fetch_event(event_id)
    assert stored.deadletter_at is None
    assert stored.forward_error is None
