"""Tests for the structlog processors."""

import pytest

from ledger_relay.core.logging import deployment_stamps, drop_payload_fields

pytestmark = pytest.mark.unit


def test_payload_fields_omitted():
    event = drop_payload_fields(None, "info", {
        "event": "ledger_delivery_failed",
        "trace_id": "t-1",
        "payload": {"ssn": "123-45-6789"},
        "ui_message": "Hi Jane",
    })

    assert event == {
        "event": "ledger_delivery_failed",
        "trace_id": "t-1",
        "payload": "<omitted>",
        "ui_message": "<omitted>",
    }


def test_deployment_stamps_added_without_overwriting():
    stamp = deployment_stamps("prod", "abc123")

    assert stamp(None, "info", {"event": "x"}) == {"event": "x", "environment": "prod", "release": "abc123"}
    assert stamp(None, "info", {"event": "x", "environment": "override"})["environment"] == "override"


def test_unset_stamps_skipped():
    assert deployment_stamps(None, "")(None, "info", {"event": "x"}) == {"event": "x"}
