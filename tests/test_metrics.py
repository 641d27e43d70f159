"""Tests for CloudWatch batch metrics (boto3 client mocked)."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from ledger_relay.core.config import Settings
from ledger_relay.metrics import cloudwatch
from ledger_relay.schemas.forwarder import ForwardResult

pytestmark = pytest.mark.unit


def test_put_batch_counts_sends_one_datum_per_counter():
    client = MagicMock()

    with patch.object(cloudwatch, "_get_client", return_value=client):
        cloudwatch._put_batch_counts("prod", {"forwarded": 3, "failed": 1})

    kwargs = client.put_metric_data.call_args.kwargs
    assert kwargs["Namespace"] == cloudwatch.NAMESPACE
    data = {d["MetricName"]: d for d in kwargs["MetricData"]}
    assert data["forwarded"]["Value"] == 3.0
    assert data["failed"]["Dimensions"] == [{"Name": "Environment", "Value": "prod"}]


def test_put_batch_counts_swallows_client_errors():
    client = MagicMock()
    client.put_metric_data.side_effect = RuntimeError("throttled")

    with patch.object(cloudwatch, "_get_client", return_value=client):
        cloudwatch._put_batch_counts("prod", {"forwarded": 1})


async def test_emit_disabled_is_noop():
    with patch.object(cloudwatch, "get_settings", return_value=Settings(metrics_enabled=False)), \
         patch.object(cloudwatch, "_put_batch_counts") as put:
        await cloudwatch.emit_batch_result(ForwardResult(forwarded=2), "prod")

    put.assert_not_called()


async def test_emit_skips_skipped_runs():
    with patch.object(cloudwatch, "get_settings", return_value=Settings(metrics_enabled=True)), \
         patch.object(cloudwatch, "_put_batch_counts") as put:
        await cloudwatch.emit_batch_result(ForwardResult(skipped=True, reason="telemetry_disabled"), "prod")

    put.assert_not_called()


async def test_emit_dispatches_all_counters():
    result = ForwardResult(attempted=4, forwarded=2, failed=2, deadlettered=1, contended=1)

    with patch.object(cloudwatch, "get_settings", return_value=Settings(metrics_enabled=True)), \
         patch.object(cloudwatch, "_put_batch_counts") as put:
        await cloudwatch.emit_batch_result(result, "prod")
        # Let the executor pick up the job
        for _ in range(50):
            if put.called:
                break
            await asyncio.sleep(0.01)

    put.assert_called_once_with(
        "prod",
        {"attempted": 4, "forwarded": 2, "failed": 2, "deadlettered": 1, "contended": 1, "stale": 0},
    )
