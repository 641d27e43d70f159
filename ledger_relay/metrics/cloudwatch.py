"""CloudWatch custom metrics for forwarder runs.

All functions are fire-and-forget: they catch exceptions internally and log
warnings via structlog. They NEVER raise or block the caller.

boto3 is synchronous, so calls are dispatched to a ThreadPoolExecutor to avoid
blocking the event loop.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import boto3
import structlog

from ledger_relay.core.config import get_settings
from ledger_relay.schemas.forwarder import ForwardResult

logger = structlog.get_logger(__name__)

NAMESPACE = "LedgerRelay/Forwarder"
BATCH_COUNTERS = ("attempted", "forwarded", "failed", "deadlettered", "contended", "stale")

_cw_client = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cw-metrics")


def _get_client():
    global _cw_client
    if _cw_client is None:
        _cw_client = boto3.client("cloudwatch", region_name=get_settings().metrics_region)
    return _cw_client


def _put_batch_counts(environment: str, counts: dict[str, int]) -> None:
    """Synchronous put_metric_data for one run's counters. Runs in thread pool."""
    now = datetime.now(timezone.utc)
    try:
        _get_client().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[
                {
                    "MetricName": name,
                    "Dimensions": [{"Name": "Environment", "Value": environment}],
                    "Value": float(value),
                    "Unit": "Count",
                    "Timestamp": now,
                }
                for name, value in counts.items()
            ],
        )
    except Exception as e:
        logger.warning("forwarder_metrics_emit_failed", error=str(e))


async def emit_batch_result(result: ForwardResult, environment: str) -> None:
    """Emit run counters. Non-blocking, no-op unless METRICS_ENABLED."""
    if not get_settings().metrics_enabled or result.skipped:
        return
    counts = {name: getattr(result, name) for name in BATCH_COUNTERS}
    loop = asyncio.get_running_loop()
    loop.run_in_executor(_executor, _put_batch_counts, environment, counts)
