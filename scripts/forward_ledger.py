"""Run one ledger forwarding batch from the command line.

Usage:
    python -m scripts.forward_ledger --max 100

Prints the run result as JSON. Exits 1 when the run reports ok=false so a
cron wrapper can alert on it; a skipped run (telemetry off) exits 0.
"""

import argparse
import asyncio
import sys

from ledger_relay.core.config import ForwarderConfig, get_settings
from ledger_relay.core.logging import configure_structlog

_settings = get_settings()
configure_structlog(
    json_logs=not _settings.debug,
    environment=_settings.relay_env,
    release=_settings.relay_release or None,
)

from ledger_relay.db import close_db, init_db  # noqa: E402
from ledger_relay.forwarder import LogNotifier, forward_ledger_batch  # noqa: E402
from ledger_relay.metrics.cloudwatch import emit_batch_result  # noqa: E402
from ledger_relay.schemas.forwarder import ForwardResult  # noqa: E402


async def main(max_records: int | None) -> ForwardResult:
    config = ForwarderConfig.from_settings(get_settings())

    session_factory = await init_db()
    try:
        result = await forward_ledger_batch(
            session_factory,
            config,
            max_records=max_records,
            notifier=LogNotifier(),
        )
        await emit_batch_result(result, config.environment)
    finally:
        await close_db()
    return result


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Forward pending ledger events to the sink")
    parser.add_argument("--max", type=int, default=None, help="Batch size (clamped to the ceiling)")
    args = parser.parse_args()

    result = asyncio.run(main(args.max))
    print(result.model_dump_json(indent=2))
    sys.exit(0 if result.ok else 1)
