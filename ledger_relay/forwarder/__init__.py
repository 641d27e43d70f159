"""Ledger forwarder: claim, redact, sign, deliver and resolve pipeline ledger events.

Provides LedgerForwarder.run_batch() as the single entry point; the other
modules are its building blocks.
"""

from ledger_relay.forwarder.batch import LedgerForwarder, forward_ledger_batch
from ledger_relay.forwarder.claims import ClaimManager
from ledger_relay.forwarder.delivery import DeliveryClient, DeliveryResult
from ledger_relay.forwarder.envelope import build_envelope
from ledger_relay.forwarder.health import ForwarderHealthCheck
from ledger_relay.forwarder.notifier import LogNotifier, Notifier
from ledger_relay.forwarder.outcome import Outcome, OutcomeRecorder
from ledger_relay.forwarder.redact import redact

__all__ = [
    "ClaimManager",
    "DeliveryClient",
    "DeliveryResult",
    "ForwarderHealthCheck",
    "LedgerForwarder",
    "LogNotifier",
    "Notifier",
    "Outcome",
    "OutcomeRecorder",
    "build_envelope",
    "forward_ledger_batch",
    "redact",
]
