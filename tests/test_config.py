"""Tests for Settings to ForwarderConfig mapping and batch bounds."""

from datetime import timedelta

import pytest

from ledger_relay.core.config import ForwarderConfig, Settings

pytestmark = pytest.mark.unit


def _config(**overrides) -> ForwarderConfig:
    values = {"enabled": True, "ingest_url": "https://sink.test/ingest", "ingest_secret": "s"}
    values.update(overrides)
    return ForwarderConfig(**values)


def test_from_settings_maps_every_field():
    settings = Settings(
        relay_telemetry_enabled=True,
        relay_ingest_url="https://sink.test/ingest",
        relay_ingest_secret="s3cret",
        relay_signature_header="x-sig",
        relay_source="ledger",
        relay_env="staging",
        relay_release="abc123",
        relay_claim_ttl_seconds=60,
        relay_max_attempts=4,
        relay_batch_default=20,
        relay_batch_ceiling=40,
        relay_ingest_timeout_seconds=1.5,
        relay_delivery_concurrency=3,
    )

    config = ForwarderConfig.from_settings(settings)

    assert config == ForwarderConfig(
        enabled=True,
        ingest_url="https://sink.test/ingest",
        ingest_secret="s3cret",
        source="ledger",
        environment="staging",
        release="abc123",
        signature_header="x-sig",
        claim_ttl=timedelta(seconds=60),
        max_attempts=4,
        batch_default=20,
        batch_ceiling=40,
        timeout_seconds=1.5,
        delivery_concurrency=3,
    )


def test_default_ttl_is_five_minutes():
    assert ForwarderConfig.from_settings(Settings()).claim_ttl == timedelta(minutes=5)


def test_config_is_frozen():
    config = _config()
    with pytest.raises(AttributeError):
        config.enabled = False


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({}, None),
        ({"enabled": False}, "telemetry_disabled"),
        ({"enabled": False, "ingest_url": ""}, "telemetry_disabled"),
        ({"ingest_url": ""}, "no_ingest_config"),
        ({"ingest_secret": ""}, "no_ingest_config"),
    ],
)
def test_skip_reason(overrides, reason):
    assert _config(**overrides).skip_reason() == reason


@pytest.mark.parametrize(
    ("requested", "expected"),
    [
        (None, 50),
        (10, 10),
        (200, 200),
        (5000, 200),
        (0, 0),
        (-4, 0),
    ],
)
def test_batch_limit(requested, expected):
    assert _config().batch_limit(requested) == expected
