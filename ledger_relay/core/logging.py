"""structlog setup for the relay.

Every entry, including SQLAlchemy, uvicorn and botocore records routed through
the stdlib bridge, carries the correlation id of the triggering request and
the deployment stamps (environment, release). Ledger payloads never reach the
log stream: ``drop_payload_fields`` strips them from every event.
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

# Event keys that may carry ledger row contents
PAYLOAD_LOG_KEYS = frozenset({"payload", "meta", "body", "envelope", "ui_message"})

QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine", "botocore", "boto3")


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def drop_payload_fields(logger, method, event_dict):
    """Remove row contents a caller passed by mistake."""
    for key in PAYLOAD_LOG_KEYS.intersection(event_dict):
        event_dict[key] = "<omitted>"
    return event_dict


def deployment_stamps(environment: str | None, release: str | None):
    """Processor that stamps environment and release on every entry."""
    stamps = {k: v for k, v in (("environment", environment), ("release", release)) if v}

    def _stamp(logger, method, event_dict):
        for key, value in stamps.items():
            event_dict.setdefault(key, value)
        return event_dict

    return _stamp


def configure_structlog(
    log_level: str = "INFO",
    json_logs: bool = True,
    environment: str | None = None,
    release: str | None = None,
) -> None:
    """Install the processor chain and the stdlib handler.

    Must run before any module calls ``structlog.get_logger`` and logs;
    structlog caches the chain on first use.

    Args:
        log_level: Root level for the stdlib bridge
        json_logs: JSON lines when True, ConsoleRenderer when False
        environment: RELAY_ENV, stamped on every entry when set
        release: RELAY_RELEASE, stamped on every entry when set
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        deployment_stamps(environment, release),
        drop_payload_fields,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                "foreign_pre_chain": pre_chain,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    })

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
