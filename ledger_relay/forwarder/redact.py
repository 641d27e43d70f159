"""Redaction filter for ledger payloads crossing the trust boundary.

Allowlisting is the primary boundary: a key that nobody has reviewed is
dropped. The blocklist and the string pattern checks are a backstop for
sensitive fields that end up under an allowlisted key or nested object.

Rules, applied depth-first:
  - blocked keys are dropped at any depth, even under allowlisted parents
  - filename-shaped keys keep a short digest of the value plus its extension
  - other keys survive only if allowlisted; their values are redacted
  - a nested map under a non-allowlisted key is filtered and kept only if
    something survives inside it; emptied maps are never forwarded as {}
  - strings matching a PII pattern, or longer than MAX_STRING_LENGTH, are
    replaced by a marker
  - lists are filtered element-wise; scalars pass through

``redact`` never raises and is idempotent.
"""

import hashlib
import re
from typing import Any, Union

JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

MAX_STRING_LENGTH = 500
PII_MARKER = "<redacted:pii>"
LONG_STRING_MARKER = "<redacted:long_string>"

ALLOWED_KEYS: frozenset[str] = frozenset({
    # Subject and artifact ids
    "deal_id",
    "bank_id",
    "artifact_id",
    "attachment_id",
    "document_id",
    "checklist_key",
    # Classification
    "document_type",
    "canonical_type",
    "doc_year",
    "doc_years",
    "confidence",
    "match_source",
    "source",
    "model",
    # Lifecycle
    "event_key",
    "stage",
    "status",
    "ui_state",
    "phase",
    "step",
    "outcome",
    "decision",
    "reason",
    "error_code",
    "trigger",
    "actor",
    # Counters and timings
    "attempt",
    "count",
    "total",
    "page_count",
    "file_count",
    "duration_ms",
    "score",
    "threshold",
    "missing_keys",
    "matched_keys",
})

# Exact key names (lowercased) that always denote sensitive content
BLOCKED_KEYS: frozenset[str] = frozenset({
    "ssn",
    "tin",
    "ein",
    "itin",
    "dob",
    "stack",
    "raw",
    "raw_json",
    "raw_text",
    "text",
    "body",
})

# Substrings (lowercased) that block any key containing them
BLOCKED_KEY_PARTS: tuple[str, ...] = (
    "ocr",
    "extracted_text",
    "extraction_json",
    "extracted_json",
    "social_security",
    "tax_id",
    "taxpayer_id",
    "date_of_birth",
    "birth_date",
    "birthdate",
    "account_number",
    "routing_number",
    "stack_trace",
    "traceback",
    "email",
    "phone",
    "address",
    "street",
)

_PII_PATTERNS: tuple[re.Pattern[str], ...] = (
    # SSN / national id: 123-45-6789, 123 45 6789, 123.45.6789
    re.compile(r"\b\d{3}[-\s.]\d{2}[-\s.]\d{4}\b"),
    # Email
    re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}"),
    # North American phone: (555) 123-4567, 555-123-4567, +1 555.123.4567
    re.compile(r"(?:\+?1[-.\s]?)?\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]\d{4}\b"),
    # Calendar dates: 1984-07-02, 07/02/1984
    re.compile(r"\b(?:19|20)\d{2}-(?:0[1-9]|1[0-2])-(?:0[1-9]|[12]\d|3[01])\b"),
    re.compile(r"\b(?:0?[1-9]|1[0-2])/(?:0?[1-9]|[12]\d|3[01])/(?:19|20)\d{2}\b"),
)

_FILENAME_DIGEST_LENGTH = 12
_MASKED_FILENAME_RE = re.compile(r"^<[0-9a-f]{12}(?:\.[a-z0-9]{1,8})?>$")
_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,8}$")


def is_blocked_key(key: str) -> bool:
    lowered = key.lower()
    if lowered in BLOCKED_KEYS:
        return True
    return any(part in lowered for part in BLOCKED_KEY_PARTS)


def is_filename_key(key: str) -> bool:
    lowered = key.lower()
    return lowered.endswith("filename") or lowered.endswith("file_name")


def mask_filename(name: str) -> str:
    """Replace a filename with ``<digest.ext>``.

    Deterministic for a given input. Already-masked tokens are returned as-is
    so redaction stays idempotent.
    """
    if _MASKED_FILENAME_RE.match(name):
        return name

    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:_FILENAME_DIGEST_LENGTH]
    stem, dot, ext = name.rpartition(".")
    ext = ext.lower()
    if dot and stem and _EXTENSION_RE.match(ext):
        return f"<{digest}.{ext}>"
    return f"<{digest}>"


def redact_string(value: str) -> str:
    # Pattern check runs first so a long string containing PII is reported as PII
    for pattern in _PII_PATTERNS:
        if pattern.search(value):
            return PII_MARKER
    if len(value) > MAX_STRING_LENGTH:
        return LONG_STRING_MARKER
    return value


def redact(value: Any) -> JSONValue:
    """Return a safety-screened copy of ``value``."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return _redact_map(value)
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    # Anything outside the JSON value space is screened in its string form
    return redact_string(str(value))


def _redact_map(data: dict) -> dict[str, JSONValue]:
    result: dict[str, JSONValue] = {}
    for raw_key, value in data.items():
        key = str(raw_key)

        if is_blocked_key(key):
            continue

        if is_filename_key(key):
            masked = _redact_filename_value(value)
            if isinstance(value, dict) and not masked:
                continue
            result[key] = masked
            continue

        if key in ALLOWED_KEYS:
            cleaned = redact(value)
            if isinstance(value, dict) and not cleaned:
                continue
            result[key] = cleaned
            continue

        # Unlisted key: only a nested object with surviving children gets through
        if isinstance(value, dict):
            nested = _redact_map(value)
            if nested:
                result[key] = nested

    return result


def _redact_filename_value(value: Any) -> JSONValue:
    if isinstance(value, str):
        return mask_filename(value)
    if isinstance(value, (list, tuple)):
        return [_redact_filename_value(item) for item in value]
    return redact(value)
