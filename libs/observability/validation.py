"""Validation utilities for observability inputs."""

import re

# Label keys that usually carry per-entity ids and explode metric cardinality
_HIGH_CARDINALITY_PATTERNS = [
    re.compile(r"^(user|participant|session|item|question|assessment)_?id$", re.IGNORECASE),
    re.compile(r"^(request_?id|trace_?id|span_?id|uuid|id)$", re.IGNORECASE),
    re.compile(r"^(timestamp|time|date)$", re.IGNORECASE),
]


def high_cardinality_labels(labels: dict[str, str] | None) -> list[str]:
    """Label keys that look like per-entity identifiers."""
    if not labels:
        return []
    return [
        key
        for key in labels
        if any(pattern.match(key) for pattern in _HIGH_CARDINALITY_PATTERNS)
    ]
