# securescan/config.py
"""
Scan tuning knobs.

The app factory copies SCAN_* environment variables into app.config;
ScanSettings.from_mapping() turns them into the typed settings the
scanner reads. Every value has a default so the scanner also works
outside a Flask app (tests, scripts).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

ENV_KEYS = (
    "SCAN_PROBE_TIMEOUT",
    "SCAN_TLS_TIMEOUT",
    "SCAN_HEADER_TIMEOUT",
    "SCAN_HSTS_TIMEOUT",
    "SCAN_DNS_TIMEOUT",
    "SCAN_DEADLINE",
)


@dataclass(frozen=True)
class ScanSettings:
    """
    Timeouts are per probe, in seconds.

    probe_timeout:  TCP connect timeout for each candidate port.
    tls_timeout:    Certificate fetch and each protocol-version handshake.
    header_timeout: The single HEAD request used for header grading.
    hsts_timeout:   The HEAD request made by the TLS analyzer.
    dns_timeout:    Reverse lookups during cloud detection.
    scan_deadline:  Overall time limit for one scan. 0 disables it.
    """
    probe_timeout: float = 3.0
    tls_timeout: float = 5.0
    header_timeout: float = 10.0
    hsts_timeout: float = 5.0
    dns_timeout: float = 5.0
    scan_deadline: float = 120.0

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]] = None) -> "ScanSettings":
        mapping = mapping or {}
        defaults = cls()
        return cls(
            probe_timeout=_as_float(mapping.get("SCAN_PROBE_TIMEOUT"), defaults.probe_timeout),
            tls_timeout=_as_float(mapping.get("SCAN_TLS_TIMEOUT"), defaults.tls_timeout),
            header_timeout=_as_float(mapping.get("SCAN_HEADER_TIMEOUT"), defaults.header_timeout),
            hsts_timeout=_as_float(mapping.get("SCAN_HSTS_TIMEOUT"), defaults.hsts_timeout),
            dns_timeout=_as_float(mapping.get("SCAN_DNS_TIMEOUT"), defaults.dns_timeout),
            scan_deadline=_as_float(mapping.get("SCAN_DEADLINE"), defaults.scan_deadline),
        )

    @classmethod
    def from_env(cls) -> "ScanSettings":
        return cls.from_mapping({k: os.getenv(k) for k in ENV_KEYS})


def _as_float(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Expected a number of seconds, got {value!r}")
    if parsed < 0:
        raise ValueError(f"Timeouts cannot be negative, got {value!r}")
    return parsed
