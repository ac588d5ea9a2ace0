# securescan/scanner/analyzers/port_risk.py
"""
Port Risk Analyzer.

Turns raw port probes into persisted PortFindings and correlates the open
ones into Vulnerability records.

Both steps are table lookups with no I/O:

    RISK_TIERS           port -> high / medium / low (default medium)
    VULNERABILITY_RULES  port -> what exposing that service means

Only open ports produce anything. Correlation keeps the order of its
input, so the vulnerabilities of a scan come out in candidate-port order.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from securescan.records import PortFinding, Vulnerability

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

SERVICE_NAMES: Dict[int, str] = {
    21: "ftp",
    22: "ssh",
    23: "telnet",
    25: "smtp",
    53: "dns",
    80: "http",
    110: "pop3",
    143: "imap",
    443: "https",
    993: "imaps",
    995: "pop3s",
    3389: "rdp",
    5432: "postgresql",
    3306: "mysql",
    6379: "redis",
    27017: "mongodb",
}

# Tiers include ports outside the candidate set (finger, rpcbind, r-services,
# lpd) so a widened port list is still classified.
RISK_TIERS: Dict[str, Tuple[int, ...]] = {
    "high": (21, 23, 79, 111, 513, 514, 515),
    "medium": (22, 3389, 5432, 3306, 6379, 27017),
    "low": (80, 443),
}
DEFAULT_RISK = "medium"

_RISK_BY_PORT: Dict[int, str] = {
    port: tier for tier, ports in RISK_TIERS.items() for port in ports
}


# ---------------------------------------------------------------------------
# Vulnerability rules
#
# Fields:
#   title, severity, recommendation: copied onto the Vulnerability
#   description: may contain {port}
# ---------------------------------------------------------------------------

_DATABASE_RULE: Dict[str, str] = {
    "title": "Database Service Exposed",
    "severity": "high",
    "description": "Database service on port {port} is publicly accessible.",
    "recommendation": (
        "Restrict database access to trusted networks only and ensure strong authentication."
    ),
}

VULNERABILITY_RULES: Dict[int, Dict[str, str]] = {
    22: {
        "title": "SSH Service Exposed",
        "severity": "medium",
        "description": (
            "SSH service is publicly accessible. Ensure strong authentication "
            "and consider restricting access."
        ),
        "recommendation": (
            "Use key-based authentication, disable root login, and consider IP whitelisting."
        ),
    },
    21: {
        "title": "FTP Service Detected",
        "severity": "high",
        "description": "FTP service detected. FTP transmits credentials in plain text.",
        "recommendation": "Replace FTP with SFTP or FTPS for secure file transfers.",
    },
    23: {
        "title": "Telnet Service Exposed",
        "severity": "high",
        "description": "Telnet service detected. Telnet transmits data in plain text.",
        "recommendation": "Replace Telnet with SSH for secure remote access.",
    },
    3306: _DATABASE_RULE,
    5432: _DATABASE_RULE,
    27017: _DATABASE_RULE,
    6379: _DATABASE_RULE,
}


def service_name(port: int) -> str:
    return SERVICE_NAMES.get(port, "unknown")


def risk_level(port: int) -> str:
    return _RISK_BY_PORT.get(port, DEFAULT_RISK)


def to_port_findings(scan_id: str, probes: Iterable) -> List[PortFinding]:
    """PortFindings for the open probes only, in probe order."""
    return [
        PortFinding(
            scan_id=scan_id,
            port=probe.port,
            service=probe.service or service_name(probe.port),
            risk_level=risk_level(probe.port),
        )
        for probe in probes
        if probe.state == "open"
    ]


def correlate(scan_id: str, findings: Iterable[PortFinding]) -> List[Vulnerability]:
    """
    One Vulnerability per open finding whose port has a rule.

    Non-open findings and ports without a rule yield nothing.
    """
    vulnerabilities: List[Vulnerability] = []
    for finding in findings:
        if finding.state != "open":
            continue
        rule = VULNERABILITY_RULES.get(finding.port)
        if rule is None:
            continue
        vulnerabilities.append(Vulnerability(
            scan_id=scan_id,
            title=rule["title"],
            description=rule["description"].format(port=finding.port),
            severity=rule["severity"],
            recommendation=rule["recommendation"],
        ))

    if vulnerabilities:
        logger.debug(
            f"Correlated {len(vulnerabilities)} vulnerabilities for scan {scan_id}"
        )
    return vulnerabilities
