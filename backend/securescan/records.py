# securescan/records.py
"""
Domain records shared by the scanner, the stores and the API.

A Scan is the root; every other record carries the scan_id of the Scan
that produced it. Child records are frozen: once an analyzer has built
one it is only ever persisted and read back, never edited.

to_dict() renders the camelCase shape the dashboard consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


def now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class ScanStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL: FrozenSet[str] = frozenset({PENDING, RUNNING, COMPLETED, FAILED})
    TERMINAL: FrozenSet[str] = frozenset({COMPLETED, FAILED})

    # completed and failed are absorbing
    _NEXT: Dict[str, FrozenSet[str]] = {
        PENDING: frozenset({RUNNING}),
        RUNNING: frozenset({COMPLETED, FAILED}),
        COMPLETED: frozenset(),
        FAILED: frozenset(),
    }

    @classmethod
    def can_transition(cls, current: str, requested: str) -> bool:
        return requested in cls._NEXT.get(current, frozenset())


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Scan:
    id: str
    url: str
    status: str = ScanStatus.PENDING
    created_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    results: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ScanStatus.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status,
            "results": self.results,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
            "errorMessage": self.error_message,
        }


@dataclass(frozen=True)
class PortFinding:
    scan_id: str
    port: int
    service: str = "unknown"
    risk_level: str = "medium"
    protocol: str = "tcp"
    state: str = "open"
    version: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scanId": self.scan_id,
            "port": self.port,
            "protocol": self.protocol,
            "service": self.service,
            "version": self.version,
            "state": self.state,
            "riskLevel": self.risk_level,
        }


@dataclass(frozen=True)
class Vulnerability:
    scan_id: str
    title: str
    description: str
    severity: str
    recommendation: Optional[str] = None
    cve: Optional[str] = None
    cvss_score: Optional[float] = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scanId": self.scan_id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "cve": self.cve,
            "cvssScore": self.cvss_score,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class TlsPosture:
    """
    TLS grading result for the target host.

    available=False marks the posture persisted when the certificate could
    not be retrieved at all: grade F, score 0 and a single connection
    failure vulnerability.
    """
    scan_id: str
    hostname: str
    available: bool = True
    certificate_valid: bool = False
    certificate_expiry: Optional[datetime] = None
    issuer: str = "Unknown"
    subject: str = "Unknown"
    signature_algorithm: str = "Unknown"
    key_size: Optional[int] = None
    protocol_versions: Tuple[str, ...] = ()
    cipher_suites: Tuple[str, ...] = ()
    grade: str = "F"
    has_hsts: bool = False
    vulnerabilities: Tuple[str, ...] = ()
    score: int = 0
    days_until_expiry: Optional[int] = None
    unavailable_reason: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def unavailable(cls, scan_id: str, hostname: str, reason: str) -> "TlsPosture":
        return cls(
            scan_id=scan_id,
            hostname=hostname,
            available=False,
            certificate_expiry=now_utc(),
            vulnerabilities=("SSL/TLS connection failed",),
            unavailable_reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scanId": self.scan_id,
            "hostname": self.hostname,
            "available": self.available,
            "certificateValid": self.certificate_valid,
            "certificateExpiry": _iso(self.certificate_expiry),
            "issuer": self.issuer,
            "subject": self.subject,
            "signatureAlgorithm": self.signature_algorithm,
            "keySize": self.key_size,
            "protocolVersions": list(self.protocol_versions),
            "cipherSuites": list(self.cipher_suites),
            "grade": self.grade,
            "hasHSTS": self.has_hsts,
            "vulnerabilities": list(self.vulnerabilities),
            "score": self.score,
            "daysUntilExpiry": self.days_until_expiry,
            "unavailableReason": self.unavailable_reason,
        }


@dataclass(frozen=True)
class HeaderPosture:
    """
    Security header grading for the target's web root.

    hsts, csp and expect_ct hold the parsed header as a dict (always with a
    "present" key). The single-valued headers hold the raw value or None.
    """
    scan_id: str
    hostname: str
    available: bool = True
    hsts: Dict[str, Any] = field(default_factory=lambda: {"present": False})
    csp: Dict[str, Any] = field(default_factory=lambda: {"present": False, "directives": []})
    x_frame_options: Optional[str] = None
    x_content_type_options: Optional[str] = None
    x_xss_protection: Optional[str] = None
    referrer_policy: Optional[str] = None
    permissions_policy: Optional[str] = None
    expect_ct: Dict[str, Any] = field(default_factory=lambda: {"present": False})
    cross_origin_embedder_policy: Optional[str] = None
    cross_origin_opener_policy: Optional[str] = None
    cross_origin_resource_policy: Optional[str] = None
    security_score: int = 0
    grade: str = "F"
    missing_headers: Tuple[str, ...] = ()
    weak_headers: Tuple[str, ...] = ()
    unavailable_reason: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def unavailable(cls, scan_id: str, hostname: str, reason: str) -> "HeaderPosture":
        return cls(
            scan_id=scan_id,
            hostname=hostname,
            available=False,
            missing_headers=("All security headers missing due to connection failure",),
            unavailable_reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scanId": self.scan_id,
            "hostname": self.hostname,
            "available": self.available,
            "hsts": self.hsts,
            "csp": self.csp,
            "xFrameOptions": self.x_frame_options,
            "xContentTypeOptions": self.x_content_type_options,
            "xXSSProtection": self.x_xss_protection,
            "referrerPolicy": self.referrer_policy,
            "permissionsPolicy": self.permissions_policy,
            "expectCT": self.expect_ct,
            "crossOriginEmbedderPolicy": self.cross_origin_embedder_policy,
            "crossOriginOpenerPolicy": self.cross_origin_opener_policy,
            "crossOriginResourcePolicy": self.cross_origin_resource_policy,
            "securityScore": self.security_score,
            "grade": self.grade,
            "missingHeaders": list(self.missing_headers),
            "weakHeaders": list(self.weak_headers),
            "unavailableReason": self.unavailable_reason,
        }


@dataclass(frozen=True)
class CloudCheck:
    """One provider rule that fired for a detected cloud resource."""
    id: str
    severity: str
    title: str
    description: str
    recommendation: str
    compliance: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "compliance": list(self.compliance),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CloudCheck":
        return cls(
            id=data["id"],
            severity=data["severity"],
            title=data["title"],
            description=data["description"],
            recommendation=data["recommendation"],
            compliance=tuple(data.get("compliance") or ()),
        )


@dataclass(frozen=True)
class CloudFinding:
    scan_id: str
    cloud_provider: str
    resource_type: str
    resource_id: str
    region: Optional[str] = None
    findings: Tuple[CloudCheck, ...] = ()
    risk_level: str = "low"
    score: int = 100
    compliance_framework: str = "CIS"
    id: Optional[str] = None

    @property
    def remediation_steps(self) -> List[str]:
        return [check.recommendation for check in self.findings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "scanId": self.scan_id,
            "cloudProvider": self.cloud_provider,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "region": self.region,
            "configurationCheck": {
                "provider": self.cloud_provider,
                "resourceType": self.resource_type,
                "checksRun": len(self.findings),
            },
            "complianceFramework": self.compliance_framework,
            "findings": [check.to_dict() for check in self.findings],
            "riskLevel": self.risk_level,
            "remediationSteps": self.remediation_steps,
            "score": self.score,
        }


@dataclass(frozen=True)
class ScanView:
    """A Scan joined with everything it produced."""
    scan: Scan
    port_findings: List[PortFinding] = field(default_factory=list)
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    tls_posture: Optional[TlsPosture] = None
    header_posture: Optional[HeaderPosture] = None
    cloud_findings: List[CloudFinding] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload = self.scan.to_dict()
        payload.update({
            "scanResults": [f.to_dict() for f in self.port_findings],
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "sslAnalysis": self.tls_posture.to_dict() if self.tls_posture else None,
            "securityHeaders": self.header_posture.to_dict() if self.header_posture else None,
            "cloudSecurity": [c.to_dict() for c in self.cloud_findings],
        })
        return payload
