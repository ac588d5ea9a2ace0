from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from .extensions import db
from .records import (
    CloudCheck,
    CloudFinding,
    HeaderPosture,
    PortFinding,
    Scan,
    TlsPosture,
    Vulnerability,
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Columns store naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _scan_fk():
    return db.Column(
        db.String(36),
        db.ForeignKey("scan.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class ScanJob(db.Model):
    __tablename__ = "scan"

    id = db.Column(db.String(36), primary_key=True)
    url = db.Column(db.Text, nullable=False)
    # pending, running, completed, failed
    status = db.Column(db.String(20), nullable=False, default="pending")
    result_json = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=now_utc)
    completed_at = db.Column(db.DateTime, nullable=True)
    error_message = db.Column(db.String(500), nullable=True)

    def to_record(self) -> Scan:
        return Scan(
            id=self.id,
            url=self.url,
            status=self.status,
            created_at=from_db_time(self.created_at),
            completed_at=from_db_time(self.completed_at),
            error_message=self.error_message,
            results=self.result_json,
        )


class PortResult(db.Model):
    __tablename__ = "scan_result"

    id = db.Column(db.Integer, primary_key=True)
    scan_id = _scan_fk()
    port = db.Column(db.Integer, nullable=False)
    protocol = db.Column(db.String(10), nullable=False, default="tcp")
    service = db.Column(db.String(50), nullable=True)
    version = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(20), nullable=False)
    risk_level = db.Column(db.String(20), nullable=False, default="medium")

    @classmethod
    def from_record(cls, r: PortFinding) -> "PortResult":
        return cls(
            scan_id=r.scan_id, port=r.port, protocol=r.protocol, service=r.service,
            version=r.version, state=r.state, risk_level=r.risk_level,
        )

    def to_record(self) -> PortFinding:
        return PortFinding(
            id=str(self.id), scan_id=self.scan_id, port=self.port, protocol=self.protocol,
            service=self.service or "unknown", version=self.version, state=self.state,
            risk_level=self.risk_level,
        )


class VulnerabilityFinding(db.Model):
    __tablename__ = "vulnerability"

    id = db.Column(db.Integer, primary_key=True)
    scan_id = _scan_fk()
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(20), nullable=False)
    cve = db.Column(db.String(50), nullable=True)
    cvss_score = db.Column(db.Float, nullable=True)
    recommendation = db.Column(db.Text, nullable=True)

    @classmethod
    def from_record(cls, r: Vulnerability) -> "VulnerabilityFinding":
        return cls(
            scan_id=r.scan_id, title=r.title, description=r.description, severity=r.severity,
            cve=r.cve, cvss_score=r.cvss_score, recommendation=r.recommendation,
        )

    def to_record(self) -> Vulnerability:
        return Vulnerability(
            id=str(self.id), scan_id=self.scan_id, title=self.title,
            description=self.description, severity=self.severity, cve=self.cve,
            cvss_score=self.cvss_score, recommendation=self.recommendation,
        )


class SslAnalysis(db.Model):
    __tablename__ = "ssl_analysis"

    id = db.Column(db.Integer, primary_key=True)
    scan_id = _scan_fk()
    hostname = db.Column(db.String(255), nullable=False)
    available = db.Column(db.Boolean, nullable=False, default=True)
    certificate_valid = db.Column(db.Boolean, nullable=False, default=False)
    certificate_expiry = db.Column(db.DateTime, nullable=True)
    issuer = db.Column(db.Text, nullable=True)
    subject = db.Column(db.Text, nullable=True)
    signature_algorithm = db.Column(db.String(100), nullable=True)
    key_size = db.Column(db.Integer, nullable=True)
    protocol_versions = db.Column(db.JSON, nullable=False, default=list)
    cipher_suites = db.Column(db.JSON, nullable=False, default=list)
    grade = db.Column(db.String(3), nullable=False)
    has_hsts = db.Column(db.Boolean, nullable=False, default=False)
    vulnerabilities = db.Column(db.JSON, nullable=False, default=list)
    score = db.Column(db.Integer, nullable=False, default=0)
    days_until_expiry = db.Column(db.Integer, nullable=True)
    unavailable_reason = db.Column(db.String(500), nullable=True)

    @classmethod
    def from_record(cls, r: TlsPosture) -> "SslAnalysis":
        return cls(
            scan_id=r.scan_id,
            hostname=r.hostname,
            available=r.available,
            certificate_valid=r.certificate_valid,
            certificate_expiry=to_db_time(r.certificate_expiry),
            issuer=r.issuer,
            subject=r.subject,
            signature_algorithm=r.signature_algorithm,
            key_size=r.key_size,
            protocol_versions=list(r.protocol_versions),
            cipher_suites=list(r.cipher_suites),
            grade=r.grade,
            has_hsts=r.has_hsts,
            vulnerabilities=list(r.vulnerabilities),
            score=r.score,
            days_until_expiry=r.days_until_expiry,
            unavailable_reason=r.unavailable_reason[:500] if r.unavailable_reason else None,
        )

    def to_record(self) -> TlsPosture:
        return TlsPosture(
            id=str(self.id),
            scan_id=self.scan_id,
            hostname=self.hostname,
            available=self.available,
            certificate_valid=self.certificate_valid,
            certificate_expiry=from_db_time(self.certificate_expiry),
            issuer=self.issuer or "Unknown",
            subject=self.subject or "Unknown",
            signature_algorithm=self.signature_algorithm or "Unknown",
            key_size=self.key_size,
            protocol_versions=tuple(self.protocol_versions or ()),
            cipher_suites=tuple(self.cipher_suites or ()),
            grade=self.grade,
            has_hsts=self.has_hsts,
            vulnerabilities=tuple(self.vulnerabilities or ()),
            score=self.score,
            days_until_expiry=self.days_until_expiry,
            unavailable_reason=self.unavailable_reason,
        )


class SecurityHeaders(db.Model):
    __tablename__ = "security_headers"

    id = db.Column(db.Integer, primary_key=True)
    scan_id = _scan_fk()
    hostname = db.Column(db.String(255), nullable=False)
    available = db.Column(db.Boolean, nullable=False, default=True)
    hsts = db.Column(db.JSON, nullable=True)
    csp = db.Column(db.JSON, nullable=True)
    x_frame_options = db.Column(db.Text, nullable=True)
    x_content_type_options = db.Column(db.Text, nullable=True)
    x_xss_protection = db.Column(db.Text, nullable=True)
    referrer_policy = db.Column(db.Text, nullable=True)
    permissions_policy = db.Column(db.Text, nullable=True)
    expect_ct = db.Column(db.JSON, nullable=True)
    cross_origin_embedder_policy = db.Column(db.Text, nullable=True)
    cross_origin_opener_policy = db.Column(db.Text, nullable=True)
    cross_origin_resource_policy = db.Column(db.Text, nullable=True)
    security_score = db.Column(db.Integer, nullable=False, default=0)
    grade = db.Column(db.String(3), nullable=False)
    missing_headers = db.Column(db.JSON, nullable=False, default=list)
    weak_headers = db.Column(db.JSON, nullable=False, default=list)
    unavailable_reason = db.Column(db.String(500), nullable=True)

    # Columns copied 1:1 between record and row
    _PLAIN = (
        "hostname", "available", "hsts", "csp", "x_frame_options",
        "x_content_type_options", "x_xss_protection", "referrer_policy",
        "permissions_policy", "expect_ct", "cross_origin_embedder_policy",
        "cross_origin_opener_policy", "cross_origin_resource_policy",
        "security_score", "grade",
    )

    @classmethod
    def from_record(cls, r: HeaderPosture) -> "SecurityHeaders":
        row = cls(
            scan_id=r.scan_id,
            missing_headers=list(r.missing_headers),
            weak_headers=list(r.weak_headers),
            unavailable_reason=r.unavailable_reason[:500] if r.unavailable_reason else None,
        )
        for name in cls._PLAIN:
            setattr(row, name, getattr(r, name))
        return row

    def to_record(self) -> HeaderPosture:
        return HeaderPosture(
            id=str(self.id),
            scan_id=self.scan_id,
            missing_headers=tuple(self.missing_headers or ()),
            weak_headers=tuple(self.weak_headers or ()),
            unavailable_reason=self.unavailable_reason,
            **{name: getattr(self, name) for name in self._PLAIN},
        )


class CloudSecurityScan(db.Model):
    __tablename__ = "cloud_security_scan"

    id = db.Column(db.Integer, primary_key=True)
    scan_id = _scan_fk()
    cloud_provider = db.Column(db.String(50), nullable=False)
    resource_type = db.Column(db.String(50), nullable=False)
    resource_id = db.Column(db.String(255), nullable=False)
    region = db.Column(db.String(50), nullable=True)
    compliance_framework = db.Column(db.String(50), nullable=False, default="CIS")
    findings = db.Column(db.JSON, nullable=False, default=list)
    risk_level = db.Column(db.String(20), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=100)

    @classmethod
    def from_record(cls, r: CloudFinding) -> "CloudSecurityScan":
        return cls(
            scan_id=r.scan_id,
            cloud_provider=r.cloud_provider,
            resource_type=r.resource_type,
            resource_id=r.resource_id,
            region=r.region,
            compliance_framework=r.compliance_framework,
            findings=[c.to_dict() for c in r.findings],
            risk_level=r.risk_level,
            score=r.score,
        )

    def to_record(self) -> CloudFinding:
        return CloudFinding(
            id=str(self.id),
            scan_id=self.scan_id,
            cloud_provider=self.cloud_provider,
            resource_type=self.resource_type,
            resource_id=self.resource_id,
            region=self.region,
            compliance_framework=self.compliance_framework,
            findings=tuple(CloudCheck.from_dict(c) for c in (self.findings or ())),
            risk_level=self.risk_level,
            score=self.score,
        )
