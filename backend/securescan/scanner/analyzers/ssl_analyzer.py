# securescan/scanner/analyzers/ssl_analyzer.py
"""
SSL/TLS Analyzer.

Grades the data collected by SSLEngine into a TlsPosture.

Scoring starts at 100 and each weakness deducts a fixed amount:

    Certificate has expired                          -50
    Certificate expires soon (less than 30 days)     -20  (only if not expired)
    Weak key size (less than 2048 bits)              -30
    Weak signature algorithm (SHA-1)                 -20
    Supports deprecated TLS versions                 -15  (1.0 or 1.1 accepted)
    TLS 1.3 not supported                            -10

The score is clamped to [0, 100] and mapped to a letter grade by
TLS_GRADE_THRESHOLDS. Adding a weakness can only lower the score.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from securescan.records import TlsPosture, now_utc
from securescan.scanner.base import BaseAnalyzer, ScanContext

logger = logging.getLogger(__name__)

TLS_GRADE_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (95, "A+"),
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (60, "D"),
)

EXPIRING_SOON_DAYS = 30
MIN_KEY_SIZE = 2048
DEPRECATED_PROTOCOLS = ("TLSv1.0", "TLSv1.1")


@dataclass(frozen=True)
class TlsGrade:
    score: int
    grade: str
    vulnerabilities: Tuple[str, ...]


def tls_grade_for(score: int) -> str:
    for threshold, grade in TLS_GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def days_until(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until `moment`, rounded up; negative once it has passed."""
    now = now or now_utc()
    return math.ceil((moment - now).total_seconds() / 86400)


def grade_tls(
    certificate: Dict[str, Any],
    protocols: Iterable[str],
    now: Optional[datetime] = None,
) -> TlsGrade:
    """
    Score a certificate plus the list of accepted protocol versions.

    `certificate` needs not_after, key_size and signature_algorithm as
    produced by ssl_engine.parse_certificate().
    """
    now = now or now_utc()
    protocols = set(protocols)
    score = 100
    issues = []

    not_after = certificate.get("not_after")
    if not_after is not None:
        if not_after <= now:
            score -= 50
            issues.append("Certificate has expired")
        elif days_until(not_after, now) < EXPIRING_SOON_DAYS:
            score -= 20
            issues.append("Certificate expires soon (less than 30 days)")

    key_size = certificate.get("key_size")
    if key_size and key_size < MIN_KEY_SIZE:
        score -= 30
        issues.append("Weak key size (less than 2048 bits)")

    sig_algo = certificate.get("signature_algorithm") or ""
    if "sha1" in sig_algo.lower():
        score -= 20
        issues.append("Weak signature algorithm (SHA-1)")

    if protocols.intersection(DEPRECATED_PROTOCOLS):
        score -= 15
        issues.append("Supports deprecated TLS versions")

    if "TLSv1.3" not in protocols:
        score -= 10
        issues.append("TLS 1.3 not supported")

    score = max(0, min(100, score))
    return TlsGrade(score=score, grade=tls_grade_for(score), vulnerabilities=tuple(issues))


class SSLAnalyzer(BaseAnalyzer):

    @property
    def name(self) -> str:
        return "ssl_analyzer"

    @property
    def required_engine(self) -> str:
        return "ssl"

    def analyze(self, ctx: ScanContext) -> TlsPosture:
        data = ctx.get_engine_data(self.required_engine)
        certificate = data["certificate"]
        # keep the newest-first order the engine probed in
        supported = tuple(v for v, ok in data.get("protocols", {}).items() if ok)

        now = now_utc()
        graded = grade_tls(certificate, supported, now)
        not_after = certificate.get("not_after")

        posture = TlsPosture(
            scan_id=ctx.scan_id,
            hostname=data.get("hostname", ctx.hostname),
            certificate_valid=bool(not_after and not_after > now),
            certificate_expiry=not_after,
            issuer=certificate.get("issuer") or "Unknown",
            subject=certificate.get("subject") or "Unknown",
            signature_algorithm=certificate.get("signature_algorithm") or "Unknown",
            key_size=certificate.get("key_size"),
            protocol_versions=supported,
            cipher_suites=(data["cipher"],) if data.get("cipher") else (),
            grade=graded.grade,
            has_hsts=bool(data.get("has_hsts")),
            vulnerabilities=graded.vulnerabilities,
            score=graded.score,
            days_until_expiry=days_until(not_after, now) if not_after else None,
        )
        logger.info(
            f"TLS {posture.hostname}: grade {posture.grade} ({posture.score}), "
            f"{len(posture.vulnerabilities)} issues"
        )
        return posture
