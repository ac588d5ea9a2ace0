# securescan/scanner/analyzers/header_analyzer.py
"""
Security Header Analyzer.

Parses the response headers collected by HTTPEngine, scores them out of
100 and lists what is missing or weakly configured.

    parse_headers()    lowercased header map -> HeaderAnalysis
    score_headers()    HeaderAnalysis -> (score, grade)
    identify_issues()  HeaderAnalysis -> (missing, weak)

All three are pure. A header that is present with an empty value counts
as missing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from securescan.records import HeaderPosture
from securescan.scanner.base import BaseAnalyzer, ScanContext

logger = logging.getLogger(__name__)

ONE_YEAR_SECONDS = 31536000

MAX_AGE_RE = re.compile(r"max-age=(\d+)", re.IGNORECASE)
REPORT_URI_RE = re.compile(r'report-uri="([^"]+)"', re.IGNORECASE)

HEADER_GRADE_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (95, "A+"),
    (85, "A"),
    (75, "B"),
    (65, "C"),
    (50, "D"),
)

WEAK_REFERRER_POLICIES = ("unsafe-url", "no-referrer-when-downgrade")


@dataclass(frozen=True)
class HeaderAnalysis:
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


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _max_age(value: str) -> Optional[int]:
    match = MAX_AGE_RE.search(value)
    return int(match.group(1)) if match else None


def _report_uri(value: str) -> Optional[str]:
    match = REPORT_URI_RE.search(value)
    return match.group(1) if match else None


def _get(headers: Mapping[str, str], *names: str) -> Optional[str]:
    """First non-empty value among `names`, else None."""
    for name in names:
        value = headers.get(name)
        if value:
            return value
    return None


def parse_headers(headers: Mapping[str, str]) -> HeaderAnalysis:
    headers = {k.lower(): v for k, v in headers.items()}

    hsts_value = _get(headers, "strict-transport-security")
    if hsts_value:
        lowered = hsts_value.lower()
        hsts = {
            "present": True,
            "value": hsts_value,
            "max_age": _max_age(hsts_value),
            "include_subdomains": "includesubdomains" in lowered,
            "preload": "preload" in lowered,
        }
    else:
        hsts = {"present": False}

    csp_value = _get(headers, "content-security-policy", "content-security-policy-report-only")
    if csp_value:
        csp = {
            "present": True,
            "value": csp_value,
            "directives": [d.strip() for d in csp_value.split(";") if d.strip()],
            "has_unsafe_inline": "'unsafe-inline'" in csp_value,
            "has_unsafe_eval": "'unsafe-eval'" in csp_value,
        }
    else:
        csp = {"present": False, "directives": []}

    expect_ct_value = _get(headers, "expect-ct")
    if expect_ct_value:
        expect_ct = {
            "present": True,
            "value": expect_ct_value,
            "max_age": _max_age(expect_ct_value),
            "enforce": "enforce" in expect_ct_value.lower(),
            "report_uri": _report_uri(expect_ct_value),
        }
    else:
        expect_ct = {"present": False}

    return HeaderAnalysis(
        hsts=hsts,
        csp=csp,
        x_frame_options=_get(headers, "x-frame-options"),
        x_content_type_options=_get(headers, "x-content-type-options"),
        x_xss_protection=_get(headers, "x-xss-protection"),
        referrer_policy=_get(headers, "referrer-policy"),
        permissions_policy=_get(headers, "permissions-policy", "feature-policy"),
        expect_ct=expect_ct,
        cross_origin_embedder_policy=_get(headers, "cross-origin-embedder-policy"),
        cross_origin_opener_policy=_get(headers, "cross-origin-opener-policy"),
        cross_origin_resource_policy=_get(headers, "cross-origin-resource-policy"),
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def header_grade_for(score: int) -> str:
    for threshold, grade in HEADER_GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def _hsts_too_short(hsts: Dict[str, Any]) -> bool:
    max_age = hsts.get("max_age")
    return not max_age or max_age < ONE_YEAR_SECONDS


def score_headers(analysis: HeaderAnalysis) -> Tuple[int, str]:
    score = 100

    # HSTS: 20
    if not analysis.hsts.get("present"):
        score -= 20
    else:
        if _hsts_too_short(analysis.hsts):
            score -= 5
        if not analysis.hsts.get("include_subdomains"):
            score -= 3
        if not analysis.hsts.get("preload"):
            score -= 2

    # CSP: 25
    if not analysis.csp.get("present"):
        score -= 25
    else:
        if analysis.csp.get("has_unsafe_inline"):
            score -= 8
        if analysis.csp.get("has_unsafe_eval"):
            score -= 7
        if len(analysis.csp.get("directives", [])) < 3:
            score -= 5

    # X-Frame-Options: 15
    if not analysis.x_frame_options:
        score -= 15
    elif analysis.x_frame_options.strip().lower() == "allowall":
        score -= 10

    # X-Content-Type-Options: 10
    if (analysis.x_content_type_options or "").strip().lower() != "nosniff":
        score -= 10

    # X-XSS-Protection: 10
    if not analysis.x_xss_protection:
        score -= 10
    elif analysis.x_xss_protection.strip() == "0":
        score -= 5

    # Referrer-Policy: 8
    if not analysis.referrer_policy:
        score -= 8
    elif analysis.referrer_policy.strip().lower() in WEAK_REFERRER_POLICIES:
        score -= 4

    # Cross-Origin-*: 4 each
    for value in (
        analysis.cross_origin_embedder_policy,
        analysis.cross_origin_opener_policy,
        analysis.cross_origin_resource_policy,
    ):
        if not value:
            score -= 4

    score = max(0, min(100, score))
    return score, header_grade_for(score)


def identify_issues(analysis: HeaderAnalysis) -> Tuple[List[str], List[str]]:
    checks = (
        ("Strict-Transport-Security", analysis.hsts.get("present")),
        ("Content-Security-Policy", analysis.csp.get("present")),
        ("X-Frame-Options", analysis.x_frame_options),
        ("X-Content-Type-Options", analysis.x_content_type_options),
        ("X-XSS-Protection", analysis.x_xss_protection),
        ("Referrer-Policy", analysis.referrer_policy),
        ("Cross-Origin-Embedder-Policy", analysis.cross_origin_embedder_policy),
        ("Cross-Origin-Opener-Policy", analysis.cross_origin_opener_policy),
        ("Cross-Origin-Resource-Policy", analysis.cross_origin_resource_policy),
    )
    missing = [header for header, present in checks if not present]

    weak: List[str] = []
    if analysis.hsts.get("present") and _hsts_too_short(analysis.hsts):
        weak.append("HSTS max-age is less than 1 year")
    if analysis.csp.get("present"):
        if analysis.csp.get("has_unsafe_inline"):
            weak.append("CSP allows 'unsafe-inline'")
        if analysis.csp.get("has_unsafe_eval"):
            weak.append("CSP allows 'unsafe-eval'")
    if analysis.x_frame_options and analysis.x_frame_options.strip().lower() == "allowall":
        weak.append("X-Frame-Options set to ALLOWALL")
    if analysis.x_xss_protection and analysis.x_xss_protection.strip() == "0":
        weak.append("X-XSS-Protection disabled")

    return missing, weak


class HeaderAnalyzer(BaseAnalyzer):

    @property
    def name(self) -> str:
        return "header_analyzer"

    @property
    def required_engine(self) -> str:
        return "http"

    def analyze(self, ctx: ScanContext) -> HeaderPosture:
        data = ctx.get_engine_data(self.required_engine)
        analysis = parse_headers(data.get("headers", {}))
        score, grade = score_headers(analysis)
        missing, weak = identify_issues(analysis)

        logger.info(f"Headers {ctx.hostname}: grade {grade} ({score}), {len(missing)} missing")
        return HeaderPosture(
            scan_id=ctx.scan_id,
            hostname=ctx.hostname,
            hsts=analysis.hsts,
            csp=analysis.csp,
            x_frame_options=analysis.x_frame_options,
            x_content_type_options=analysis.x_content_type_options,
            x_xss_protection=analysis.x_xss_protection,
            referrer_policy=analysis.referrer_policy,
            permissions_policy=analysis.permissions_policy,
            expect_ct=analysis.expect_ct,
            cross_origin_embedder_policy=analysis.cross_origin_embedder_policy,
            cross_origin_opener_policy=analysis.cross_origin_opener_policy,
            cross_origin_resource_policy=analysis.cross_origin_resource_policy,
            security_score=score,
            grade=grade,
            missing_headers=tuple(missing),
            weak_headers=tuple(weak),
        )
