"""Tests for TLS grading: deductions, thresholds, clamping and unavailability."""

from datetime import timedelta

import pytest

from securescan.records import TlsPosture, now_utc
from securescan.scanner.analyzers.ssl_analyzer import (
    SSLAnalyzer,
    days_until,
    grade_tls,
    tls_grade_for,
)
from securescan.scanner.base import (
    Analyzed,
    EngineResult,
    ScanContext,
    Unavailable,
    validate_target_url,
)
from tests.unit.conftest import make_tls_data


# ── Helpers ──────────────────────────────────────────────────────────

MODERN = ("TLSv1.3", "TLSv1.2")


def _cert(days_left=200, key_size=2048, sig="sha256WithRSAEncryption", now=None):
    now = now or now_utc()
    return {
        "not_after": now + timedelta(days=days_left),
        "key_size": key_size,
        "signature_algorithm": sig,
    }


def _ctx(result=None):
    ctx = ScanContext(scan_id="scan-1", target=validate_target_url("https://example.com"))
    if result is not None:
        ctx.engine_results["ssl"] = result
    return ctx


# ── Grade thresholds ─────────────────────────────────────────────────


class TestTlsGradeFor:
    @pytest.mark.parametrize("score,grade", [
        (100, "A+"), (95, "A+"), (94, "A"), (90, "A"), (89, "B"), (80, "B"),
        (79, "C"), (70, "C"), (69, "D"), (60, "D"), (59, "F"), (0, "F"),
    ])
    def test_threshold(self, score, grade):
        assert tls_grade_for(score) == grade


# ── Deductions ───────────────────────────────────────────────────────


class TestGradeTls:
    def test_clean_certificate_scores_100(self):
        graded = grade_tls(_cert(), MODERN)
        assert (graded.score, graded.grade, graded.vulnerabilities) == (100, "A+", ())

    def test_expired(self):
        graded = grade_tls(_cert(days_left=-3), MODERN)
        assert graded.score == 50
        assert graded.vulnerabilities == ("Certificate has expired",)

    def test_expiring_soon(self):
        now = now_utc()
        graded = grade_tls(_cert(days_left=10, now=now), MODERN, now=now)
        assert graded.score == 80
        assert graded.grade == "B"
        assert graded.vulnerabilities == ("Certificate expires soon (less than 30 days)",)

    def test_thirty_days_left_is_not_expiring_soon(self):
        now = now_utc()
        graded = grade_tls(_cert(days_left=30, now=now), MODERN, now=now)
        assert graded.score == 100

    def test_weak_key(self):
        graded = grade_tls(_cert(key_size=1024), MODERN)
        assert graded.score == 70
        assert "Weak key size (less than 2048 bits)" in graded.vulnerabilities

    def test_unknown_key_size_is_not_penalised(self):
        assert grade_tls(_cert(key_size=None), MODERN).score == 100

    def test_sha1_signature(self):
        graded = grade_tls(_cert(sig="sha1WithRSAEncryption"), MODERN)
        assert graded.score == 80
        assert graded.vulnerabilities == ("Weak signature algorithm (SHA-1)",)

    @pytest.mark.parametrize("legacy", ["TLSv1.0", "TLSv1.1"])
    def test_deprecated_protocol(self, legacy):
        graded = grade_tls(_cert(), MODERN + (legacy,))
        assert graded.score == 85
        assert graded.vulnerabilities == ("Supports deprecated TLS versions",)

    def test_both_deprecated_protocols_deduct_once(self):
        assert grade_tls(_cert(), MODERN + ("TLSv1.1", "TLSv1.0")).score == 85

    def test_no_tls13(self):
        graded = grade_tls(_cert(), ("TLSv1.2",))
        assert graded.score == 90
        assert graded.grade == "A"
        assert graded.vulnerabilities == ("TLS 1.3 not supported",)

    def test_everything_wrong_clamps_to_zero(self):
        graded = grade_tls(
            _cert(days_left=-1, key_size=1024, sig="sha1WithRSAEncryption"),
            ("TLSv1.0",),
        )
        # 100 - 50 - 30 - 20 - 15 - 10 = -25
        assert graded.score == 0
        assert graded.grade == "F"
        assert len(graded.vulnerabilities) == 5

    def test_adding_a_weakness_never_raises_the_score(self):
        base = grade_tls(_cert(), ("TLSv1.2",)).score
        worse = grade_tls(_cert(key_size=1024), ("TLSv1.2",)).score
        assert worse < base


class TestDaysUntil:
    def test_rounds_up(self):
        now = now_utc()
        assert days_until(now + timedelta(days=2, hours=1), now) == 3

    def test_negative_when_past(self):
        now = now_utc()
        assert days_until(now - timedelta(days=2), now) == -2


# ── SSLAnalyzer ──────────────────────────────────────────────────────


class TestSSLAnalyzer:
    def test_builds_posture_from_engine_data(self):
        data = make_tls_data(protocols={
            "TLSv1.3": True, "TLSv1.2": True, "TLSv1.1": True, "TLSv1.0": False,
        })
        outcome = SSLAnalyzer().run(_ctx(EngineResult(engine_name="ssl", data=data)))

        assert isinstance(outcome, Analyzed)
        posture = outcome.data
        assert isinstance(posture, TlsPosture)
        assert posture.available
        assert posture.scan_id == "scan-1"
        assert posture.certificate_valid
        assert posture.protocol_versions == ("TLSv1.3", "TLSv1.2", "TLSv1.1")
        assert posture.cipher_suites == ("TLS_AES_256_GCM_SHA384",)
        assert posture.score == 85
        assert posture.grade == "B"
        assert posture.has_hsts
        assert posture.issuer == "CN=R3, O=Let's Encrypt, C=US"
        assert 199 <= posture.days_until_expiry <= 200

    def test_expired_certificate_is_invalid(self):
        data = make_tls_data(days_left=-5)
        posture = SSLAnalyzer().run(_ctx(EngineResult(engine_name="ssl", data=data))).data

        assert not posture.certificate_valid
        assert posture.days_until_expiry < 0

    def test_failed_engine_is_unavailable(self):
        result = EngineResult(engine_name="ssl").fail("Connection failed to example.com:443: refused")

        outcome = SSLAnalyzer().run(_ctx(result))

        assert outcome == Unavailable("Connection failed to example.com:443: refused")
        assert not outcome.available

    def test_missing_engine_is_unavailable(self):
        assert isinstance(SSLAnalyzer().run(_ctx()), Unavailable)

    def test_broken_engine_data_is_omitted(self):
        # no "certificate" key: analyze() raises, run() returns None
        result = EngineResult(engine_name="ssl", data={"hostname": "example.com"})
        assert SSLAnalyzer().run(_ctx(result)) is None

    def test_unavailable_posture_shape(self):
        posture = TlsPosture.unavailable("scan-1", "example.com", "timeout")

        assert not posture.available
        assert posture.grade == "F"
        assert posture.score == 0
        assert posture.vulnerabilities == ("SSL/TLS connection failed",)
        assert posture.certificate_expiry is not None
        assert posture.to_dict()["unavailableReason"] == "timeout"
