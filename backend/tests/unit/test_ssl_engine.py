"""Tests for SSLEngine: certificate parsing and how handshake failures are reported."""

import socket
import ssl
from datetime import datetime, timedelta, timezone

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID, ObjectIdentifier, SignatureAlgorithmOID

from securescan.scanner.base import validate_target_url
from securescan.scanner.engines import ssl_engine
from securescan.scanner.engines.ssl_engine import (
    SSLEngine,
    format_name,
    parse_certificate,
    signature_algorithm_name,
)


# ── Helpers ──────────────────────────────────────────────────────────

NOT_AFTER = datetime(2031, 1, 1, tzinfo=timezone.utc)


def _make_cert_der(key=None, subject_attrs=None, hash_algo=None) -> bytes:
    key = key or rsa.generate_private_key(public_exponent=65537, key_size=2048)
    attrs = subject_attrs or [
        x509.NameAttribute(NameOID.COMMON_NAME, "example.com"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example Inc"),
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
    ]
    name = x509.Name(attrs)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOT_AFTER - timedelta(days=365))
        .not_valid_after(NOT_AFTER)
        .sign(key, hash_algo or hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


def _target():
    return validate_target_url("https://example.com")


class _UnsupportedKeyCert:
    """A real certificate whose public key type cryptography cannot load."""

    def __init__(self, cert):
        self._cert = cert

    def public_key(self):
        raise UnsupportedAlgorithm("Unknown key type")

    def __getattr__(self, name):
        return getattr(self._cert, name)


class _SignatureOnlyCert:
    def __init__(self, oid, hash_algorithm=None, unsupported=False):
        self.signature_algorithm_oid = oid
        self._hash_algorithm = hash_algorithm
        self._unsupported = unsupported

    @property
    def signature_hash_algorithm(self):
        if self._unsupported:
            raise UnsupportedAlgorithm("Signature algorithm OID is not supported")
        return self._hash_algorithm


@pytest.fixture
def engine(monkeypatch):
    """SSLEngine with the network methods replaced by canned answers."""
    eng = SSLEngine()
    der = _make_cert_der()
    monkeypatch.setattr(
        eng, "_fetch_certificate",
        lambda host, port, timeout: (der, ("TLS_AES_256_GCM_SHA384", "TLSv1.3", 256), "TLSv1.3"),
    )
    monkeypatch.setattr(
        eng, "_test_protocol_version",
        lambda host, port, timeout, version: version in ("TLSv1.3", "TLSv1.2"),
    )
    monkeypatch.setattr(eng, "_check_hsts", lambda host, timeout: True)
    return eng


# ── Certificate parsing ──────────────────────────────────────────────


class TestParseCertificate:
    def test_rsa_certificate(self):
        parsed = parse_certificate(_make_cert_der())

        assert parsed["subject"] == "CN=example.com, O=Example Inc, C=US"
        assert parsed["issuer"] == parsed["subject"]
        assert parsed["not_after"] == NOT_AFTER
        assert parsed["signature_algorithm"] == "sha256WithRSAEncryption"
        assert parsed["key_size"] == 2048

    def test_ec_certificate_reports_curve_size(self):
        key = ec.generate_private_key(ec.SECP256R1())
        parsed = parse_certificate(_make_cert_der(key=key))

        assert parsed["key_size"] == 256
        assert parsed["signature_algorithm"] == "ecdsa-with-SHA256"

    def test_garbage_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_certificate(b"not a certificate")

    def test_unsupported_key_type_leaves_key_size_empty(self, monkeypatch):
        cert = x509.load_der_x509_certificate(_make_cert_der())
        monkeypatch.setattr(
            ssl_engine.x509, "load_der_x509_certificate", lambda der: _UnsupportedKeyCert(cert),
        )

        parsed = parse_certificate(b"ignored")

        assert parsed["key_size"] is None
        assert parsed["subject"] == "CN=example.com, O=Example Inc, C=US"
        assert parsed["signature_algorithm"] == "sha256WithRSAEncryption"

    def test_unsupported_key_type_does_not_fail_the_engine(self, engine, monkeypatch):
        cert = x509.load_der_x509_certificate(_make_cert_der())
        monkeypatch.setattr(
            ssl_engine.x509, "load_der_x509_certificate", lambda der: _UnsupportedKeyCert(cert),
        )

        result = engine.run(_target(), {})

        assert result.success
        assert result.data["certificate"]["key_size"] is None


class TestSignatureAlgorithmName:
    @pytest.mark.parametrize("oid,expected", [
        (SignatureAlgorithmOID.RSA_WITH_SHA1, "sha1WithRSAEncryption"),
        (SignatureAlgorithmOID.ECDSA_WITH_SHA1, "ecdsa-with-SHA1"),
        (SignatureAlgorithmOID.DSA_WITH_SHA1, "dsaWithSHA1"),
        (SignatureAlgorithmOID.ECDSA_WITH_SHA384, "ecdsa-with-SHA384"),
        (SignatureAlgorithmOID.ED25519, "ed25519"),
    ])
    def test_known_algorithms(self, oid, expected):
        assert signature_algorithm_name(_SignatureOnlyCert(oid)) == expected

    def test_unknown_oid_uses_dotted_string(self):
        cert = _SignatureOnlyCert(ObjectIdentifier("1.2.3.4.5"), unsupported=True)
        assert signature_algorithm_name(cert) == "1.2.3.4.5"

    def test_unknown_oid_keeps_known_hash(self):
        cert = _SignatureOnlyCert(ObjectIdentifier("1.2.3.4.5"), hash_algorithm=hashes.SHA1())

        name = signature_algorithm_name(cert)

        assert name == "1.2.3.4.5 (sha1)"
        # still graded as a SHA-1 signature
        assert "sha1" in name.lower()


class TestFormatName:
    def test_parts_in_fixed_order(self):
        name = x509.Name([
            x509.NameAttribute(NameOID.COUNTRY_NAME, "DE"),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "Ops"),
            x509.NameAttribute(NameOID.COMMON_NAME, "host.example"),
        ])
        assert format_name(name) == "CN=host.example, OU=Ops, C=DE"

    def test_none_is_unknown(self):
        assert format_name(None) == "Unknown"

    def test_other_attributes_fall_back_to_rfc4514(self):
        name = x509.Name([x509.NameAttribute(NameOID.LOCALITY_NAME, "Berlin")])
        assert format_name(name) == "L=Berlin"


# ── SSLEngine ────────────────────────────────────────────────────────


class TestSSLEngine:
    def test_collects_certificate_protocols_and_hsts(self, engine):
        result = engine.run(_target(), {"timeout": 1})

        assert result.success
        data = result.data
        assert data["hostname"] == "example.com"
        assert data["port"] == 443
        assert list(data["protocols"]) == ["TLSv1.3", "TLSv1.2", "TLSv1.1", "TLSv1.0"]
        assert data["protocols"]["TLSv1.2"] is True
        assert data["protocols"]["TLSv1.0"] is False
        assert data["cipher"] == "TLS_AES_256_GCM_SHA384"
        assert data["protocol_version"] == "TLSv1.3"
        assert data["has_hsts"] is True
        assert data["certificate"]["key_size"] == 2048

    @pytest.mark.parametrize("error,prefix", [
        (ssl.SSLError("handshake failure"), "SSL error on example.com:443"),
        (socket.timeout("timed out"), "Timeout connecting to example.com:443"),
        (ConnectionRefusedError(111, "Connection refused"), "Connection failed to example.com:443"),
    ])
    def test_certificate_fetch_failure_fails_the_engine(self, monkeypatch, error, prefix):
        eng = SSLEngine()

        def _fail(host, port, timeout):
            raise error

        monkeypatch.setattr(eng, "_fetch_certificate", _fail)

        result = eng.run(_target(), {})

        assert not result.success
        assert result.errors[0].startswith(prefix)

    def test_unparseable_certificate_fails_the_engine(self, monkeypatch):
        eng = SSLEngine()
        monkeypatch.setattr(eng, "_fetch_certificate", lambda h, p, t: (b"junk", None, None))

        result = eng.run(_target(), {})

        assert not result.success
        assert "Could not parse certificate" in result.errors[0]

    def test_protocol_probe_uses_pinned_version(self, monkeypatch):
        contexts = []

        class _Ctx:
            def __init__(self, protocol):
                contexts.append(self)
                self.ciphers = None

            def set_ciphers(self, cipher_string):
                self.ciphers = cipher_string

            def wrap_socket(self, sock, server_hostname=None):
                raise ssl.SSLError("unsupported protocol")

        monkeypatch.setattr(ssl_engine.ssl, "SSLContext", _Ctx)
        monkeypatch.setattr(
            ssl_engine.socket, "create_connection",
            lambda address, timeout=None: socket.socket(),
        )

        assert SSLEngine()._test_protocol_version("example.com", 443, 1, "TLSv1.0") is False
        ctx = contexts[0]
        assert ctx.minimum_version == ctx.maximum_version == ssl.TLSVersion.TLSv1
        assert ctx.ciphers == "DEFAULT:@SECLEVEL=0"

    def test_hsts_network_error_means_no_hsts(self, monkeypatch):
        def _boom(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(ssl_engine.requests, "head", _boom)
        assert SSLEngine()._check_hsts("example.com", 1) is False

    def test_hsts_header_detected(self, monkeypatch):
        class _Resp:
            headers = CaseInsensitiveDict({"Strict-Transport-Security": "max-age=31536000"})

        monkeypatch.setattr(ssl_engine.requests, "head", lambda *a, **kw: _Resp())
        assert SSLEngine()._check_hsts("example.com", 1) is True

    @pytest.mark.parametrize("host,expected", [
        ("example.com", "https://example.com/"),
        ("192.0.2.10", "https://192.0.2.10/"),
        ("2001:db8::1", "https://[2001:db8::1]/"),
    ])
    def test_hsts_url_brackets_ipv6_hosts(self, monkeypatch, host, expected):
        urls = []

        class _Resp:
            headers = CaseInsensitiveDict({"Strict-Transport-Security": "max-age=31536000"})

        def _head(url, **kwargs):
            urls.append(url)
            return _Resp()

        monkeypatch.setattr(ssl_engine.requests, "head", _head)

        assert SSLEngine()._check_hsts(host, 1) is True
        assert urls == [expected]
