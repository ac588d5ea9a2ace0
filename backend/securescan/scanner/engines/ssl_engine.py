# securescan/scanner/engines/ssl_engine.py
"""
SSL/TLS data collection engine.

Connects to port 443 of the target with certificate verification turned
off (we want to see the certificate even if it is invalid; the analyzer
decides what that means) and collects:

    - The leaf certificate, parsed with `cryptography`
    - Which of TLS 1.3 / 1.2 / 1.1 / 1.0 the server accepts
    - The cipher negotiated on a default handshake
    - Whether https://<host>/ answers with Strict-Transport-Security

If the certificate cannot be fetched the engine fails and the analyzer
reports the target as unavailable. Protocol probes and the HSTS check
never fail the engine; an error there just means "not supported" or
"no HSTS".

Output data structure (stored in EngineResult.data):
    {
        "hostname": "example.com",
        "port": 443,
        "certificate": {
            "subject": "CN=example.com, O=Example Inc",
            "issuer": "CN=R3, O=Let's Encrypt, C=US",
            "not_after": datetime(2025, 4, 1, tzinfo=utc),
            "signature_algorithm": "sha256WithRSAEncryption",
            "key_size": 2048
        },
        "protocols": {"TLSv1.3": true, "TLSv1.2": true, "TLSv1.1": false, "TLSv1.0": false},
        "cipher": "TLS_AES_256_GCM_SHA384",
        "protocol_version": "TLSv1.3",
        "has_hsts": true
    }

Config options:
    port:          int  : TLS port (default: 443)
    timeout:       float: per-connection timeout in seconds (default: 5)
    hsts_timeout:  float: HEAD request timeout (default: 5)
"""

from __future__ import annotations

import logging
import socket
import ssl
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

import requests
import urllib3
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.x509.oid import NameOID, SignatureAlgorithmOID

from securescan.scanner.base import BaseEngine, EngineResult, ScanTarget

logger = logging.getLogger(__name__)

# HSTS is checked against hosts whose certificates may be invalid
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

DEFAULT_TLS_PORT = 443
DEFAULT_TLS_TIMEOUT = 5.0
DEFAULT_HSTS_TIMEOUT = 5.0

# Newest first; this is also the order of TlsPosture.protocol_versions
TLS_VERSIONS: Dict[str, ssl.TLSVersion] = {
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.1": ssl.TLSVersion.TLSv1_1,
    "TLSv1.0": ssl.TLSVersion.TLSv1,
}
LEGACY_VERSIONS = ("TLSv1.1", "TLSv1.0")

# Order of the parts in a formatted distinguished name
DN_FIELDS = (
    ("CN", NameOID.COMMON_NAME),
    ("O", NameOID.ORGANIZATION_NAME),
    ("OU", NameOID.ORGANIZATIONAL_UNIT_NAME),
    ("C", NameOID.COUNTRY_NAME),
)

# OpenSSL spellings, so "sha1" shows up in the name of every SHA-1 signature
SIGNATURE_ALGORITHM_NAMES = {
    SignatureAlgorithmOID.RSA_WITH_MD5: "md5WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA1: "sha1WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA224: "sha224WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA256: "sha256WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA384: "sha384WithRSAEncryption",
    SignatureAlgorithmOID.RSA_WITH_SHA512: "sha512WithRSAEncryption",
    SignatureAlgorithmOID.RSASSA_PSS: "RSASSA-PSS",
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: "ecdsa-with-SHA1",
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: "ecdsa-with-SHA224",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: "ecdsa-with-SHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: "ecdsa-with-SHA384",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: "ecdsa-with-SHA512",
    SignatureAlgorithmOID.DSA_WITH_SHA1: "dsaWithSHA1",
    SignatureAlgorithmOID.DSA_WITH_SHA224: "dsa_with_SHA224",
    SignatureAlgorithmOID.DSA_WITH_SHA256: "dsa_with_SHA256",
    SignatureAlgorithmOID.ED25519: "ed25519",
    SignatureAlgorithmOID.ED448: "ed448",
}


def format_name(name: Optional[x509.Name]) -> str:
    """'CN=..., O=..., OU=..., C=...' with absent parts skipped, 'Unknown' if empty."""
    if name is None:
        return "Unknown"
    parts = []
    for label, oid in DN_FIELDS:
        attrs = name.get_attributes_for_oid(oid)
        if attrs:
            parts.append(f"{label}={attrs[0].value}")
    if parts:
        return ", ".join(parts)
    return name.rfc4514_string() or "Unknown"


def signature_algorithm_name(cert: x509.Certificate) -> str:
    """OpenSSL-style name of the signature algorithm, or its dotted OID if unknown."""
    oid = cert.signature_algorithm_oid
    if oid in SIGNATURE_ALGORITHM_NAMES:
        return SIGNATURE_ALGORITHM_NAMES[oid]
    try:
        hash_algo = cert.signature_hash_algorithm
    except UnsupportedAlgorithm:
        hash_algo = None
    if hash_algo is not None:
        return f"{oid.dotted_string} ({hash_algo.name})"
    return oid.dotted_string


def parse_certificate(der_bytes: bytes) -> Dict[str, Any]:
    """Extract the fields the analyzer grades from a DER certificate."""
    cert = x509.load_der_x509_certificate(der_bytes)

    key_size = None
    try:
        key_size = cert.public_key().key_size
    except AttributeError:
        # Ed25519 / Ed448 keys have no key_size
        pass
    except UnsupportedAlgorithm as e:
        logger.debug(f"Unsupported public key type: {e}")

    sig_algo = signature_algorithm_name(cert)

    return {
        "subject": format_name(cert.subject),
        "issuer": format_name(cert.issuer),
        "not_after": cert.not_valid_after_utc,
        "signature_algorithm": sig_algo,
        "key_size": key_size,
    }


class SSLEngine(BaseEngine):
    """
    Collects certificate, protocol and HSTS facts for one host.

    Uses SNI so shared hosting returns the right certificate.
    """

    @property
    def name(self) -> str:
        return "ssl"

    def execute(self, target: ScanTarget, config: Dict[str, Any]) -> EngineResult:
        result = EngineResult(engine_name=self.name)

        hostname = target.hostname
        port = int(config.get("port", DEFAULT_TLS_PORT))
        timeout = float(config.get("timeout", DEFAULT_TLS_TIMEOUT))
        hsts_timeout = float(config.get("hsts_timeout", DEFAULT_HSTS_TIMEOUT))

        # --- Certificate (the only step that can fail the engine) ---
        try:
            der, cipher, protocol_version = self._fetch_certificate(hostname, port, timeout)
            certificate = parse_certificate(der)
        except ssl.SSLError as e:
            return result.fail(f"SSL error on {hostname}:{port}: {e}")
        except socket.timeout:
            return result.fail(f"Timeout connecting to {hostname}:{port}")
        except OSError as e:
            return result.fail(f"Connection failed to {hostname}:{port}: {e}")
        except ValueError as e:
            return result.fail(f"Could not parse certificate from {hostname}:{port}: {e}")

        protocols = self._probe_protocols(hostname, port, timeout)
        has_hsts = self._check_hsts(hostname, hsts_timeout)

        result.data = {
            "hostname": hostname,
            "port": port,
            "certificate": certificate,
            "protocols": protocols,
            "cipher": cipher[0] if cipher else None,
            "protocol_version": protocol_version,
            "has_hsts": has_hsts,
        }
        result.metadata = {
            "timeout": timeout,
            "protocols_supported": [v for v, ok in protocols.items() if ok],
        }
        return result

    def _fetch_certificate(
        self,
        host: str,
        port: int,
        timeout: float,
    ) -> Tuple[bytes, Optional[tuple], Optional[str]]:
        """Default handshake without verification; returns (DER, cipher, version)."""
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        with socket.create_connection((host, port), timeout=timeout) as sock:
            with context.wrap_socket(sock, server_hostname=host) as ssock:
                der = ssock.getpeercert(binary_form=True)
                cipher = ssock.cipher()
                version = ssock.version()

        if not der:
            raise ssl.SSLError("No certificate presented")
        return der, cipher, version

    def _probe_protocols(self, host: str, port: int, timeout: float) -> Dict[str, bool]:
        """Try each TLS version on its own connection, all at once."""
        with ThreadPoolExecutor(max_workers=len(TLS_VERSIONS), thread_name_prefix="tls-probe") as pool:
            futures = {
                name: pool.submit(self._test_protocol_version, host, port, timeout, name)
                for name in TLS_VERSIONS
            }
            return {name: future.result() for name, future in futures.items()}

    def _test_protocol_version(self, host: str, port: int, timeout: float, version_name: str) -> bool:
        """True if a handshake pinned to exactly this version succeeds."""
        version = TLS_VERSIONS[version_name]
        try:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            context.minimum_version = version
            context.maximum_version = version
            if version_name in LEGACY_VERSIONS:
                # OpenSSL's default security level refuses legacy handshakes outright
                context.set_ciphers("DEFAULT:@SECLEVEL=0")

            with socket.create_connection((host, port), timeout=timeout) as sock:
                with context.wrap_socket(sock, server_hostname=host):
                    return True
        except (OSError, ValueError) as e:
            logger.debug(f"{version_name} not accepted by {host}:{port}: {e}")
            return False

    def _check_hsts(self, host: str, timeout: float) -> bool:
        netloc = f"[{host}]" if ":" in host else host
        try:
            resp = requests.head(
                f"https://{netloc}/",
                timeout=timeout,
                verify=False,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            logger.debug(f"HSTS check failed for {host}: {e}")
            return False
        return bool(resp.headers.get("strict-transport-security"))
