"""
Shared fakes and fixtures for the scan core unit tests.

Nothing here touches the network: engines are replaced by StaticEngine,
which returns a canned EngineResult and records the config it was given.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

import pytest

from securescan.config import ScanSettings
from securescan.records import now_utc
from securescan.scanner.base import BaseAnalyzer, BaseEngine, EngineResult, ScanTarget
from securescan.scanner.engines.port_engine import CANDIDATE_PORTS, PortProbe
from securescan.scanner.analyzers.port_risk import service_name
from securescan.scanner.orchestrator import ScanOrchestrator
from securescan.store import MemoryScanStore


# ── Fakes ──────────────────────────────────────────────────────────────

class StaticEngine(BaseEngine):
    """Returns the same EngineResult every run; raises `raises` if given."""

    def __init__(
        self,
        name: str,
        data: Optional[Dict[str, Any]] = None,
        success: bool = True,
        errors: Optional[List[str]] = None,
        raises: Optional[Exception] = None,
    ):
        self._name = name
        self._data = data or {}
        self._success = success
        self._errors = errors or []
        self._raises = raises
        self.calls: List[Dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    def execute(self, target: ScanTarget, config: Dict[str, Any]) -> EngineResult:
        self.calls.append(dict(config, hostname=target.hostname))
        if self._raises is not None:
            raise self._raises
        return EngineResult(
            engine_name=self._name,
            success=self._success,
            data=dict(self._data),
            errors=list(self._errors),
        )


class ExplodingAnalyzer(BaseAnalyzer):
    """An analyzer whose grading code is broken."""

    def __init__(self, engine: str):
        self._engine = engine

    @property
    def name(self) -> str:
        return f"exploding_{self._engine}"

    @property
    def required_engine(self) -> str:
        return self._engine

    def analyze(self, ctx):
        raise KeyError("certificate")


class FlakyStore(MemoryScanStore):
    """MemoryScanStore whose `fail_on` method always raises."""

    def __init__(self, fail_on: str, error: Optional[Exception] = None):
        super().__init__()
        self.error = error or RuntimeError("database is locked")

        def _broken(*args, **kwargs):
            raise self.error

        setattr(self, fail_on, _broken)


# ── Helpers ────────────────────────────────────────────────────────────

def make_probes(open_ports: Iterable[int], filtered: Iterable[int] = ()) -> List[PortProbe]:
    open_ports, filtered = set(open_ports), set(filtered)
    probes = []
    for port in CANDIDATE_PORTS:
        if port in open_ports:
            state = "open"
        elif port in filtered:
            state = "filtered"
        else:
            state = "closed"
        probes.append(PortProbe(port=port, state=state, service=service_name(port)))
    return probes


def make_port_engine(open_ports: Iterable[int] = ()) -> StaticEngine:
    probes = make_probes(open_ports)
    return StaticEngine("ports", {"ports": probes, "open": [p.port for p in probes if p.is_open]})


def make_tls_data(
    days_left: int = 200,
    key_size: int = 2048,
    signature_algorithm: str = "sha256WithRSAEncryption",
    protocols: Optional[Dict[str, bool]] = None,
    has_hsts: bool = True,
) -> Dict[str, Any]:
    return {
        "hostname": "example.com",
        "port": 443,
        "certificate": {
            "subject": "CN=example.com",
            "issuer": "CN=R3, O=Let's Encrypt, C=US",
            "not_after": now_utc() + timedelta(days=days_left),
            "signature_algorithm": signature_algorithm,
            "key_size": key_size,
        },
        "protocols": protocols if protocols is not None else {
            "TLSv1.3": True, "TLSv1.2": True, "TLSv1.1": False, "TLSv1.0": False,
        },
        "cipher": "TLS_AES_256_GCM_SHA384",
        "protocol_version": "TLSv1.3",
        "has_hsts": has_hsts,
    }


STRONG_HEADERS = {
    "strict-transport-security": "max-age=63072000; includeSubDomains; preload",
    "content-security-policy": "default-src 'self'; script-src 'self'; object-src 'none'",
    "x-frame-options": "DENY",
    "x-content-type-options": "nosniff",
    "x-xss-protection": "1; mode=block",
    "referrer-policy": "strict-origin-when-cross-origin",
    "cross-origin-embedder-policy": "require-corp",
    "cross-origin-opener-policy": "same-origin",
    "cross-origin-resource-policy": "same-origin",
}


def make_engines(
    open_ports: Iterable[int] = (22, 80, 443),
    ssl: Optional[StaticEngine] = None,
    http: Optional[StaticEngine] = None,
    cloud: Optional[StaticEngine] = None,
) -> Dict[str, StaticEngine]:
    return {
        "ports": make_port_engine(open_ports),
        "ssl": ssl or StaticEngine("ssl", make_tls_data()),
        "http": http or StaticEngine("http", {"url": "https://example.com", "status_code": 200,
                                              "headers": dict(STRONG_HEADERS)}),
        "cloud": cloud or StaticEngine("cloud", {"hostname": "example.com", "detection": None}),
    }


# ── Fixtures ───────────────────────────────────────────────────────────

@pytest.fixture
def store():
    return MemoryScanStore()


@pytest.fixture
def settings():
    return ScanSettings(scan_deadline=0)


@pytest.fixture
def make_orchestrator(settings):
    def _make(store, **engine_overrides):
        engines = make_engines(**engine_overrides)
        return ScanOrchestrator(store, settings, engines=engines)
    return _make
