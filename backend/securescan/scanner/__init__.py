# securescan/scanner/__init__.py
"""
SecureScan scan core.

Usage:
    from securescan.scanner import ScanService

    service = ScanService(store)
    handle = service.start_scan("https://example.com")
    handle.wait(timeout=60)
    view = service.get_scan(handle.scan_id)

Architecture:
    ScanService      validates the URL, creates the scan, runs it on a thread
    └── ScanOrchestrator
        ├── Engines (collect raw data)
        │   ├── PortEngine  : concurrent TCP connects to the candidate ports
        │   ├── SSLEngine   : certificate, protocol versions, cipher, HSTS
        │   ├── HTTPEngine  : one HEAD request for the response headers
        │   └── CloudEngine : hostname / reverse DNS provider matching
        │
        └── Analyzers (interpret data → records)
            ├── port_risk      : risk tiers and vulnerability correlation
            ├── SSLAnalyzer    : TLS grade
            ├── HeaderAnalyzer : security header grade
            └── CloudAnalyzer  : provider rule checks
"""

from securescan.scanner.orchestrator import ScanOrchestrator
from securescan.scanner.service import ScanHandle, ScanService

__all__ = ["ScanOrchestrator", "ScanService", "ScanHandle"]
