# securescan/scanner/analyzers/__init__.py
"""
Analyzers.
Each analyzer reads one engine's raw data and grades it into records.
Analyzers do NOT collect data; they only interpret it.
"""
from securescan.scanner.analyzers.ssl_analyzer import SSLAnalyzer
from securescan.scanner.analyzers.header_analyzer import HeaderAnalyzer
from securescan.scanner.analyzers.cloud_analyzer import CloudAnalyzer

# Registry keyed by the engine each analyzer reads.
# Port risk is plain table lookups (port_risk.correlate) and is not listed.
ALL_ANALYZERS = {
    "ssl": SSLAnalyzer,
    "http": HeaderAnalyzer,
    "cloud": CloudAnalyzer,
}

__all__ = ["SSLAnalyzer", "HeaderAnalyzer", "CloudAnalyzer", "ALL_ANALYZERS"]
