# securescan/scanner/engines/__init__.py
"""
Data collection engines.
Each engine collects raw data from a single kind of probe.
Engines do NOT grade anything; they only gather facts.
"""
from securescan.scanner.engines.port_engine import PortEngine
from securescan.scanner.engines.ssl_engine import SSLEngine
from securescan.scanner.engines.http_engine import HTTPEngine
from securescan.scanner.engines.cloud_engine import CloudEngine

# Registry of all available engines, keyed by engine name.
# The orchestrator builds its defaults from here.
ALL_ENGINES = {
    "ports": PortEngine,
    "ssl": SSLEngine,
    "http": HTTPEngine,
    "cloud": CloudEngine,
}

__all__ = ["PortEngine", "SSLEngine", "HTTPEngine", "CloudEngine", "ALL_ENGINES"]
