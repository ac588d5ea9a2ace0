# securescan/scanner/engines/port_engine.py
"""
TCP port probing engine.

Attempts a plain TCP connect to each candidate port, all ports at once,
and reports what happened:

    open      the connection was accepted
    filtered  the attempt timed out (nothing answered)
    closed    anything else: refused, unreachable, unresolvable host

A probe never raises. Every candidate port comes back exactly once, in
candidate order, whatever happened to the others.

Output data structure (stored in EngineResult.data):
    {
        "ports": [PortProbe(port=22, state="open", service="ssh"), ...],
        "open":  [22, 443]
    }

Config options:
    ports:    Iterable[int]: which ports to probe (default: CANDIDATE_PORTS)
    timeout:  float        : connect timeout per port in seconds (default: 3)
"""

from __future__ import annotations

import logging
import socket
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from securescan.scanner.analyzers.port_risk import service_name
from securescan.scanner.base import BaseEngine, EngineResult, ScanTarget

logger = logging.getLogger(__name__)

CANDIDATE_PORTS = (
    21, 22, 23, 25, 53, 80, 110, 143, 443, 993, 995,
    3389, 5432, 3306, 6379, 27017,
)

DEFAULT_PROBE_TIMEOUT = 3.0


@dataclass(frozen=True)
class PortProbe:
    port: int
    state: str                      # open, closed, filtered
    service: str = "unknown"
    error: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.state == "open"


def probe_port(host: str, port: int, timeout: float) -> PortProbe:
    """One TCP connect attempt. Never raises."""
    service = service_name(port)
    try:
        with socket.create_connection((host, port), timeout=timeout):
            pass
    except socket.timeout:
        return PortProbe(port=port, state="filtered", service=service, error="timeout")
    except OSError as e:
        return PortProbe(port=port, state="closed", service=service, error=str(e) or type(e).__name__)
    except Exception as e:
        logger.debug(f"Unexpected error probing {host}:{port}: {e}")
        return PortProbe(port=port, state="closed", service=service, error=f"{type(e).__name__}: {e}")
    return PortProbe(port=port, state="open", service=service)


class PortEngine(BaseEngine):
    """
    Probes the candidate TCP ports of the target host concurrently.

    One worker thread per port, so a scan of the full candidate set takes
    about one timeout in the worst case, not sixteen.
    """

    probe_port = staticmethod(probe_port)

    @property
    def name(self) -> str:
        return "ports"

    def execute(self, target: ScanTarget, config: Dict[str, Any]) -> EngineResult:
        result = EngineResult(engine_name=self.name)

        timeout = float(config.get("timeout", DEFAULT_PROBE_TIMEOUT))
        ports = tuple(config.get("ports") or CANDIDATE_PORTS)

        probes = self.probe(target.hostname, ports, timeout)
        open_ports = [p.port for p in probes if p.is_open]

        result.data = {"ports": probes, "open": open_ports}
        result.metadata = {
            "ports_checked": len(ports),
            "open_count": len(open_ports),
            "timeout": timeout,
        }
        logger.info(
            f"Port probe {target.hostname}: {len(open_ports)}/{len(ports)} open {open_ports}"
        )
        return result

    def probe(self, host: str, ports: Iterable[int], timeout: float) -> List[PortProbe]:
        """Probe every port concurrently; results keep the order of `ports`."""
        ports = list(ports)
        if not ports:
            return []
        with ThreadPoolExecutor(max_workers=len(ports), thread_name_prefix="port-probe") as pool:
            return list(pool.map(lambda port: self.probe_port(host, port, timeout), ports))
