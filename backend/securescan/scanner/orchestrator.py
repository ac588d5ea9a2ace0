# securescan/scanner/orchestrator.py
"""
Scan Orchestrator: drives one scan from running to a terminal state.

Pipeline:

    1. pending → running
    2. Probe all candidate ports (join-all), persist the open ones
    3. Correlate open ports into vulnerabilities, persist them
    4. TLS posture               only if 443 is open
    5. Security header posture   only if 80 or 443 is open
    6. Cloud provider detection  always
    7. Store the results summary, running → completed

Stages 4-6 are independent. A target they cannot reach still yields a
record (an unavailable TLS or header posture; no cloud finding). A bug
inside an analyzer is logged and that record is left out. Either way the
scan carries on.

Anything else that escapes (store failure, the overall deadline) ends the
scan as failed with the error message. Children persisted before the
failure are kept. execute() never raises.

Usage from ScanService:
    orchestrator = ScanOrchestrator(store, settings)
    orchestrator.execute(scan.id, scan.url)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from securescan.config import ScanSettings
from securescan.errors import InvalidTransition, ScanNotFound
from securescan.records import HeaderPosture, Scan, ScanStatus, TlsPosture, now_utc
from securescan.scanner.analyzers import ALL_ANALYZERS
from securescan.scanner.analyzers.port_risk import correlate, to_port_findings
from securescan.scanner.base import (
    Analyzed,
    BaseAnalyzer,
    BaseEngine,
    ScanContext,
    Unavailable,
    validate_target_url,
)
from securescan.scanner.engines import ALL_ENGINES
from securescan.store.base import ScanStore

logger = logging.getLogger(__name__)

HTTP_PORT = 80
HTTPS_PORT = 443
MAX_ERROR_LENGTH = 500


class ScanOrchestrator:
    """
    Runs the scan pipeline against an injected store.

    Engines default to the ALL_ENGINES registry; pass instances to replace
    any of them (tests use canned engines so nothing touches the network).
    """

    def __init__(
        self,
        store: ScanStore,
        settings: Optional[ScanSettings] = None,
        engines: Optional[Dict[str, BaseEngine]] = None,
        analyzers: Optional[Dict[str, BaseAnalyzer]] = None,
    ):
        self.store = store
        self.settings = settings or ScanSettings()

        self.engines: Dict[str, BaseEngine] = {name: cls() for name, cls in ALL_ENGINES.items()}
        self.engines.update(engines or {})

        self.analyzers: Dict[str, BaseAnalyzer] = {name: cls() for name, cls in ALL_ANALYZERS.items()}
        self.analyzers.update(analyzers or {})

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    def transition(self, scan_id: str, status: str, **changes: Any) -> Scan:
        """Move a scan to `status`, refusing anything the lifecycle forbids."""
        scan = self.store.get_scan(scan_id)
        if scan is None:
            raise ScanNotFound(scan_id)
        if not ScanStatus.can_transition(scan.status, status):
            raise InvalidTransition(scan_id, scan.status, status)
        return self.store.update_scan(scan_id, status=status, **changes)

    def execute(self, scan_id: str, url: str) -> Optional[Scan]:
        """
        Run the full pipeline for a pending scan.

        Returns the scan in its terminal state, or None if it could not be
        started or its outcome could not be recorded.

        Raises:
            Nothing: all errors are logged and recorded on the scan.
        """
        total_start = time.monotonic()

        try:
            self.transition(scan_id, ScanStatus.RUNNING)
        except Exception:
            logger.exception(f"Scan {scan_id}: could not start")
            return None

        logger.info(f"Scan {scan_id}: started for {url}")

        try:
            summary = self._run_pipeline(scan_id, url, total_start)
            scan = self.transition(
                scan_id,
                ScanStatus.COMPLETED,
                completed_at=now_utc(),
                results=summary,
            )
        except Exception as e:
            logger.exception(f"Scan {scan_id}: failed")
            return self._mark_failed(scan_id, e)

        logger.info(
            f"Scan {scan_id}: completed in {summary['totalDuration']}s: "
            f"{summary['openPorts']} open ports, {summary['vulnerabilities']} vulnerabilities"
        )
        return scan

    def _mark_failed(self, scan_id: str, error: Exception) -> Optional[Scan]:
        message = str(error) or type(error).__name__
        try:
            return self.transition(
                scan_id,
                ScanStatus.FAILED,
                error_message=message[:MAX_ERROR_LENGTH],
                completed_at=now_utc(),
            )
        except Exception:
            logger.exception(f"Scan {scan_id}: could not record failure")
            return None

    # -------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------

    def _run_pipeline(self, scan_id: str, url: str, total_start: float) -> Dict[str, Any]:
        s = self.settings
        ctx = ScanContext(
            scan_id=scan_id,
            target=validate_target_url(url),
            deadline=(total_start + s.scan_deadline) if s.scan_deadline else None,
        )

        # --- Ports ---
        ctx.check_deadline("port probing")
        port_result = self.engines["ports"].run(ctx.target, {"timeout": s.probe_timeout})
        ctx.engine_results["ports"] = port_result
        if not port_result.success:
            raise RuntimeError(f"Port probing failed: {'; '.join(port_result.errors)}")

        probes = port_result.data.get("ports", [])
        open_findings = to_port_findings(scan_id, probes)
        ctx.open_ports = [f.port for f in open_findings]
        for finding in open_findings:
            self.store.add_port_finding(finding)

        # --- Correlation ---
        vulnerabilities = correlate(scan_id, open_findings)
        for vulnerability in vulnerabilities:
            self.store.add_vulnerability(vulnerability)

        # --- TLS ---
        tls_posture = None
        if ctx.is_open(HTTPS_PORT):
            ctx.check_deadline("TLS analysis")
            tls_posture = self._tls_stage(ctx)
            if tls_posture is not None:
                self.store.add_tls_posture(tls_posture)
        else:
            logger.debug(f"Scan {scan_id}: 443 closed, skipping TLS")

        # --- Security headers ---
        header_posture = None
        if ctx.is_open(HTTP_PORT) or ctx.is_open(HTTPS_PORT):
            ctx.check_deadline("header analysis")
            header_posture = self._header_stage(ctx)
            if header_posture is not None:
                self.store.add_header_posture(header_posture)
        else:
            logger.debug(f"Scan {scan_id}: no web port open, skipping headers")

        # --- Cloud ---
        ctx.check_deadline("cloud detection")
        cloud_findings = self._cloud_stage(ctx)
        for finding in cloud_findings:
            self.store.add_cloud_finding(finding)

        return {
            "totalPorts": len(probes),
            "openPorts": len(open_findings),
            "vulnerabilities": len(vulnerabilities),
            "sslAnalyzed": tls_posture is not None,
            "securityHeadersAnalyzed": header_posture is not None,
            "cloudResources": len(cloud_findings),
            "totalDuration": round(time.monotonic() - total_start, 2),
        }

    def _run_stage(self, ctx: ScanContext, name: str, config: Dict[str, Any]):
        """Run engine + analyzer `name`; returns Analyzed, Unavailable or None."""
        start = time.monotonic()
        ctx.engine_results[name] = self.engines[name].run(ctx.target, config)
        outcome = self.analyzers[name].run(ctx)
        ctx.outcomes[name] = outcome

        state = "omitted" if outcome is None else (
            "analyzed" if isinstance(outcome, Analyzed) else "unavailable"
        )
        logger.info(
            f"Scan {ctx.scan_id}: stage '{name}' {state} in {time.monotonic() - start:.2f}s"
        )
        return outcome

    def _tls_stage(self, ctx: ScanContext) -> Optional[TlsPosture]:
        s = self.settings
        outcome = self._run_stage(ctx, "ssl", {
            "port": HTTPS_PORT,
            "timeout": s.tls_timeout,
            "hsts_timeout": s.hsts_timeout,
        })
        if isinstance(outcome, Unavailable):
            return TlsPosture.unavailable(ctx.scan_id, ctx.hostname, outcome.reason)
        return outcome.data if outcome is not None else None

    def _header_stage(self, ctx: ScanContext) -> Optional[HeaderPosture]:
        outcome = self._run_stage(ctx, "http", {
            "url": self.header_url(ctx),
            "timeout": self.settings.header_timeout,
        })
        if isinstance(outcome, Unavailable):
            return HeaderPosture.unavailable(ctx.scan_id, ctx.hostname, outcome.reason)
        return outcome.data if outcome is not None else None

    def _cloud_stage(self, ctx: ScanContext) -> List:
        outcome = self._run_stage(ctx, "cloud", {"dns_timeout": self.settings.dns_timeout})
        if isinstance(outcome, Analyzed):
            return list(outcome.data)
        return []

    @staticmethod
    def header_url(ctx: ScanContext) -> str:
        """
        The target URL, with the scheme switched when only the other web
        port is open. URLs with an explicit port are used as given.
        """
        target = ctx.target
        if target.has_explicit_port:
            return target.url
        if target.scheme == "https" and not ctx.is_open(HTTPS_PORT) and ctx.is_open(HTTP_PORT):
            return "http" + target.url[len("https"):]
        if target.scheme == "http" and not ctx.is_open(HTTP_PORT) and ctx.is_open(HTTPS_PORT):
            return "https" + target.url[len("http"):]
        return target.url
