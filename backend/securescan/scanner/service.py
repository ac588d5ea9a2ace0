# securescan/scanner/service.py
"""
Scan service: the entry point callers use.

start_scan() validates the URL before anything is stored, creates a
pending scan, and runs the orchestrator on a daemon thread. The thread
is kept on a ScanHandle so callers (and tests) can wait for it instead
of polling.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from securescan.config import ScanSettings
from securescan.records import Scan, ScanView
from securescan.scanner.base import validate_target_url
from securescan.scanner.orchestrator import ScanOrchestrator
from securescan.store.base import ScanStore

logger = logging.getLogger(__name__)


@dataclass
class ScanHandle:
    scan_id: str
    status: str
    # the scan as accepted, before the orchestrator touched it
    scan: Optional[Scan] = None
    thread: Optional[threading.Thread] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.thread is None or not self.thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scan's thread ends. True if it has."""
        if self.thread is not None:
            self.thread.join(timeout)
        return self.done


class ScanService:

    def __init__(
        self,
        store: ScanStore,
        orchestrator: Optional[ScanOrchestrator] = None,
        settings: Optional[ScanSettings] = None,
    ):
        self.store = store
        self.settings = settings or ScanSettings()
        self.orchestrator = orchestrator or ScanOrchestrator(store, self.settings)
        self._handles: Dict[str, ScanHandle] = {}
        self._lock = threading.Lock()

    def start_scan(self, url: str) -> ScanHandle:
        """
        Accept a scan and start it in the background.

        Raises:
            InvalidTargetURL: before any scan is created.
        """
        target = validate_target_url(url)
        scan = self.store.create_scan(target.url)

        thread = threading.Thread(
            target=self._run,
            args=(scan.id, scan.url),
            name=f"scan-{scan.id[:8]}",
            daemon=True,
        )
        handle = ScanHandle(scan_id=scan.id, status=scan.status, scan=scan, thread=thread)
        with self._lock:
            self._handles[scan.id] = handle

        logger.info(f"Scan {scan.id}: accepted for {target.hostname}")
        thread.start()
        return handle

    def _run(self, scan_id: str, url: str):
        try:
            scan = self.orchestrator.execute(scan_id, url)
            handle = self.handle_for(scan_id)
            if handle is not None and scan is not None:
                handle.status = scan.status
        except Exception:
            # execute() records its own failures; this only guards the thread
            logger.exception(f"Scan {scan_id}: background thread crashed")
        finally:
            # only running scans are tracked; the caller keeps its own handle
            with self._lock:
                self._handles.pop(scan_id, None)

    def get_scan(self, scan_id: str) -> Optional[ScanView]:
        return self.store.get_scan_view(scan_id)

    def handle_for(self, scan_id: str) -> Optional[ScanHandle]:
        """The handle of a scan that is still running, else None."""
        with self._lock:
            return self._handles.get(scan_id)

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        """Wait for every scan this service still has running. True if all finished."""
        with self._lock:
            handles: List[ScanHandle] = list(self._handles.values())
        return all(h.wait(timeout) for h in handles)
