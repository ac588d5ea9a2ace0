# securescan/store/memory.py
"""In-process ScanStore. Data lives as long as the process does."""

from __future__ import annotations

import copy
import threading
import uuid
from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, List, Optional, TypeVar

from securescan.errors import ScanNotFound
from securescan.records import (
    CloudFinding,
    HeaderPosture,
    PortFinding,
    Scan,
    TlsPosture,
    Vulnerability,
)
from securescan.store.base import ScanStore, check_update_fields

R = TypeVar("R")


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryScanStore(ScanStore):
    """
    Dicts behind one lock.

    Records are deep-copied in and out. Child records are frozen but some
    carry dicts (the parsed headers), and scans are mutable.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._scans: Dict[str, Scan] = {}
        self._children: Dict[str, Dict[str, List[Any]]] = defaultdict(lambda: defaultdict(list))

    # --- Scans ---

    def create_scan(self, url: str) -> Scan:
        scan = Scan(id=_new_id(), url=url)
        with self._lock:
            self._scans[scan.id] = scan
            return copy.deepcopy(scan)

    def get_scan(self, scan_id: str) -> Optional[Scan]:
        with self._lock:
            scan = self._scans.get(scan_id)
            return copy.deepcopy(scan) if scan else None

    def update_scan(self, scan_id: str, **changes: Any) -> Scan:
        check_update_fields(changes)
        with self._lock:
            scan = self._scans.get(scan_id)
            if scan is None:
                raise ScanNotFound(scan_id)
            updated = replace(scan, **copy.deepcopy(changes))
            self._scans[scan_id] = updated
            return copy.deepcopy(updated)

    # --- Children ---

    def _add(self, kind: str, record: R) -> R:
        with self._lock:
            if record.scan_id not in self._scans:
                raise ScanNotFound(record.scan_id)
            stored = replace(copy.deepcopy(record), id=_new_id())
            self._children[record.scan_id][kind].append(stored)
            return copy.deepcopy(stored)

    def _list(self, kind: str, scan_id: str) -> List[Any]:
        with self._lock:
            if scan_id not in self._children:
                return []
            return copy.deepcopy(self._children[scan_id][kind])

    def _first(self, kind: str, scan_id: str) -> Optional[Any]:
        records = self._list(kind, scan_id)
        return records[0] if records else None

    def add_port_finding(self, finding: PortFinding) -> PortFinding:
        return self._add("ports", finding)

    def add_vulnerability(self, vulnerability: Vulnerability) -> Vulnerability:
        return self._add("vulnerabilities", vulnerability)

    def add_tls_posture(self, posture: TlsPosture) -> TlsPosture:
        return self._add("tls", posture)

    def add_header_posture(self, posture: HeaderPosture) -> HeaderPosture:
        return self._add("headers", posture)

    def add_cloud_finding(self, finding: CloudFinding) -> CloudFinding:
        return self._add("cloud", finding)

    def list_port_findings(self, scan_id: str) -> List[PortFinding]:
        return self._list("ports", scan_id)

    def list_vulnerabilities(self, scan_id: str) -> List[Vulnerability]:
        return self._list("vulnerabilities", scan_id)

    def get_tls_posture(self, scan_id: str) -> Optional[TlsPosture]:
        return self._first("tls", scan_id)

    def get_header_posture(self, scan_id: str) -> Optional[HeaderPosture]:
        return self._first("headers", scan_id)

    def list_cloud_findings(self, scan_id: str) -> List[CloudFinding]:
        return self._list("cloud", scan_id)
