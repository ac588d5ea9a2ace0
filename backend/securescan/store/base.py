# securescan/store/base.py
"""
Storage contract for scans and the records they produce.

Every child record names its Scan by scan_id; add_* refuses a child whose
scan does not exist (ScanNotFound), so a store never holds orphans.
Readers return copies: mutating what a store hands back never changes
what it holds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from securescan.records import (
    CloudFinding,
    HeaderPosture,
    PortFinding,
    Scan,
    ScanView,
    TlsPosture,
    Vulnerability,
)

# Fields update_scan() may change. id, url and created_at are fixed at creation.
UPDATABLE_FIELDS = frozenset({"status", "completed_at", "error_message", "results"})


def check_update_fields(changes: dict):
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update scan field(s): {', '.join(sorted(unknown))}")


class ScanStore(ABC):

    # --- Scans ---

    @abstractmethod
    def create_scan(self, url: str) -> Scan:
        """Create a pending scan with a fresh unique id."""
        ...

    @abstractmethod
    def get_scan(self, scan_id: str) -> Optional[Scan]:
        ...

    @abstractmethod
    def update_scan(self, scan_id: str, **changes: Any) -> Scan:
        """Apply changes and return the updated scan. Raises ScanNotFound."""
        ...

    # --- Children (append-only) ---

    @abstractmethod
    def add_port_finding(self, finding: PortFinding) -> PortFinding:
        ...

    @abstractmethod
    def add_vulnerability(self, vulnerability: Vulnerability) -> Vulnerability:
        ...

    @abstractmethod
    def add_tls_posture(self, posture: TlsPosture) -> TlsPosture:
        ...

    @abstractmethod
    def add_header_posture(self, posture: HeaderPosture) -> HeaderPosture:
        ...

    @abstractmethod
    def add_cloud_finding(self, finding: CloudFinding) -> CloudFinding:
        ...

    # --- Readers (insertion order) ---

    @abstractmethod
    def list_port_findings(self, scan_id: str) -> List[PortFinding]:
        ...

    @abstractmethod
    def list_vulnerabilities(self, scan_id: str) -> List[Vulnerability]:
        ...

    @abstractmethod
    def get_tls_posture(self, scan_id: str) -> Optional[TlsPosture]:
        ...

    @abstractmethod
    def get_header_posture(self, scan_id: str) -> Optional[HeaderPosture]:
        ...

    @abstractmethod
    def list_cloud_findings(self, scan_id: str) -> List[CloudFinding]:
        ...

    def get_scan_view(self, scan_id: str) -> Optional[ScanView]:
        """The scan plus all of its children, or None if it does not exist."""
        scan = self.get_scan(scan_id)
        if scan is None:
            return None
        return ScanView(
            scan=scan,
            port_findings=self.list_port_findings(scan_id),
            vulnerabilities=self.list_vulnerabilities(scan_id),
            tls_posture=self.get_tls_posture(scan_id),
            header_posture=self.get_header_posture(scan_id),
            cloud_findings=self.list_cloud_findings(scan_id),
        )
