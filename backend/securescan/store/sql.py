# securescan/store/sql.py
"""
Flask-SQLAlchemy backed ScanStore.

Scans run on background threads with no request context, so every
operation pushes its own app context, commits, and converts rows back to
records before the session goes away. Callers never see ORM objects.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, List, Optional

from securescan.errors import ScanNotFound
from securescan.extensions import db
from securescan.models import (
    CloudSecurityScan,
    PortResult,
    ScanJob,
    SecurityHeaders,
    SslAnalysis,
    VulnerabilityFinding,
    to_db_time,
)
from securescan.records import (
    CloudFinding,
    HeaderPosture,
    PortFinding,
    Scan,
    TlsPosture,
    Vulnerability,
)
from securescan.store.base import ScanStore, check_update_fields

logger = logging.getLogger(__name__)


class SQLScanStore(ScanStore):

    def __init__(self, app):
        self._app = app

    @contextmanager
    def _session(self):
        with self._app.app_context():
            try:
                yield db.session
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

    # --- Scans ---

    def create_scan(self, url: str) -> Scan:
        with self._session() as session:
            row = ScanJob(id=str(uuid.uuid4()), url=url, status="pending")
            session.add(row)
            session.flush()
            return row.to_record()

    def get_scan(self, scan_id: str) -> Optional[Scan]:
        with self._session() as session:
            row = session.get(ScanJob, scan_id)
            return row.to_record() if row else None

    def update_scan(self, scan_id: str, **changes: Any) -> Scan:
        check_update_fields(changes)
        with self._session() as session:
            row = session.get(ScanJob, scan_id)
            if row is None:
                raise ScanNotFound(scan_id)
            if "status" in changes:
                row.status = changes["status"]
            if "completed_at" in changes:
                row.completed_at = to_db_time(changes["completed_at"])
            if "error_message" in changes:
                message = changes["error_message"]
                row.error_message = message[:500] if message else None
            if "results" in changes:
                row.result_json = changes["results"]
            session.flush()
            return row.to_record()

    # --- Children ---

    def _add(self, model, record):
        with self._session() as session:
            if session.get(ScanJob, record.scan_id) is None:
                raise ScanNotFound(record.scan_id)
            row = model.from_record(record)
            session.add(row)
            session.flush()
            return row.to_record()

    def _list(self, model, scan_id: str) -> List[Any]:
        with self._session() as session:
            rows = (
                session.query(model)
                .filter(model.scan_id == scan_id)
                .order_by(model.id.asc())
                .all()
            )
            return [r.to_record() for r in rows]

    def _first(self, model, scan_id: str) -> Optional[Any]:
        with self._session() as session:
            row = (
                session.query(model)
                .filter(model.scan_id == scan_id)
                .order_by(model.id.asc())
                .first()
            )
            return row.to_record() if row else None

    def add_port_finding(self, finding: PortFinding) -> PortFinding:
        return self._add(PortResult, finding)

    def add_vulnerability(self, vulnerability: Vulnerability) -> Vulnerability:
        return self._add(VulnerabilityFinding, vulnerability)

    def add_tls_posture(self, posture: TlsPosture) -> TlsPosture:
        return self._add(SslAnalysis, posture)

    def add_header_posture(self, posture: HeaderPosture) -> HeaderPosture:
        return self._add(SecurityHeaders, posture)

    def add_cloud_finding(self, finding: CloudFinding) -> CloudFinding:
        return self._add(CloudSecurityScan, finding)

    def list_port_findings(self, scan_id: str) -> List[PortFinding]:
        return self._list(PortResult, scan_id)

    def list_vulnerabilities(self, scan_id: str) -> List[Vulnerability]:
        return self._list(VulnerabilityFinding, scan_id)

    def get_tls_posture(self, scan_id: str) -> Optional[TlsPosture]:
        return self._first(SslAnalysis, scan_id)

    def get_header_posture(self, scan_id: str) -> Optional[HeaderPosture]:
        return self._first(SecurityHeaders, scan_id)

    def list_cloud_findings(self, scan_id: str) -> List[CloudFinding]:
        return self._list(CloudSecurityScan, scan_id)
