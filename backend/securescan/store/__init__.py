# securescan/store/__init__.py
"""
Scan persistence.

MemoryScanStore keeps everything in process; SQLScanStore goes through
Flask-SQLAlchemy. Both implement ScanStore and are interchangeable.
"""
from securescan.store.base import ScanStore
from securescan.store.memory import MemoryScanStore
from securescan.store.sql import SQLScanStore

__all__ = ["ScanStore", "MemoryScanStore", "SQLScanStore"]
