# securescan/errors.py
"""
Exception hierarchy for the scan core.

Only input errors and fatal pipeline errors are raised as exceptions.
Probe failures never leave the engine that produced them; they become
data (see scanner/base.py: Analyzed / Unavailable).
"""

from __future__ import annotations


class SecureScanError(Exception):
    """Base class for all errors raised by the scan core."""


class InvalidTargetURL(SecureScanError, ValueError):
    """The submitted target is not a well-formed absolute http(s) URL."""


class ScanNotFound(SecureScanError, LookupError):
    """No scan exists for the given id."""

    def __init__(self, scan_id: str):
        super().__init__(f"Scan {scan_id} not found")
        self.scan_id = scan_id


class InvalidTransition(SecureScanError):
    """A scan status change that the lifecycle does not allow."""

    def __init__(self, scan_id: str, current: str, requested: str):
        super().__init__(
            f"Scan {scan_id} cannot move from '{current}' to '{requested}'"
        )
        self.scan_id = scan_id
        self.current = current
        self.requested = requested


class ScanDeadlineExceeded(SecureScanError, TimeoutError):
    """The scan ran past its overall deadline."""
