# securescan/scanner/base.py
"""
Base classes for the scan pipeline.

Architecture:
    ScanContext flows through:  Engines → Analyzers → ScanStore

BaseEngine:   Collects raw data from the network (TCP connects, TLS
              handshakes, an HTTP HEAD, DNS). Engines never grade; they
              only gather facts.

BaseAnalyzer: Interprets one engine's data and returns a tagged outcome:
                Analyzed(data)      the probe worked and was graded
                Unavailable(reason) the target could not be probed
              A crash inside analyze() is neither: run() logs it and
              returns None so the orchestrator omits that record.

Probe failures are data, not exceptions. Nothing here raises into the
orchestrator except ScanDeadlineExceeded.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from securescan.errors import InvalidTargetURL, ScanDeadlineExceeded
from securescan.records import now_utc

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")


# ---------------------------------------------------------------------------
# Target
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScanTarget:
    """A validated scan target. hostname is lowercased, never empty."""
    url: str
    scheme: str
    hostname: str
    port: Optional[int] = None

    @property
    def has_explicit_port(self) -> bool:
        return self.port is not None


def validate_target_url(url: Any) -> ScanTarget:
    """
    Accept an absolute http(s) URL with a hostname, reject everything else.

    Raises InvalidTargetURL; nothing is created for a rejected URL.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidTargetURL("Invalid URL format")

    raw = url.strip()
    if any(ch.isspace() for ch in raw):
        raise InvalidTargetURL("Invalid URL format")

    try:
        parsed = urlparse(raw)
        port = parsed.port          # raises ValueError on a bad port
    except ValueError:
        raise InvalidTargetURL("Invalid URL format")

    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES or not parsed.hostname:
        raise InvalidTargetURL("Invalid URL format")

    return ScanTarget(url=raw, scheme=scheme, hostname=parsed.hostname.lower(), port=port)


# ---------------------------------------------------------------------------
# Data structures: these flow through the entire pipeline
# ---------------------------------------------------------------------------

@dataclass
class EngineResult:
    """
    Standardized output from any engine run.

    Fields:
        engine_name:      Which engine produced this ("ports", "ssl", ...)
        success:          False when the engine could not reach the target at
                          all. Analyzers turn that into Unavailable.
        data:             Raw collected data, structure varies per engine.
        errors:           Error messages, first one becomes the Unavailable reason.
        duration_seconds: Wall-clock time the engine took
        metadata:         Extra info such as the timeout used.
    """
    engine_name: str
    success: bool = True
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_error(self, msg: str):
        self.errors.append(msg)

    def fail(self, msg: str) -> "EngineResult":
        self.success = False
        self.add_error(msg)
        return self


@dataclass(frozen=True)
class Analyzed:
    """The probe worked; data is the graded record(s)."""
    data: Any
    available = True


@dataclass(frozen=True)
class Unavailable:
    """The probe could not reach the target."""
    reason: str
    available = False


AnalysisOutcome = Union[Analyzed, Unavailable]


@dataclass
class ScanContext:
    """
    The data bag that flows through one scan.

    Created by the orchestrator when the scan starts running. Engines
    write into engine_results, analyzers read from there. Once set,
    scan_id and target never change.
    """
    scan_id: str
    target: ScanTarget

    # Port stage output, in candidate order
    open_ports: List[int] = field(default_factory=list)

    engine_results: Dict[str, EngineResult] = field(default_factory=dict)
    outcomes: Dict[str, Optional[AnalysisOutcome]] = field(default_factory=dict)

    started_at: Optional[datetime] = None
    # time.monotonic() value after which no new stage may start
    deadline: Optional[float] = None

    def __post_init__(self):
        if self.started_at is None:
            self.started_at = now_utc()

    @property
    def hostname(self) -> str:
        return self.target.hostname

    def is_open(self, port: int) -> bool:
        return port in self.open_ports

    def get_engine_data(self, engine_name: str) -> Dict[str, Any]:
        """Raw data from an engine, or {} if it didn't run or failed. Never raises."""
        result = self.engine_results.get(engine_name)
        if result and result.success:
            return result.data
        return {}

    def check_deadline(self, stage: str):
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise ScanDeadlineExceeded(f"Scan deadline exceeded before {stage}")


# ---------------------------------------------------------------------------
# Abstract base classes
# ---------------------------------------------------------------------------

class BaseEngine(ABC):
    """
    Abstract base for data collection engines.

    Subclasses set `name` and implement `execute(target, config)`.
    run() adds timing and turns any exception into a failed EngineResult,
    so a broken engine looks the same as an unreachable target.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique engine identifier. Used as key in ScanContext.engine_results."""
        ...

    def run(self, target: ScanTarget, config: Optional[Dict[str, Any]] = None) -> EngineResult:
        """
        Execute the engine with automatic timing and error handling.

        DO NOT OVERRIDE THIS METHOD. Override `execute()` instead.
        """
        config = config or {}
        result = EngineResult(engine_name=self.name)
        start = time.monotonic()

        try:
            result = self.execute(target, config)
            result.engine_name = self.name
        except Exception as e:
            logger.exception(f"Engine '{self.name}' failed for {target.hostname}")
            result = EngineResult(
                engine_name=self.name,
                success=False,
                errors=[f"{type(e).__name__}: {str(e)}"],
            )
        finally:
            result.duration_seconds = round(time.monotonic() - start, 2)

        return result

    @abstractmethod
    def execute(self, target: ScanTarget, config: Dict[str, Any]) -> EngineResult:
        """
        Perform the actual data collection.

        Expected, per-probe failures (refused connection, handshake error)
        belong in the returned data. Return a failed EngineResult only when
        nothing useful could be collected.
        """
        ...


class BaseAnalyzer(ABC):
    """
    Abstract base for analyzers.

    Subclasses set `name` and `required_engine`, and implement
    `analyze(ctx)`, which returns the graded record(s).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def required_engine(self) -> str:
        """Engine whose EngineResult this analyzer reads."""
        ...

    def run(self, ctx: ScanContext) -> Optional[AnalysisOutcome]:
        """
        DO NOT OVERRIDE THIS METHOD. Override `analyze()` instead.

        Returns Unavailable when the engine failed or never ran, Analyzed
        on success, and None when analyze() itself raised.
        """
        result = ctx.engine_results.get(self.required_engine)
        if result is None:
            return Unavailable(f"Engine '{self.required_engine}' did not run")
        if not result.success:
            reason = result.errors[0] if result.errors else "Connection failed"
            logger.info(f"Analyzer '{self.name}': {ctx.hostname} unavailable ({reason})")
            return Unavailable(reason)

        try:
            return Analyzed(self.analyze(ctx))
        except Exception:
            logger.exception(f"Analyzer '{self.name}' failed for {ctx.hostname}")
            return None

    @abstractmethod
    def analyze(self, ctx: ScanContext) -> Any:
        """Read ctx.get_engine_data(self.required_engine) and grade it."""
        ...
