"""
Result types for explicit success/failure tracking in price resolution.

A failing price source never fails a resolution; these types keep a
record of what went wrong so callers can still inspect it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(Enum):
    """Severity levels for processing errors."""

    WARNING = "warning"  # Continue processing, log issue
    ERROR = "error"  # Skip this source, continue others
    CRITICAL = "critical"  # Stop processing entirely


@dataclass
class ProcessingError:
    """
    Represents a single processing error with context.

    Attributes:
        source: Component that generated the error (e.g., "defillama")
        message: Human-readable error description
        severity: How severe the error is (affects control flow)
        context: Additional context like chain_id, phase, token count
        exception: Original exception if available
    """

    source: str
    message: str
    severity: ErrorSeverity
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source": self.source,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
        }


@dataclass
class ResolutionSummary:
    """
    Summary of one resolve_prices call.

    Counts are per phase; ``errors`` holds one entry per failing fetcher.
    """

    chain_id: int
    requested: int = 0

    seeded: int = 0
    cache_hits: int = 0
    independent_resolved: int = 0
    dependent_resolved: int = 0
    unresolved: int = 0

    fetchers_run: List[str] = field(default_factory=list)
    errors: List[ProcessingError] = field(default_factory=list)

    @property
    def resolved(self) -> int:
        return (
            self.seeded
            + self.cache_hits
            + self.independent_resolved
            + self.dependent_resolved
        )

    def add_error(self, error: ProcessingError) -> None:
        """Add an error to the summary."""
        self.errors.append(error)

    def has_errors(self) -> bool:
        """Check if any errors (not just warnings) occurred."""
        return any(
            e.severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
            for e in self.errors
        )

    def failed_sources(self) -> List[str]:
        return [e.source for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "chain_id": self.chain_id,
            "requested": self.requested,
            "resolved": self.resolved,
            "seeded": self.seeded,
            "cache_hits": self.cache_hits,
            "independent_resolved": self.independent_resolved,
            "dependent_resolved": self.dependent_resolved,
            "unresolved": self.unresolved,
            "fetchers_run": list(self.fetchers_run),
            "errors": [e.to_dict() for e in self.errors],
        }
