"""
SoftMapper Faults - Core types.

Defines:
- Severity levels
- FaultDomain (CONFIG, MODEL)
- Fault base class
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """How bad a fault is; FATAL means the caller cannot carry on."""
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain(str, Enum):
    """Functional area a fault belongs to."""
    CONFIG = "config"    # configuration loading and validation
    MODEL = "model"      # mappers, statements, connections, relations

    def __str__(self) -> str:
        return self.value


# Severity used when a fault does not pass one
DEFAULT_SEVERITY = {
    FaultDomain.CONFIG: Severity.FATAL,
    FaultDomain.MODEL: Severity.ERROR,
}


class Fault(Exception):
    """
    Structured error raised by SoftMapper.

    Attributes:
        code: Stable machine-readable identifier (e.g. ``QUERY_FAILED``)
        message: Human-readable summary
        domain: ``FaultDomain`` the fault belongs to
        severity: ``Severity``; defaults per domain
        retryable: Whether repeating the operation may succeed
        metadata: Extra context (model, sql, key, ...)
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        domain: FaultDomain,
        severity: Optional[Severity] = None,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.domain = domain
        self.severity = severity or DEFAULT_SEVERITY[domain]
        self.retryable = retryable
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, domain={self.domain.value})"

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for logs and serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }
