"""Domain enumerations for the image routing service."""

from __future__ import annotations

import enum


class OperationKind(str, enum.Enum):
    """Logical operation carried by a routed request."""

    GENERATE = "generate"
    COMPARE = "compare"

    @property
    def path(self) -> str:
        """Worker endpoint that serves this operation."""
        return _OPERATION_PATHS[self]

    @property
    def supports_fallback(self) -> bool:
        """Only generation can be substituted locally without a backend."""
        return self in _FALLBACK_ELIGIBLE


_OPERATION_PATHS: dict[OperationKind, str] = {
    OperationKind.GENERATE: "/api/generate-image",
    OperationKind.COMPARE: "/api/compare-images",
}

_FALLBACK_ELIGIBLE: frozenset[OperationKind] = frozenset({OperationKind.GENERATE})


class ProbeStatus(str, enum.Enum):
    """Outcome of an out-of-band backend health probe."""

    UP = "UP"
    DOWN = "DOWN"
