"""Backend routing and credential rotation framework.

Provides round-robin selection with temporary exclusion of failing
backends, bounded failover with a local fallback, and API key rotation
for outbound provider calls, plus exclusive key leasing with expiry.
"""

from promptgate.shared.providers.types import (
    BackendRequest,
    BackendResponse,
    BackendStats,
    KeyLease,
    LeaseGrant,
    PoolStatus,
    ProbeResult,
    RoutedResult,
)
from promptgate.shared.providers.health import BackendStatsTracker, ExpiringFailureSet
from promptgate.shared.providers.key_manager import (
    CredentialRotator,
    KeyLeasePool,
    parse_keys,
)
from promptgate.shared.providers.router import BackendSelector
from promptgate.shared.providers.gateway import FailoverGateway

__all__ = [
    "BackendRequest",
    "BackendResponse",
    "BackendSelector",
    "BackendStats",
    "BackendStatsTracker",
    "CredentialRotator",
    "ExpiringFailureSet",
    "FailoverGateway",
    "KeyLease",
    "KeyLeasePool",
    "LeaseGrant",
    "PoolStatus",
    "ProbeResult",
    "RoutedResult",
    "parse_keys",
]
