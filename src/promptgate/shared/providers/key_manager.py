"""API key handling for outbound providers.

``CredentialRotator`` binds keys once at construction.  Every call to
:meth:`CredentialRotator.next_key` hands out the following key in round-robin
order so usage spreads evenly.

``KeyLeasePool`` hands keys out exclusively instead: a caller leases a key,
uses it, and releases it.  Callers wait (polling) while every key is out, and
leases held past ``lease_seconds`` are reclaimed the next time the pool is
touched.
"""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable

import structlog

from promptgate.domain.exceptions import (
    KeyLeaseNotFoundError,
    KeysBusyError,
    NoCredentialsConfiguredError,
)
from promptgate.shared.providers.types import KeyLease, LeaseGrant

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


def parse_keys(*sources: str | Iterable[str] | None) -> tuple[str, ...]:
    """Merge comma-separated strings and iterables into a de-duplicated key tuple."""
    keys: list[str] = []
    for source in sources:
        if not source:
            continue
        items = source.split(",") if isinstance(source, str) else source
        for raw in items:
            key = (raw or "").strip()
            if key and key not in keys:
                keys.append(key)
    return tuple(keys)


def _clean(keys: Iterable[str | None]) -> tuple[str, ...]:
    return tuple(k.strip() for k in keys if k and k.strip())


class CredentialRotator:
    """Round-robin API key pool for one provider."""

    def __init__(self, pool_name: str, keys: Iterable[str | None]) -> None:
        self.pool_name = pool_name
        self._keys: tuple[str, ...] = _clean(keys)
        self._index = 0
        self._lock = threading.Lock()

        logger.info("credential_pool_initialised", pool=pool_name, keys=len(self._keys))

    def next_key(self) -> str:
        """Return the next key, advancing the shared cursor.

        Raises:
            NoCredentialsConfiguredError: If the pool holds no usable keys.
        """
        if not self._keys:
            logger.error("credential_pool_empty", pool=self.pool_name)
            raise NoCredentialsConfiguredError(self.pool_name)

        with self._lock:
            key = self._keys[self._index % len(self._keys)]
            self._index = (self._index + 1) % len(self._keys)
            return key

    @property
    def key_count(self) -> int:
        return len(self._keys)

    def status(self) -> dict[str, int | str]:
        """Pool summary; never includes key material."""
        with self._lock:
            return {"pool": self.pool_name, "total": self.key_count, "cursor": self._index}


class KeyLeasePool:
    """Exclusive key leasing with bounded waiting and lease expiry.

    Keys are numbered from 1 in the order given.  A lease is free again
    once its holder calls :meth:`release` or once it has been held for more
    than ``lease_seconds``.
    """

    def __init__(
        self,
        pool_name: str,
        keys: Iterable[str | None],
        *,
        lease_seconds: float = 60.0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.pool_name = pool_name
        self._leases: dict[int, KeyLease] = {
            i: KeyLease(key_id=i, api_key=key) for i, key in enumerate(_clean(keys), start=1)
        }
        self._lease_seconds = lease_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()

        logger.info("key_lease_pool_initialised", pool=pool_name, keys=len(self._leases))

    @property
    def lease_seconds(self) -> float:
        return self._lease_seconds

    # ── Leasing ──────────────────────────────────────────────
    async def acquire(self, *, max_wait_s: float = 30.0, poll_interval_s: float = 1.0) -> LeaseGrant:
        """Lease the first free key, polling until one frees up.

        Raises:
            NoCredentialsConfiguredError: If the pool holds no keys at all.
            KeysBusyError: If no key came free within ``max_wait_s``.
        """
        if not self._leases:
            logger.error("credential_pool_empty", pool=self.pool_name)
            raise NoCredentialsConfiguredError(self.pool_name)

        started = self._clock()
        while True:
            self.release_expired()
            lease = self._take()
            if lease is not None:
                wait_ms = float(f"{(self._clock() - started) * 1000:.1f}")
                logger.info(
                    "key_lease_acquired",
                    pool=self.pool_name,
                    key_id=lease.key_id,
                    wait_ms=wait_ms,
                )
                return LeaseGrant(
                    key_id=lease.key_id,
                    api_key=lease.api_key,
                    wait_ms=wait_ms,
                    expires_in_ms=self._lease_seconds * 1000,
                )
            if self._clock() - started >= max_wait_s:
                logger.warning(
                    "key_lease_wait_exhausted",
                    pool=self.pool_name,
                    waited_s=max_wait_s,
                    keys=len(self._leases),
                )
                raise KeysBusyError(self.pool_name, len(self._leases))
            await self._sleep(poll_interval_s)

    def release(self, key_id: int) -> float:
        """Return ``key_id`` to the pool; the result is how long it was held, in ms.

        Raises:
            KeyLeaseNotFoundError: If no key carries ``key_id``.
        """
        with self._lock:
            lease = self._leases.get(key_id)
            if lease is None:
                raise KeyLeaseNotFoundError(key_id)
            held_ms = self._free(lease)
        logger.info("key_lease_released", pool=self.pool_name, key_id=key_id, held_ms=held_ms)
        return held_ms

    def release_expired(self) -> list[int]:
        """Reclaim every lease held longer than ``lease_seconds``."""
        with self._lock:
            now = self._clock()
            expired = [
                lease
                for lease in self._leases.values()
                if lease.active
                and lease.held_since is not None
                and now - lease.held_since > self._lease_seconds
            ]
            for lease in expired:
                self._free(lease)
        for lease in expired:
            logger.warning("key_lease_auto_released", pool=self.pool_name, key_id=lease.key_id)
        return [lease.key_id for lease in expired]

    # ── Status ───────────────────────────────────────────────
    def status(self) -> dict[str, Any]:
        """Counts and per-key lease state; never includes key material."""
        self.release_expired()
        with self._lock:
            keys = [
                {
                    "id": lease.key_id,
                    "status": "active" if lease.active else "available",
                    "acquired_at": lease.acquired_at,
                    "last_used": lease.last_used,
                }
                for lease in self._leases.values()
            ]
        active = sum(1 for k in keys if k["status"] == "active")
        return {
            "pool": self.pool_name,
            "total": len(keys),
            "available": len(keys) - active,
            "active": active,
            "keys": keys,
        }

    # ── Internals ────────────────────────────────────────────
    def _take(self) -> KeyLease | None:
        with self._lock:
            for lease in self._leases.values():
                if not lease.active:
                    stamp = datetime.now(timezone.utc).isoformat()
                    lease.active = True
                    lease.held_since = self._clock()
                    lease.acquired_at = stamp
                    lease.last_used = stamp
                    return lease
            return None

    def _free(self, lease: KeyLease) -> float:
        """Mark ``lease`` available (caller holds lock)."""
        held_ms = 0.0
        if lease.held_since is not None:
            held_ms = float(f"{(self._clock() - lease.held_since) * 1000:.1f}")
        lease.active = False
        lease.held_since = None
        lease.acquired_at = None
        return held_ms
