"""
Per-Tenant Privacy Budget Ledger.

Every tenant starts each reset period with a budget of 1.0. Each time the
tenant's data contributes to a released aggregate, the configured noise level
is deducted. Tenants whose remaining budget falls to the reserve threshold are
silently excluded from further aggregation until the next reset.

CONCURRENCY:
============
The ledger is the only shared mutable state in the core. It is sharded by a
stable hash of the tenant id; each shard has its own lock, so consumption for
different tenants proceeds in parallel while consumption for the same tenant
is serialized.

- try_consume() performs check-and-consume under one lock acquisition. Two
  concurrent aggregations can never both observe sufficient budget and both
  spend it.
- reset() acquires every shard lock in index order, snapshots and clears.
  It never interleaves with an in-flight consume.

RESET LIFECYCLE:
================
Resets are explicit and schedule-driven (reset_interval_hours). Nothing on the
request path resets the ledger.
"""

import logging
import threading
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrivacyBudget:
    """Snapshot of one tenant's remaining budget."""
    tenant_id: str
    remaining: float

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0.0


def _deduct(current: float, amount: float) -> float:
    # Rounded so repeated decimal deductions land exactly on the reserve
    return max(0.0, round(current - amount, 10))


class _Shard:
    """One lock-guarded partition of the ledger."""

    __slots__ = ("lock", "entries")

    def __init__(self):
        self.lock = threading.Lock()
        self.entries: Dict[str, float] = {}


class PrivacyBudgetLedger:
    """
    Sharded, per-tenant consumable privacy budget.

    Invariant: between resets, remaining budget for any tenant is
    monotonically non-increasing and never below 0.
    """

    def __init__(
        self,
        default_consumption: float = 0.1,
        reserve_threshold: float = 0.1,
        initial_budget: float = 1.0,
        num_shards: int = 16,
        reset_interval_hours: float = 24.0,
        clock=None
    ):
        """
        Initialize ledger.

        Args:
            default_consumption: Amount deducted per aggregation (the noise level)
            reserve_threshold: Tenants at or below this remaining budget are excluded
            initial_budget: Budget of a tenant with no ledger entry
            num_shards: Number of independently locked partitions
            reset_interval_hours: Period of the scheduled reset
            clock: Optional callable returning "now" (for tests)
        """
        if num_shards < 1:
            raise ValueError(f"num_shards must be >= 1, got {num_shards}")
        if not 0 <= reserve_threshold < initial_budget:
            raise ValueError(
                f"reserve_threshold must be in [0, {initial_budget}), got {reserve_threshold}"
            )
        if default_consumption < 0:
            raise ValueError(f"default_consumption must be >= 0, got {default_consumption}")

        self.default_consumption = default_consumption
        self.reserve_threshold = reserve_threshold
        self.initial_budget = initial_budget
        self.reset_interval = timedelta(hours=reset_interval_hours)
        self._clock = clock or datetime.now
        self._shards: List[_Shard] = [_Shard() for _ in range(num_shards)]
        self._reset_lock = threading.Lock()
        self._last_reset: datetime = self._clock()

    @classmethod
    def from_config(cls, privacy_config, clock=None) -> "PrivacyBudgetLedger":
        """Build a ledger from a PrivacyConfig."""
        return cls(
            default_consumption=privacy_config.noise_level,
            reserve_threshold=privacy_config.reserve_threshold,
            initial_budget=privacy_config.initial_budget,
            num_shards=privacy_config.num_shards,
            reset_interval_hours=privacy_config.reset_interval_hours,
            clock=clock,
        )

    def _shard_for(self, tenant_id: str) -> _Shard:
        # CRC32 is stable across processes, unlike hash() on str
        index = zlib.crc32(tenant_id.encode("utf-8")) % len(self._shards)
        return self._shards[index]

    def remaining(self, tenant_id: str) -> float:
        """Get remaining budget for a tenant."""
        shard = self._shard_for(tenant_id)
        with shard.lock:
            return shard.entries.get(tenant_id, self.initial_budget)

    def budget(self, tenant_id: str) -> PrivacyBudget:
        return PrivacyBudget(tenant_id=tenant_id, remaining=self.remaining(tenant_id))

    def has_budget(self, tenant_id: str) -> bool:
        """True iff remaining budget is strictly above the reserve threshold."""
        return self.remaining(tenant_id) > self.reserve_threshold

    def consume(self, tenant_id: str, amount: Optional[float] = None) -> float:
        """
        Deduct budget for a tenant.

        Args:
            tenant_id: Tenant whose data was used
            amount: Amount to deduct (defaults to the configured noise level)

        Returns:
            Remaining budget after deduction, clamped at 0
        """
        amount = self.default_consumption if amount is None else amount
        if amount < 0:
            raise ValueError(f"Budget consumption must be >= 0, got {amount}")

        shard = self._shard_for(tenant_id)
        with shard.lock:
            current = shard.entries.get(tenant_id, self.initial_budget)
            updated = _deduct(current, amount)
            shard.entries[tenant_id] = updated

        logger.debug(f"Budget: tenant={tenant_id} consumed={amount:.4f} remaining={updated:.4f}")
        return updated

    def try_consume(self, tenant_id: str, amount: Optional[float] = None) -> bool:
        """
        Atomically check and consume budget.

        Returns:
            True if the tenant had budget above the reserve and it was consumed,
            False if the tenant is excluded (nothing is consumed)
        """
        amount = self.default_consumption if amount is None else amount
        if amount < 0:
            raise ValueError(f"Budget consumption must be >= 0, got {amount}")

        shard = self._shard_for(tenant_id)
        with shard.lock:
            current = shard.entries.get(tenant_id, self.initial_budget)
            if current <= self.reserve_threshold:
                return False
            shard.entries[tenant_id] = _deduct(current, amount)
        return True

    def status(self) -> Dict[str, float]:
        """Snapshot of every tenant with a ledger entry."""
        snapshot: Dict[str, float] = {}
        for shard in self._shards:
            with shard.lock:
                snapshot.update(shard.entries)
        return snapshot

    def _clear(self) -> Dict[str, float]:
        # Caller holds _reset_lock
        for shard in self._shards:
            shard.lock.acquire()
        try:
            snapshot: Dict[str, float] = {}
            for shard in self._shards:
                snapshot.update(shard.entries)
                shard.entries.clear()
            self._last_reset = self._clock()
        finally:
            for shard in reversed(self._shards):
                shard.lock.release()
        return snapshot

    def reset(self) -> Dict[str, float]:
        """
        Administrative reset: atomic snapshot-and-clear.

        Acquires every shard lock in index order so no consume can interleave.
        Not callable from the request path.

        Returns:
            The ledger contents immediately before the reset
        """
        with self._reset_lock:
            snapshot = self._clear()

        logger.info(f"Privacy budget ledger reset ({len(snapshot)} tenant entries cleared)")
        return snapshot

    @property
    def last_reset(self) -> datetime:
        return self._last_reset

    def reset_due(self, now: Optional[datetime] = None) -> bool:
        """True when the scheduled reset interval has elapsed."""
        now = now or self._clock()
        return now - self._last_reset >= self.reset_interval

    def reset_if_due(self, now: Optional[datetime] = None) -> bool:
        """
        Run the scheduled reset if it is due. Returns whether it ran.

        The due check is repeated under the reset lock, so concurrent
        schedulers reset at most once per interval.
        """
        with self._reset_lock:
            if not self.reset_due(now):
                return False
            snapshot = self._clear()

        logger.info(f"Scheduled ledger reset ({len(snapshot)} tenant entries cleared)")
        return True

    def summary(self) -> str:
        """Generate a summary of ledger state."""
        snapshot = self.status()
        excluded = sum(1 for value in snapshot.values() if value <= self.reserve_threshold)
        lines = [
            "=" * 60,
            "Privacy Budget Ledger",
            "=" * 60,
            f"Shards:            {len(self._shards)}",
            f"Initial budget:    {self.initial_budget:.2f}",
            f"Reserve threshold: {self.reserve_threshold:.2f}",
            f"Consumption:       {self.default_consumption:.4f} per aggregation",
            f"Tracked tenants:   {len(snapshot)}",
            f"Excluded tenants:  {excluded}",
            f"Last reset:        {self._last_reset.isoformat()}",
            "=" * 60,
        ]
        return "\n".join(lines)
