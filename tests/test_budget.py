"""
Privacy budget ledger tests.
"""

import threading
from datetime import datetime, timedelta

import pytest

from core.budget import PrivacyBudgetLedger
from core.config import PrivacyConfig


def test_new_tenant_has_full_budget():
    """A tenant without an entry starts at the initial budget."""
    ledger = PrivacyBudgetLedger()
    assert ledger.remaining("t1") == 1.0
    assert ledger.has_budget("t1")
    assert ledger.status() == {}


def test_consume_never_below_zero():
    """Consumption clamps at 0 regardless of amount."""
    ledger = PrivacyBudgetLedger()
    assert ledger.consume("t1", 0.7) == pytest.approx(0.3)
    assert ledger.consume("t1", 0.7) == 0.0
    assert ledger.consume("t1", 5.0) == 0.0
    assert ledger.remaining("t1") == 0.0
    assert ledger.budget("t1").exhausted


def test_has_budget_false_at_reserve():
    """Nine default deductions reach the 0.1 reserve and exclude the tenant."""
    ledger = PrivacyBudgetLedger(default_consumption=0.1, reserve_threshold=0.1)
    for _ in range(8):
        ledger.consume("t1")
        assert ledger.has_budget("t1")
    ledger.consume("t1")
    assert ledger.remaining("t1") == pytest.approx(0.1)
    assert not ledger.has_budget("t1")


def test_negative_consumption_rejected():
    ledger = PrivacyBudgetLedger()
    with pytest.raises(ValueError):
        ledger.consume("t1", -0.1)
    with pytest.raises(ValueError):
        ledger.try_consume("t1", -0.1)


def test_try_consume_does_not_spend_when_excluded():
    """An excluded tenant's budget is left untouched."""
    ledger = PrivacyBudgetLedger()
    ledger.consume("t1", 0.95)
    before = ledger.remaining("t1")
    assert ledger.try_consume("t1") is False
    assert ledger.remaining("t1") == before


def test_try_consume_is_atomic_across_threads():
    """Concurrent check-and-consume never over-spends a tenant."""
    ledger = PrivacyBudgetLedger(default_consumption=0.25, reserve_threshold=0.1, num_shards=4)
    results = []
    results_lock = threading.Lock()
    barrier = threading.Barrier(20)

    def worker():
        barrier.wait()
        ok = ledger.try_consume("shared")
        with results_lock:
            results.append(ok)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # 1.0 -> 0.75 -> 0.5 -> 0.25 -> 0.0; the fifth check sees 0.0
    assert sum(results) == 4
    assert ledger.remaining("shared") == 0.0


def test_reset_snapshots_and_clears():
    """Reset returns the pre-reset state and restores every tenant."""
    ledger = PrivacyBudgetLedger()
    ledger.consume("a", 0.2)
    ledger.consume("b", 0.5)

    snapshot = ledger.reset()

    assert snapshot == {"a": pytest.approx(0.8), "b": pytest.approx(0.5)}
    assert ledger.status() == {}
    assert ledger.remaining("a") == 1.0


def test_scheduled_reset_lifecycle():
    """Resets run only once the interval has elapsed."""
    now = {"value": datetime(2026, 1, 1, 0, 0)}
    ledger = PrivacyBudgetLedger(reset_interval_hours=24, clock=lambda: now["value"])
    ledger.consume("a", 0.5)

    assert not ledger.reset_due(now["value"] + timedelta(hours=23))
    assert ledger.reset_if_due(now["value"] + timedelta(hours=23)) is False
    assert ledger.remaining("a") == pytest.approx(0.5)

    now["value"] = now["value"] + timedelta(hours=24)
    assert ledger.reset_if_due() is True
    assert ledger.remaining("a") == 1.0
    assert ledger.last_reset == now["value"]
    assert not ledger.reset_due()


def test_scheduled_reset_runs_once_per_interval():
    """A second scheduler in the same interval must not wipe new consumption."""
    now = {"value": datetime(2026, 1, 1, 0, 0)}
    ledger = PrivacyBudgetLedger(reset_interval_hours=24, clock=lambda: now["value"])
    now["value"] = now["value"] + timedelta(hours=25)

    assert ledger.reset_if_due() is True
    ledger.consume("t", 0.5)
    assert ledger.reset_if_due() is False
    assert ledger.remaining("t") == pytest.approx(0.5)


def test_concurrent_schedulers_reset_once():
    now = {"value": datetime(2026, 1, 1, 0, 0)}
    ledger = PrivacyBudgetLedger(reset_interval_hours=24, clock=lambda: now["value"])
    now["value"] = now["value"] + timedelta(hours=25)

    barrier = threading.Barrier(8)
    results = []
    results_lock = threading.Lock()

    def worker():
        barrier.wait()
        ran = ledger.reset_if_due()
        with results_lock:
            results.append(ran)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1


def test_shard_assignment_is_stable():
    """The same tenant always maps to the same shard."""
    ledger = PrivacyBudgetLedger(num_shards=8)
    assert ledger._shard_for("tenant-42") is ledger._shard_for("tenant-42")


def test_from_config():
    cfg = PrivacyConfig(noise_level=0.2, reserve_threshold=0.3, num_shards=4)
    ledger = PrivacyBudgetLedger.from_config(cfg)
    assert ledger.default_consumption == 0.2
    assert ledger.reserve_threshold == 0.3
    ledger.consume("t")
    assert ledger.remaining("t") == pytest.approx(0.8)
    assert "Privacy Budget Ledger" in ledger.summary()


def test_invalid_construction():
    with pytest.raises(ValueError):
        PrivacyBudgetLedger(num_shards=0)
    with pytest.raises(ValueError):
        PrivacyBudgetLedger(reserve_threshold=1.0)
