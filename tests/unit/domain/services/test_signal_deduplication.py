"""
Unit tests for the signal deduplication store.
"""

import threading
from datetime import UTC, datetime, timedelta

import pytest
import pytz

from src.domain.entities.composite_signal import DeduplicationRecord
from src.domain.services.signal_deduplication import (
    DeduplicationStore,
    generate_bar_time_key,
)

T0 = datetime(2024, 3, 12, 14, 30, tzinfo=UTC)


def _record(symbol="AAPL", detector_type="breakout_bullish", at=T0, score=80.0):
    return DeduplicationRecord(
        symbol=symbol,
        detector_type=detector_type,
        bar_time_key=generate_bar_time_key(symbol, detector_type, at),
        emitted_at=at,
        composite_score=score,
    )


class TestBarTimeKey:
    """Test bar bucket key generation."""

    def test_floors_to_five_minute_bucket(self):
        instant = T0 + timedelta(minutes=3, seconds=27)

        key = generate_bar_time_key("AAPL", "breakout_bullish", instant)

        assert key == "AAPL:breakout_bullish:2024-03-12T14:30:00+00:00"

    def test_same_bar_shares_key(self):
        first = generate_bar_time_key("SPY", "x", T0)
        second = generate_bar_time_key("SPY", "x", T0 + timedelta(minutes=4, seconds=59))
        third = generate_bar_time_key("SPY", "x", T0 + timedelta(minutes=5))

        assert first == second
        assert first != third

    def test_custom_interval(self):
        key = generate_bar_time_key("SPY", "x", T0 + timedelta(minutes=3, seconds=10), 1)

        assert key.endswith("14:33:00+00:00")

    def test_naive_instant_is_read_as_utc(self):
        naive = datetime(2024, 3, 12, 14, 32)

        assert generate_bar_time_key("SPY", "x", naive) == generate_bar_time_key("SPY", "x", T0)

    def test_other_timezones_are_converted(self):
        eastern = T0.astimezone(pytz.timezone("America/New_York"))

        assert generate_bar_time_key("SPY", "x", eastern) == generate_bar_time_key("SPY", "x", T0)


class TestRecording:
    """Test appending records."""

    def test_record_and_lookup(self):
        store = DeduplicationStore()
        record = _record()

        store.record(record)

        assert len(store) == 1
        assert store.is_duplicate("AAPL", "breakout_bullish", record.bar_time_key)
        assert not store.is_duplicate("AAPL", "breakout_bearish", record.bar_time_key)
        assert store.get_last_emission("AAPL", "breakout_bullish") == T0

    def test_duplicate_record_ignored(self, caplog):
        store = DeduplicationStore()

        store.record(_record())
        store.record(_record(score=95.0))

        assert len(store) == 1
        assert "Ignoring duplicate dedup record" in caplog.text

    def test_per_symbol_cap_drops_oldest(self):
        store = DeduplicationStore(max_records_per_symbol=3)

        for i in range(5):
            store.record(_record(at=T0 + timedelta(minutes=5 * i)))

        assert len(store) == 3
        oldest_key = generate_bar_time_key("AAPL", "breakout_bullish", T0)
        assert not store.is_duplicate("AAPL", "breakout_bullish", oldest_key)

    def test_last_emission_unknown(self):
        assert DeduplicationStore().get_last_emission("AAPL", "breakout_bullish") is None


class TestCooldownAndWindow:
    """Test cooldown and rolling window queries."""

    def test_cooldown(self):
        store = DeduplicationStore()
        store.record(_record())

        assert store.is_in_cooldown("AAPL", "breakout_bullish", T0 + timedelta(minutes=14), 15)
        assert not store.is_in_cooldown("AAPL", "breakout_bullish", T0 + timedelta(minutes=15), 15)
        assert not store.is_in_cooldown("AAPL", "mean_reversion_long", T0, 15)

    def test_count_in_window(self):
        store = DeduplicationStore()
        for minutes in (0, 20, 50, 70):
            store.record(_record(at=T0 + timedelta(minutes=minutes)))
        store.record(_record(detector_type="mean_reversion_long", at=T0 + timedelta(minutes=65)))

        now = T0 + timedelta(minutes=75)

        assert store.count_in_window("AAPL", "breakout_bullish", now=now) == 3
        assert store.count_in_window("AAPL", now=now) == 4
        assert store.count_in_window("AAPL", "breakout_bullish", timedelta(minutes=10), now) == 1

    def test_count_defaults_to_newest_record(self):
        store = DeduplicationStore()
        store.record(_record(at=T0))
        store.record(_record(at=T0 + timedelta(minutes=90)))

        assert store.count_in_window("AAPL") == 1

    def test_count_empty(self):
        assert DeduplicationStore().count_in_window("AAPL") == 0

    def test_recent_signals(self):
        store = DeduplicationStore()
        store.record(_record(at=T0))
        store.record(_record(at=T0 + timedelta(minutes=50)))

        recent = store.get_recent_signals("AAPL", T0 + timedelta(minutes=70))

        assert [r.emitted_at for r in recent] == [T0 + timedelta(minutes=50)]


class TestMaintenance:
    """Test pruning, clearing and statistics."""

    def test_prune_respects_minimum_retention(self):
        store = DeduplicationStore()
        store.record(_record(at=T0))
        store.record(_record(at=T0 + timedelta(minutes=30)))

        removed = store.prune(T0 + timedelta(minutes=75), cooldown_minutes=15)

        assert removed == 1
        assert len(store) == 1

    def test_prune_uses_longer_cooldown(self):
        store = DeduplicationStore()
        store.record(_record(at=T0))

        assert store.prune(T0 + timedelta(minutes=75), cooldown_minutes=90) == 0
        assert store.prune(T0 + timedelta(minutes=91), cooldown_minutes=90) == 1
        assert len(store) == 0

    def test_prune_frees_bar_keys(self):
        store = DeduplicationStore()
        record = _record()
        store.record(record)

        store.prune(T0 + timedelta(hours=2))

        assert not store.is_duplicate(record.symbol, record.detector_type, record.bar_time_key)

    def test_prune_enforces_history_cap(self):
        store = DeduplicationStore(max_history_size=4)
        for i, symbol in enumerate(["AAPL", "MSFT", "NVDA", "SPY", "QQQ", "IWM"]):
            store.record(_record(symbol=symbol, at=T0 + timedelta(minutes=i)))

        removed = store.prune(T0 + timedelta(minutes=10))

        assert removed == 2
        assert len(store) == 4
        assert store.get_last_emission("AAPL", "breakout_bullish") is None
        assert store.get_last_emission("IWM", "breakout_bullish") is not None

    def test_clear_and_clear_symbol(self):
        store = DeduplicationStore()
        store.record(_record(symbol="AAPL"))
        store.record(_record(symbol="MSFT"))

        store.clear_symbol("AAPL")
        assert len(store) == 1
        assert store.get_last_emission("AAPL", "breakout_bullish") is None

        store.clear()
        assert len(store) == 0

    def test_stats(self):
        store = DeduplicationStore()
        store.record(_record(symbol="AAPL", at=T0))
        store.record(_record(symbol="MSFT", at=T0 + timedelta(minutes=10)))

        stats = store.get_stats(now=T0 + timedelta(minutes=20))

        assert stats == {
            "total_signals": 2,
            "unique_symbols": 2,
            "oldest_signal_age": 1200.0,
            "newest_signal_age": 600.0,
        }

    def test_stats_empty(self):
        assert DeduplicationStore().get_stats()["total_signals"] == 0


class TestSymbolLock:
    """Test per-symbol serialisation."""

    def test_lock_is_reentrant(self):
        store = DeduplicationStore()

        with store.symbol_lock("AAPL"):
            with store.symbol_lock("AAPL"):
                store.record(_record())

        assert len(store) == 1

    def test_check_then_record_is_serialised(self):
        store = DeduplicationStore()
        record = _record()
        recorded = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            with store.symbol_lock("AAPL"):
                if not store.is_duplicate(record.symbol, record.detector_type, record.bar_time_key):
                    store.record(record)
                    recorded.append(True)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert recorded == [True]
        assert len(store) == 1

    def test_lock_released_for_symbol_without_history(self):
        store = DeduplicationStore()

        for symbol in ("AAPL", "MSFT", "NVDA"):
            with store.symbol_lock(symbol):
                assert symbol in store._symbol_locks

        assert store._symbol_locks == {}
        assert not store._lock_holders

    def test_lock_kept_while_history_exists(self):
        store = DeduplicationStore()

        with store.symbol_lock("AAPL"):
            store.record(_record())

        assert "AAPL" in store._symbol_locks

    def test_clear_symbol_drops_lock(self):
        store = DeduplicationStore()
        with store.symbol_lock("AAPL"):
            store.record(_record())
        with store.symbol_lock("SPY"):
            store.record(_record("SPY"))

        store.clear_symbol("AAPL")

        assert set(store._symbol_locks) == {"SPY"}

        store.clear()

        assert store._symbol_locks == {}

    def test_prune_drops_locks_of_expired_symbols(self):
        store = DeduplicationStore()
        with store.symbol_lock("AAPL"):
            store.record(_record())
        with store.symbol_lock("SPY"):
            store.record(_record("SPY", at=T0 + timedelta(minutes=90)))

        store.prune(T0 + timedelta(minutes=120))

        assert set(store._symbol_locks) == {"SPY"}

    def test_prune_keeps_lock_in_use(self):
        store = DeduplicationStore()
        store.record(_record())

        with store.symbol_lock("AAPL"):
            store.prune(T0 + timedelta(hours=3))
            assert "AAPL" in store._symbol_locks
            assert len(store) == 0

        assert store._symbol_locks == {}


@pytest.mark.parametrize("interval", [1, 5, 15])
def test_bucket_start_is_aligned(interval):
    key = generate_bar_time_key("SPY", "x", T0 + timedelta(minutes=7, seconds=31), interval)
    bucket = datetime.fromisoformat(key.split(":", 2)[2])

    assert bucket.minute % interval == 0
    assert bucket.second == 0
