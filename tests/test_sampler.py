"""Tests for the differential rate sampler."""

import pytest

from ratetop.models import CPU_COUNTERS, NETWORK_COUNTERS, Snapshot
from ratetop.sampler import (
    DebouncePolicy,
    PercentOfTotal,
    PerSecond,
    RateSampler,
    clamped_deltas,
)


def net_sampler(debounce_ms: float = 500) -> RateSampler:
    return RateSampler(NETWORK_COUNTERS, PerSecond(), debounce_ms)


def cpu_sampler(debounce_ms: float = 200) -> RateSampler:
    return RateSampler(CPU_COUNTERS, PercentOfTotal(), debounce_ms)


def snap(t: float, **counters: int) -> Snapshot:
    return Snapshot(timestamp=t, counters=counters)


class TestFirstObservation:
    """A single reading never synthesizes a rate."""

    def test_first_observe_returns_undefined(self):
        """Test a key never seen before yields the undefined rate."""
        sampler = net_sampler()

        rate = sampler.observe("eth0", snap(0, rx_bytes=1000))

        assert not rate.defined
        assert rate is sampler.undefined

    def test_second_observe_inside_window_stays_undefined(self):
        """Test no premature rate within the debounce window."""
        sampler = net_sampler(500)
        sampler.observe("eth0", snap(0, rx_bytes=1000))

        rate = sampler.observe("eth0", snap(100, rx_bytes=2000))

        assert not rate.defined
        assert sampler.baseline("eth0").get("rx_bytes") == 1000


class TestRateComputation:
    """Rates between two accepted snapshots."""

    def test_bytes_per_second(self):
        """Test 2000 bytes over one second gives 2000.0/s."""
        sampler = net_sampler(500)
        sampler.observe("eth0", snap(0, rx_bytes=1000))

        rate = sampler.observe("eth0", snap(1000, rx_bytes=3000))

        assert rate.value("rx_bytes") == 2000.0
        assert rate.delta("rx_bytes") == 2000
        assert rate.ms == 1000

    def test_debounce_returns_identical_rate(self):
        """Test a call inside the window returns the cached Rate object."""
        sampler = net_sampler(500)
        sampler.observe("eth0", snap(0, rx_bytes=1000))
        first = sampler.observe("eth0", snap(1000, rx_bytes=3000))

        again = sampler.observe("eth0", snap(1100, rx_bytes=3500))

        assert again is first
        assert sampler.baseline("eth0").get("rx_bytes") == 3000

    def test_refresh_after_window_uses_new_baseline(self):
        """Test the baseline is replaced after each accepted refresh."""
        sampler = net_sampler(500)
        sampler.observe("eth0", snap(0, rx_bytes=0))
        sampler.observe("eth0", snap(1000, rx_bytes=1000))

        rate = sampler.observe("eth0", snap(1500, rx_bytes=2000))

        assert rate.value("rx_bytes") == 2000.0
        assert rate.ms == 500

    def test_missing_counter_reads_zero(self):
        """Test counters absent from a snapshot contribute no delta."""
        sampler = net_sampler(0)
        sampler.observe("eth0", snap(0, rx_bytes=0))

        rate = sampler.observe("eth0", snap(1000, rx_bytes=100))

        assert rate.value("tx_bytes") == 0.0


class TestCounterRegression:
    """Counter resets clamp to zero instead of going negative."""

    def test_idle_reset_clamps_to_zero(self):
        """Test a decreasing idle counter gives 0% idle and a new baseline."""
        sampler = cpu_sampler(200)
        sampler.observe(0, snap(0, user=100, system=100, nice=0, irq=0, idle=500))

        rate = sampler.observe(0, snap(1000, user=150, system=150, nice=0, irq=0, idle=100))

        assert rate.delta("idle") == 0
        assert rate.value("idle") == 0.0
        assert sampler.baseline(0).get("idle") == 100

    def test_rx_reset_gives_zero_rate(self):
        """Test an interface counter reset yields 0/s, not a negative rate."""
        sampler = net_sampler(0)
        sampler.observe("eth0", snap(0, rx_bytes=10_000, tx_bytes=10_000))

        rate = sampler.observe("eth0", snap(1000, rx_bytes=200, tx_bytes=10_500))

        assert rate.value("rx_bytes") == 0.0
        assert rate.value("tx_bytes") == 500.0

    def test_clamped_deltas(self):
        """Test clamped_deltas on mixed increases and decreases."""
        previous = snap(0, a=10, b=10)
        current = snap(1, a=15, b=3)

        assert clamped_deltas(previous, current, ["a", "b", "c"]) == {"a": 5, "b": 0, "c": 0}


class TestDegenerateWindow:
    """Zero or negative elapsed time never divides."""

    def test_same_timestamp_returns_cached(self):
        """Test a snapshot stamped at the baseline instant is ignored."""
        sampler = net_sampler(0)
        sampler.observe("eth0", snap(0, rx_bytes=0))
        rate = sampler.observe("eth0", snap(1000, rx_bytes=1000))

        again = sampler.observe("eth0", snap(1000, rx_bytes=5000))

        assert again is rate
        assert sampler.baseline("eth0").get("rx_bytes") == 1000

    def test_backwards_timestamp_returns_cached(self):
        """Test a snapshot older than the baseline is ignored."""
        sampler = net_sampler(0)
        sampler.observe("eth0", snap(1000, rx_bytes=0))

        rate = sampler.observe("eth0", snap(500, rx_bytes=100))

        assert not rate.defined


class TestPercentClosure:
    """CPU shares of one window add up to 100%."""

    @pytest.mark.parametrize(
        "deltas",
        [
            (1, 1, 1, 1, 1),
            (1234, 77, 3, 0, 98765),
            (0, 0, 0, 0, 7),
            (999_999, 1, 1, 1, 1),
        ],
    )
    def test_shares_sum_to_hundred(self, deltas):
        """Test user+system+nice+irq+idle is within 0.1 of 100."""
        sampler = cpu_sampler(0)
        sampler.observe("all", snap(0, user=10, system=10, nice=10, irq=10, idle=10))
        user, system, nice, irq, idle = deltas

        rate = sampler.observe(
            "all",
            snap(1000, user=10 + user, system=10 + system, nice=10 + nice, irq=10 + irq, idle=10 + idle),
        )

        assert sum(rate.values.values()) == pytest.approx(100.0, abs=0.1)

    def test_no_ticks_gives_zero_shares(self):
        """Test a window without ticks gives 0% everywhere, not a division error."""
        sampler = cpu_sampler(0)
        sampler.observe("all", snap(0, user=5, idle=5))

        rate = sampler.observe("all", snap(1000, user=5, idle=5))

        assert rate.defined
        assert all(value == 0.0 for value in rate.values.values())


class TestKeyIndependence:
    """Entries for different keys never interfere."""

    def test_observing_one_key_leaves_another_untouched(self):
        """Test updating key A does not alter key B's entry or next rate."""
        sampler = net_sampler(0)
        sampler.observe("a", snap(0, rx_bytes=0))
        sampler.observe("b", snap(0, rx_bytes=0))
        rate_b = sampler.observe("b", snap(1000, rx_bytes=4000))

        sampler.observe("a", snap(1000, rx_bytes=1000))
        sampler.observe("a", snap(2000, rx_bytes=9000))

        assert sampler.current("b") is rate_b
        assert sampler.baseline("b").get("rx_bytes") == 4000
        next_b = sampler.observe("b", snap(2000, rx_bytes=6000))
        assert next_b.value("rx_bytes") == 2000.0

    def test_one_entry_per_key(self):
        """Test repeated observations reuse the same entry."""
        sampler = net_sampler(0)
        for t in range(100):
            sampler.observe("eth0", snap(t * 1000, rx_bytes=t))
            sampler.observe("wlan0", snap(t * 1000, rx_bytes=t))

        assert len(sampler) == 2
        assert sorted(sampler.keys()) == ["eth0", "wlan0"]
        assert "eth0" in sampler
        assert "lo" not in sampler


class TestQueries:
    """current() and is_due()."""

    def test_current_for_unknown_key(self):
        """Test querying a never-observed key returns the undefined rate."""
        sampler = net_sampler()

        assert sampler.current("nope") is sampler.undefined
        assert sampler.baseline("nope") is None

    def test_is_due(self):
        """Test the debounce policy as seen by callers."""
        sampler = net_sampler(500)

        assert sampler.is_due("eth0", 0)
        sampler.observe("eth0", snap(0, rx_bytes=0))
        assert not sampler.is_due("eth0", 499)
        assert sampler.is_due("eth0", 500)

    def test_rebase_keeps_rate_and_moves_baseline(self):
        """Test rebase swaps the baseline without producing a rate."""
        sampler = net_sampler(0)
        sampler.observe("eth0", snap(0, rx_bytes=0))
        rate = sampler.observe("eth0", snap(1000, rx_bytes=1000))

        assert sampler.rebase("eth0", snap(2000, rx_bytes=50)) is rate
        assert sampler.baseline("eth0").get("rx_bytes") == 50

        after = sampler.observe("eth0", snap(3000, rx_bytes=550))
        assert after.values["rx_bytes"] == 500.0

    def test_rebase_unknown_key(self):
        """Test rebasing a never-observed key creates its baseline."""
        sampler = net_sampler()

        assert sampler.rebase("eth0", snap(0, rx_bytes=10)) is sampler.undefined
        assert sampler.baseline("eth0").get("rx_bytes") == 10

    def test_negative_debounce_is_clamped(self):
        """Test a negative interval behaves as no debounce."""
        sampler = net_sampler(-10)

        assert sampler.debounce_ms == 0.0


def test_debounce_policy():
    """Test DebouncePolicy boundary."""
    policy = DebouncePolicy(200)

    assert not policy.is_due(1000, 1199)
    assert policy.is_due(1000, 1200)
