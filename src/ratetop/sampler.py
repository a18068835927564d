"""Differential rate sampler.

Turns cumulative counters sampled at irregular times into rates. One
``SamplerEntry`` is kept per key and holds the last accepted snapshot, the
last computed rate and the instant of the last refresh. Keys never share
state, so ``observe`` calls for different keys may interleave freely; calls
for the same key must be serialized by the caller.
"""

from collections.abc import Hashable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Protocol

from ratetop.models import Rate, Snapshot


class Derivation(Protocol):
    """Turns clamped counter deltas over a window into rate values."""

    def derive(self, deltas: Mapping[str, int], elapsed_ms: float) -> dict[str, float]: ...


class PercentOfTotal:
    """
    Share of each counter in the sum of all deltas, in percent.

    Used for tick counters where the counters partition the elapsed ticks.
    A window without any ticks yields 0.0 for every counter.
    """

    def derive(self, deltas: Mapping[str, int], elapsed_ms: float) -> dict[str, float]:
        total = sum(deltas.values())
        if total <= 0:
            return dict.fromkeys(deltas, 0.0)
        return {name: delta / total * 100 for name, delta in deltas.items()}


class PerSecond:
    """Absolute change per second over the elapsed window."""

    def derive(self, deltas: Mapping[str, int], elapsed_ms: float) -> dict[str, float]:
        seconds = elapsed_ms / 1000
        return {name: delta / seconds for name, delta in deltas.items()}


@dataclass(slots=True, frozen=True)
class DebouncePolicy:
    """Minimum interval between two accepted refreshes of the same key."""

    interval_ms: float

    def is_due(self, last_refresh: float, now: float) -> bool:
        """True once the interval has elapsed since ``last_refresh``."""
        return now - last_refresh >= self.interval_ms


@dataclass(slots=True)
class SamplerEntry:
    """Mutable per-key state owned by a ``RateSampler``."""

    snapshot: Snapshot
    rate: Rate
    refreshed_at: float


def clamped_deltas(previous: Snapshot, current: Snapshot, counters: Iterable[str]) -> dict[str, int]:
    """Per-counter deltas, with any decrease (reset or wrap) read as 0."""
    return {name: max(current.get(name) - previous.get(name), 0) for name in counters}


class RateSampler:
    """
    Generic differential rate sampler.

    Never raises for regressions, degenerate windows or unknown keys: these
    resolve to a clamped delta, the cached rate or the undefined rate.
    """

    def __init__(
        self,
        counters: Iterable[str],
        derivation: Derivation,
        debounce_ms: float = 0.0,
    ) -> None:
        """
        Initialize the RateSampler.

        Args:
            counters: Names of the counters tracked for every key.
            derivation: How deltas become rate values.
            debounce_ms: Minimum interval between accepted refreshes of a key.
        """
        self._counters = tuple(counters)
        self._derivation = derivation
        self._policy = DebouncePolicy(max(0.0, float(debounce_ms)))
        self._entries: dict[Hashable, SamplerEntry] = {}
        self._undefined = Rate.undefined(self._counters)

    @property
    def counters(self) -> tuple[str, ...]:
        return self._counters

    @property
    def debounce_ms(self) -> float:
        return self._policy.interval_ms

    @property
    def undefined(self) -> Rate:
        """The undefined rate returned for keys without a baseline."""
        return self._undefined

    def is_due(self, key: Hashable, now: float) -> bool:
        """
        Whether a fresh snapshot for ``key`` would be accepted at ``now``.

        Callers check this before acquiring, so no I/O happens inside the
        debounce window. Unknown keys are always due.
        """
        entry = self._entries.get(key)
        if entry is None:
            return True
        return self._policy.is_due(entry.refreshed_at, now)

    def observe(self, key: Hashable, snapshot: Snapshot) -> Rate:
        """
        Feed a fresh snapshot for ``key`` and return its current rate.

        The snapshot timestamp is the reference instant for the debounce check.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = SamplerEntry(
                snapshot=snapshot,
                rate=self._undefined,
                refreshed_at=snapshot.timestamp,
            )
            return self._undefined

        if not self._policy.is_due(entry.refreshed_at, snapshot.timestamp):
            return entry.rate

        elapsed = snapshot.timestamp - entry.snapshot.timestamp
        if elapsed <= 0:
            return entry.rate

        deltas = clamped_deltas(entry.snapshot, snapshot, self._counters)
        rate = Rate(
            values=self._derivation.derive(deltas, elapsed),
            deltas=deltas,
            ms=elapsed,
        )

        entry.snapshot = snapshot
        entry.rate = rate
        entry.refreshed_at = snapshot.timestamp
        return rate

    def rebase(self, key: Hashable, snapshot: Snapshot) -> Rate:
        """
        Replace the baseline of ``key`` without computing a rate.

        For keys whose counters stop being comparable with the stored
        baseline, such as a sum over a changed set of members. The cached rate
        is kept and the debounce window restarts at the snapshot timestamp.
        """
        entry = self._entries.get(key)
        if entry is None:
            return self.observe(key, snapshot)
        entry.snapshot = snapshot
        entry.refreshed_at = snapshot.timestamp
        return entry.rate

    def current(self, key: Hashable) -> Rate:
        """Last computed rate for ``key``, or the undefined rate."""
        entry = self._entries.get(key)
        return entry.rate if entry is not None else self._undefined

    def baseline(self, key: Hashable) -> Snapshot | None:
        """Last accepted snapshot for ``key``."""
        entry = self._entries.get(key)
        return entry.snapshot if entry is not None else None

    def keys(self) -> list[Hashable]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._entries))
