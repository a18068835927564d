"""CPU load sampler built on the differential rate sampler."""

import logging
from collections.abc import Callable

from ratetop.errors import AcquisitionError
from ratetop.models import CPU_COUNTERS, CpuCoreLoad, CpuLoad, Snapshot
from ratetop.sampler import PercentOfTotal, RateSampler
from ratetop.sources import CounterSource, now_ms

logger = logging.getLogger(__name__)

# Key of the synthetic all-cores entry
AGGREGATE = "all"

DEFAULT_DEBOUNCE_MS = 200


class CpuLoadSampler:
    """
    Per-core and aggregate CPU load from cumulative tick counters.

    Each refresh acquires one snapshot per logical core, feeds it to that
    core's entry and feeds the element-wise sum to the aggregate entry. Inside
    the debounce window nothing is acquired and cached loads are published.
    """

    def __init__(
        self,
        source: CounterSource,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        """
        Initialize the CpuLoadSampler.

        Args:
            source: Where raw tick counters come from.
            debounce_ms: Minimum interval between two acquisitions.
            clock: Millisecond clock, the same one the source stamps with.
        """
        self._source = source
        self._clock = clock
        self._sampler = RateSampler(CPU_COUNTERS, PercentOfTotal(), debounce_ms)
        self._cores: list[int] = []

    @property
    def sampler(self) -> RateSampler:
        return self._sampler

    @property
    def cores(self) -> list[int]:
        """Core indices seen in the latest acquisition."""
        return list(self._cores)

    def current_load(self) -> CpuLoad:
        """Refresh if due and return the load of every core and the aggregate."""
        if self._sampler.is_due(AGGREGATE, self._clock()):
            self._refresh()

        return CpuLoad(
            avgload=self.avgload(),
            current=CpuCoreLoad.from_rate(self._sampler.current(AGGREGATE)),
            cpus=[CpuCoreLoad.from_rate(self._sampler.current(index)) for index in self._cores],
        )

    def core_load(self, index: int) -> CpuCoreLoad:
        """Cached load of one core; undefined for cores not currently present."""
        if index not in self._cores:
            return CpuCoreLoad.from_rate(self._sampler.undefined)
        return CpuCoreLoad.from_rate(self._sampler.current(index))

    def _refresh(self) -> None:
        try:
            cores = self._source.cpu_times()
        except AcquisitionError as e:
            logger.warning("metric unavailable for cpu: %s", e.reason, extra={"event": "metric_unavailable"})
            return

        if not cores:
            logger.warning("metric unavailable for cpu: no cores reported", extra={"event": "metric_unavailable"})
            return

        for index, snapshot in enumerate(cores):
            self._sampler.observe(index, snapshot)

        timestamp = max(snapshot.timestamp for snapshot in cores)
        total = Snapshot.combine(cores, timestamp)
        if self._cores and len(cores) != len(self._cores):
            # Sums over different core sets are not comparable
            logger.info("core count changed from %d to %d", len(self._cores), len(cores))
            self._sampler.rebase(AGGREGATE, total)
        else:
            self._sampler.observe(AGGREGATE, total)
        self._cores = list(range(len(cores)))

    def avgload(self) -> float | None:
        """
        Highest of the 1/5/15-minute load averages divided by the core count.

        Read from the OS on every call; not subject to the debounce window and
        not reconciled with the tick-differenced load.
        """
        try:
            loads = self._source.load_average()
        except AcquisitionError as e:
            logger.warning("metric unavailable for loadavg: %s", e.reason, extra={"event": "metric_unavailable"})
            return None
        count = max(1, self._source.core_count())
        return round(max(loads) / count, 2)

    def full_load(self) -> float | None:
        """Percentage of non-idle ticks since boot, from a single reading."""
        try:
            cores = self._source.cpu_times()
        except AcquisitionError as e:
            logger.warning("metric unavailable for cpu: %s", e.reason, extra={"event": "metric_unavailable"})
            return None

        total = Snapshot.combine(cores, 0.0)
        ticks = sum(total.get(name) for name in CPU_COUNTERS)
        if ticks <= 0:
            return 0.0
        return (ticks - total.get("idle")) / ticks * 100.0
