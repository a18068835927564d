"""Network throughput sampler built on the differential rate sampler."""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

from ratetop.errors import AcquisitionError
from ratetop.models import NETWORK_COUNTERS, NetworkStats, Rate
from ratetop.sampler import PerSecond, RateSampler
from ratetop.sources import CounterSource, now_ms

logger = logging.getLogger(__name__)

WILDCARD = "*"

DEFAULT_DEBOUNCE_MS = 500


def split_interfaces(request: str | Iterable[str]) -> list[str]:
    """
    Normalize an interface request into an ordered list of unique names.

    Strings may separate names with ``,`` or ``|``. Blank names are dropped.
    """
    if isinstance(request, str):
        parts = request.replace(",", "|").split("|")
    else:
        parts = list(request)

    names: list[str] = []
    for part in parts:
        name = part.strip()
        if name and name not in names:
            names.append(name)
    return names


class NetworkStatsSampler:
    """
    Per-interface rx/tx throughput in bytes per second.

    Requests fan out over a thread pool, one task per distinct interface, so
    a key is never observed twice at once. An interface that cannot be read
    keeps its entry untouched and is reported from cache (or as unavailable).
    """

    def __init__(
        self,
        source: CounterSource,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        clock: Callable[[], float] = now_ms,
        max_workers: int = 8,
    ) -> None:
        """
        Initialize the NetworkStatsSampler.

        Args:
            source: Where raw interface counters come from.
            debounce_ms: Minimum interval between two reads of an interface.
            clock: Millisecond clock, the same one the source stamps with.
            max_workers: Upper bound on concurrent interface reads.
        """
        self._source = source
        self._clock = clock
        self._max_workers = max(1, max_workers)
        self._sampler = RateSampler(NETWORK_COUNTERS, PerSecond(), debounce_ms)
        self._operstate: dict[str, str] = {}

    @property
    def sampler(self) -> RateSampler:
        return self._sampler

    def resolve(self, request: str | Iterable[str] | None = None) -> list[str]:
        """
        Turn a request into the interface names to sample.

        ``None`` means the default interface, ``"*"`` every live interface.
        """
        if request is None:
            default = self._source.default_interface()
            return [default] if default else []

        names = split_interfaces(request)
        if WILDCARD not in names:
            return names

        try:
            return split_interfaces(self._source.interfaces())
        except AcquisitionError as e:
            logger.warning("cannot enumerate interfaces: %s", e.reason, extra={"event": "metric_unavailable"})
            return []

    def stats(self, request: str | Iterable[str] | None = None) -> list[NetworkStats]:
        """Throughput for every requested interface, in request order."""
        names = self.resolve(request)
        if len(names) <= 1:
            return [self.stats_single(name) for name in names]

        with ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(names)),
            thread_name_prefix="NetworkStats",
        ) as pool:
            return list(pool.map(self.stats_single, names))

    def stats_single(self, iface: str) -> NetworkStats:
        """Throughput for one interface; reads counters only when due."""
        if not self._sampler.is_due(iface, self._clock()):
            return self._report(iface, self._sampler.current(iface), fresh=False)

        try:
            reading = self._source.interface_counters(iface)
        except AcquisitionError as e:
            logger.warning("metric unavailable for %s: %s", iface, e.reason, extra={"event": "metric_unavailable"})
            return self._report(iface, self._sampler.current(iface), fresh=False)

        previous = self._sampler.current(iface)
        rate = self._sampler.observe(iface, reading.snapshot)
        self._operstate[iface] = reading.operstate
        return self._report(iface, rate, fresh=rate is not previous)

    def _report(self, iface: str, rate: Rate, fresh: bool) -> NetworkStats:
        baseline = self._sampler.baseline(iface)
        if baseline is None:
            return NetworkStats.unavailable(iface)

        return NetworkStats(
            iface=iface,
            operstate=self._operstate.get(iface, "unknown"),
            rx_bytes=baseline.get("rx_bytes"),
            rx_dropped=baseline.get("rx_dropped"),
            rx_errors=baseline.get("rx_errors"),
            tx_bytes=baseline.get("tx_bytes"),
            tx_dropped=baseline.get("tx_dropped"),
            tx_errors=baseline.get("tx_errors"),
            rx_sec=rate.value("rx_bytes"),
            tx_sec=rate.value("tx_bytes"),
            ms=rate.ms if fresh else 0.0,
        )
