"""Data models for ratetop."""

from collections.abc import Iterable
from dataclasses import dataclass, field

CPU_COUNTERS = ("user", "system", "nice", "irq", "idle")
NETWORK_COUNTERS = ("rx_bytes", "tx_bytes", "rx_dropped", "rx_errors", "tx_dropped", "tx_errors")


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable reading of cumulative counters for one key at one instant."""

    timestamp: float  # Milliseconds
    counters: dict[str, int] = field(default_factory=dict)

    def get(self, name: str) -> int:
        """Return a counter value, reading missing counters as 0."""
        return self.counters.get(name, 0)

    @classmethod
    def combine(cls, snapshots: Iterable["Snapshot"], timestamp: float) -> "Snapshot":
        """Element-wise sum of several snapshots, stamped with ``timestamp``."""
        totals: dict[str, int] = {}
        for snap in snapshots:
            for name, value in snap.counters.items():
                totals[name] = totals.get(name, 0) + value
        return cls(timestamp=timestamp, counters=totals)


@dataclass(slots=True, frozen=True)
class Rate:
    """
    Rate derived from two snapshots of the same key.

    ``values`` holds a percentage share or a per-second figure per counter,
    ``deltas`` the clamped raw deltas and ``ms`` the elapsed window. The
    undefined rate has ``None`` for every value.
    """

    values: dict[str, float | None]
    deltas: dict[str, int | None]
    ms: float = 0.0

    @classmethod
    def undefined(cls, counters: Iterable[str]) -> "Rate":
        """Rate for a key without a prior baseline."""
        names = tuple(counters)
        return cls(
            values=dict.fromkeys(names),
            deltas=dict.fromkeys(names),
            ms=0.0,
        )

    @property
    def defined(self) -> bool:
        """False for the undefined sentinel."""
        return any(value is not None for value in self.values.values())

    def value(self, name: str) -> float | None:
        return self.values.get(name)

    def delta(self, name: str) -> int | None:
        return self.deltas.get(name)


@dataclass(slots=True, frozen=True)
class CpuCoreLoad:
    """Tick-differenced load of one core (or the aggregate), in percent."""

    load: float | None
    load_user: float | None
    load_system: float | None
    load_nice: float | None
    load_idle: float | None
    load_irq: float | None
    raw_load: int | None
    raw_load_user: int | None
    raw_load_system: int | None
    raw_load_nice: int | None
    raw_load_idle: int | None
    raw_load_irq: int | None

    @classmethod
    def from_rate(cls, rate: Rate) -> "CpuCoreLoad":
        if not rate.defined:
            return cls(*([None] * 12))

        busy = ("user", "system", "nice", "irq")
        return cls(
            load=sum(rate.values[name] or 0.0 for name in busy),
            load_user=rate.values["user"],
            load_system=rate.values["system"],
            load_nice=rate.values["nice"],
            load_idle=rate.values["idle"],
            load_irq=rate.values["irq"],
            raw_load=sum(rate.deltas[name] or 0 for name in busy),
            raw_load_user=rate.deltas["user"],
            raw_load_system=rate.deltas["system"],
            raw_load_nice=rate.deltas["nice"],
            raw_load_idle=rate.deltas["idle"],
            raw_load_irq=rate.deltas["irq"],
        )


@dataclass(slots=True, frozen=True)
class CpuLoad:
    """Aggregate CPU load plus one entry per logical core."""

    avgload: float | None
    current: CpuCoreLoad
    cpus: list[CpuCoreLoad]


@dataclass(slots=True, frozen=True)
class NetworkStats:
    """Throughput report for one interface."""

    iface: str
    operstate: str  # 'up', 'down', 'unknown'
    rx_bytes: int
    rx_dropped: int
    rx_errors: int
    tx_bytes: int
    tx_dropped: int
    tx_errors: int
    rx_sec: float | None  # None until a second reading exists
    tx_sec: float | None
    ms: float  # Window used, 0 when served from cache

    @classmethod
    def unavailable(cls, iface: str) -> "NetworkStats":
        return cls(
            iface=iface,
            operstate="unknown",
            rx_bytes=0,
            rx_dropped=0,
            rx_errors=0,
            tx_bytes=0,
            tx_dropped=0,
            tx_errors=0,
            rx_sec=None,
            tx_sec=None,
            ms=0.0,
        )
