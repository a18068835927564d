"""Shared fixtures: a controllable clock and an in-memory counter source."""

import pytest

from ratetop.errors import AcquisitionError
from ratetop.models import Snapshot
from ratetop.sources import InterfaceReading


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeSource:
    """Counter source backed by plain dicts, stamped with a FakeClock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.cores: list[dict[str, int]] = []
        self.loadavg: tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.nics: dict[str, dict[str, int]] = {}
        self.operstates: dict[str, str] = {}
        self.default: str | None = None
        self.failing: set[str] = set()
        self.cpu_reads = 0
        self.nic_reads: dict[str, int] = {}

    def cpu_times(self) -> list[Snapshot]:
        self.cpu_reads += 1
        if "cpu" in self.failing:
            raise AcquisitionError("cpu", "simulated failure")
        return [Snapshot(timestamp=self.clock(), counters=dict(core)) for core in self.cores]

    def load_average(self) -> tuple[float, float, float]:
        if "loadavg" in self.failing:
            raise AcquisitionError("loadavg", "simulated failure")
        return self.loadavg

    def core_count(self) -> int:
        return len(self.cores) or 1

    def interfaces(self) -> list[str]:
        if "*" in self.failing:
            raise AcquisitionError("*", "simulated failure")
        return list(self.nics)

    def default_interface(self) -> str | None:
        return self.default

    def interface_counters(self, name: str) -> InterfaceReading:
        self.nic_reads[name] = self.nic_reads.get(name, 0) + 1
        counters = self.nics.get(name)
        if name in self.failing or counters is None:
            raise AcquisitionError(name, "no such interface")
        return InterfaceReading(
            snapshot=Snapshot(timestamp=self.clock(), counters=dict(counters)),
            operstate=self.operstates.get(name, "up"),
        )

    def set_nic(self, name: str, rx_bytes: int = 0, tx_bytes: int = 0, **others: int) -> None:
        counters = {
            "rx_bytes": rx_bytes,
            "tx_bytes": tx_bytes,
            "rx_dropped": 0,
            "rx_errors": 0,
            "tx_dropped": 0,
            "tx_errors": 0,
        }
        counters.update(others)
        self.nics[name] = counters


def cpu_ticks(user: int = 0, system: int = 0, nice: int = 0, irq: int = 0, idle: int = 0) -> dict[str, int]:
    return {"user": user, "system": system, "nice": nice, "irq": irq, "idle": idle}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_000_000.0)


@pytest.fixture
def source(clock: FakeClock) -> FakeSource:
    return FakeSource(clock)
