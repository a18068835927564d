"""Raw counter acquisition through psutil.

A source only reads counters and stamps them; it keeps no rate state. Every
failure surfaces as ``AcquisitionError`` so samplers can skip the affected
key for one cycle.
"""

import logging
import os
import platform
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import psutil

from ratetop.errors import AcquisitionError
from ratetop.models import Snapshot

logger = logging.getLogger(__name__)

# psutil has no routing table API; Linux exposes the IPv4 one here
PROC_NET_ROUTE = Path("/proc/net/route")


def now_ms() -> float:
    """Wall-clock time in milliseconds."""
    return time.time() * 1000


@dataclass(slots=True, frozen=True)
class InterfaceReading:
    """Cumulative interface counters plus the operational state at read time."""

    snapshot: Snapshot
    operstate: str


class CounterSource(Protocol):
    """Capability to acquire raw snapshots for CPU cores and interfaces."""

    def cpu_times(self) -> list[Snapshot]: ...

    def load_average(self) -> tuple[float, float, float]: ...

    def core_count(self) -> int: ...

    def interfaces(self) -> list[str]: ...

    def default_interface(self) -> str | None: ...

    def interface_counters(self, name: str) -> InterfaceReading: ...


def is_loopback(name: str) -> bool:
    return name.lower().startswith("lo") or "loopback" in name.lower()


def parse_default_route(contents: str) -> str | None:
    """Interface of the first default route in /proc/net/route."""
    for line in contents.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "00000000":
            return parts[0]
    return None


class PsutilSource:
    """Reads CPU and interface counters through psutil."""

    def __init__(self, clock: Callable[[], float] = now_ms, route_table: Path | None = None) -> None:
        """
        Initialize the PsutilSource.

        Args:
            clock: Millisecond clock used to stamp every snapshot.
            route_table: Routing table consulted first for the default
                interface, in /proc/net/route format. None skips it.
        """
        self._clock = clock
        self._route_table = route_table

    def cpu_times(self) -> list[Snapshot]:
        try:
            per_core = psutil.cpu_times(percpu=True)
        except (psutil.Error, OSError) as e:
            raise AcquisitionError("cpu", str(e)) from e

        timestamp = self._clock()
        cores: list[Snapshot] = []
        for times in per_core:
            # Seconds as floats; scaled to integer milliseconds
            irq = getattr(times, "irq", None)
            if irq is None:
                irq = getattr(times, "interrupt", 0.0)
            cores.append(
                Snapshot(
                    timestamp=timestamp,
                    counters={
                        "user": int(times.user * 1000),
                        "system": int(times.system * 1000),
                        "nice": int(getattr(times, "nice", 0.0) * 1000),
                        "irq": int(irq * 1000),
                        "idle": int(times.idle * 1000),
                    },
                )
            )
        if not cores:
            raise AcquisitionError("cpu", "psutil returned no cores")
        return cores

    def load_average(self) -> tuple[float, float, float]:
        try:
            return tuple(psutil.getloadavg())  # type: ignore[return-value]
        except (psutil.Error, OSError, AttributeError) as e:
            raise AcquisitionError("loadavg", str(e)) from e

    def core_count(self) -> int:
        return psutil.cpu_count(logical=True) or os.cpu_count() or 1

    def interfaces(self) -> list[str]:
        try:
            return sorted(psutil.net_io_counters(pernic=True))
        except (psutil.Error, OSError) as e:
            raise AcquisitionError("*", str(e)) from e

    def _routed_interface(self) -> str | None:
        if self._route_table is None:
            return None
        try:
            contents = self._route_table.read_text(encoding="utf-8")
        except OSError as e:
            logger.debug("cannot read %s: %s", self._route_table, e)
            return None
        return parse_default_route(contents)

    def default_interface(self) -> str | None:
        iface = self._routed_interface()
        if iface:
            return iface

        try:
            stats = psutil.net_if_stats()
        except (psutil.Error, OSError) as e:
            logger.warning("cannot list interface state: %s", e)
            return None
        for name in sorted(stats):
            if stats[name].isup and not is_loopback(name):
                return name
        return None

    def interface_counters(self, name: str) -> InterfaceReading:
        try:
            per_nic = psutil.net_io_counters(pernic=True)
            stats = psutil.net_if_stats()
        except (psutil.Error, OSError) as e:
            raise AcquisitionError(name, str(e)) from e

        io = per_nic.get(name)
        if io is None:
            raise AcquisitionError(name, "no such interface")

        st = stats.get(name)
        if st is None:
            operstate = "unknown"
        else:
            operstate = "up" if st.isup else "down"

        return InterfaceReading(
            snapshot=Snapshot(
                timestamp=self._clock(),
                counters={
                    "rx_bytes": io.bytes_recv,
                    "tx_bytes": io.bytes_sent,
                    "rx_dropped": io.dropin,
                    "rx_errors": io.errin,
                    "tx_dropped": io.dropout,
                    "tx_errors": io.errout,
                },
            ),
            operstate=operstate,
        )


def select_source(clock: Callable[[], float] = now_ms) -> CounterSource:
    """Build the source for the running platform; called once at startup."""
    system = platform.system()
    route_table = PROC_NET_ROUTE if system == "Linux" and PROC_NET_ROUTE.exists() else None
    logger.info("using psutil counter source on %s", system, extra={"event": "source_selected"})
    return PsutilSource(clock=clock, route_table=route_table)
