"""Background polling engine for ratetop."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from queue import Queue

from ratetop.cpu import CpuLoadSampler
from ratetop.models import CpuLoad, NetworkStats
from ratetop.network import NetworkStatsSampler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TelemetrySnapshot:
    """One polling cycle's worth of CPU and network rates."""

    cpu: CpuLoad
    network: list[NetworkStats]
    timestamp: datetime


class SystemMonitor:
    """
    Polls the CPU and network samplers from a daemon thread.

    Each cycle's result is pushed to a thread-safe Queue. The samplers are
    only ever driven from this thread, which keeps per-key observations
    serialized.
    """

    def __init__(
        self,
        update_queue: Queue[TelemetrySnapshot],
        cpu_sampler: CpuLoadSampler,
        network_sampler: NetworkStatsSampler,
        poll_rate: float = 2.0,
        interfaces: str | None = "*",
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            cpu_sampler: Sampler for per-core and aggregate load.
            network_sampler: Sampler for interface throughput.
            poll_rate: How often to poll (in seconds). Default 2.0s.
            interfaces: Interface request, ``"*"`` for all, None for the default.
        """
        self._queue = update_queue
        self._cpu = cpu_sampler
        self._network = network_sampler
        self._poll_rate = max(0.1, poll_rate)
        self._interfaces = interfaces
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._load_history: deque[float] = deque(maxlen=60)

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()
        logger.info("monitor started", extra={"event": "monitor_started"})

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("monitor stopped", extra={"event": "monitor_stopped"})

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect())
            except Exception:
                # Keep the loop alive; the next cycle may succeed
                logger.exception("polling cycle failed", extra={"event": "cycle_failed"})

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)

    def collect(self) -> TelemetrySnapshot:
        """Run one sampling cycle."""
        cpu = self._cpu.current_load()
        if cpu.current.load is not None:
            self._load_history.append(cpu.current.load)

        return TelemetrySnapshot(
            cpu=cpu,
            network=self._network.stats(self._interfaces),
            timestamp=datetime.now(timezone.utc),
        )

    def get_load_history(self) -> list[float]:
        """Get the aggregate load history for sparkline rendering."""
        return list(self._load_history)
