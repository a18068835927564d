"""ratetop - CPU load and network throughput from cumulative counters."""

__version__ = "0.1.0"
