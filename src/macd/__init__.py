"""macd - launch a group of processes and report their CPU and memory usage."""

__version__ = "0.1.0"
