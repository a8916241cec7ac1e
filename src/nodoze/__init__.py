"""NoDoze: keep the host awake on demand."""

__version__ = "0.1.0"
