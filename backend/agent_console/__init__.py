"""Agent console backend: streamed chat and voice sessions with live fan-out."""

__version__ = "0.1.0"
