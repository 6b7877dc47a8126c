"""Klu Core - local model runtime and tool orchestration."""

__version__ = "0.1.0"
