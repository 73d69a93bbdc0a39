"""Deterministic deposit addresses and fund routing to a treasury."""

__version__ = "0.1.0"
