"""Leaderless movement synchronization for multi-observer dispatch boards."""

__version__ = "0.1.0"
