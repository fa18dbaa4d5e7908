"""Beacon health management, beacon message protocol and tag trilateration for indoor location tracking."""

__version__ = "0.2.0"
__all__ = ["errors", "domain", "protocol", "processor", "manager", "transport"]