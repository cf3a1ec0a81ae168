"""
Shared utilities: logging, metrics, caching and the engine clock.
"""

from . import cache, clock, logging, metrics

__all__ = ["cache", "clock", "logging", "metrics"]
