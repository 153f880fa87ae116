"""
Test Tools Package
Tests for the tools module (time windows, channel adapters)
"""

__all__ = [
    "test_time_windows",
    "test_channels",
]
