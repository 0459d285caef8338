"""
Redis Scheduler: delayed, retried webhook delivery driven by Redis key expiry.
"""

__version__ = "1.0.0"
