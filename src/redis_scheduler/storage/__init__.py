"""
Module: storage
Description: Package initialization for the Redis persistence layer.

- keys: Key codec binding records to timers
- records: Schedule record store
- timers: Expiring-key timers and expiry notifications
- connection: Redis client construction

All storage classes take the Redis client as a constructor argument.
"""

__all__ = []
