"""
Module: handlers
Description: Package initialization for API route handlers.

- schedules: Schedule CRUD, listing and purge endpoints
- system: Info and stats endpoints
- dependencies: Injection of the core objects built at startup
"""

__all__ = []
