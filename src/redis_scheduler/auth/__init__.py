"""
Module: auth
Description: Package initialization for API authentication.

- token: Authorization header check against the configured API token
"""

__all__ = []
