from .settings import Settings, UNLIMITED_RETRIES, get_settings

__all__ = ["Settings", "UNLIMITED_RETRIES", "get_settings"]
