"""Application services."""

from .cache import DataCache, build_data_cache, configure_data_cache, get_data_cache, reset_data_cache

__all__ = [
    "DataCache",
    "build_data_cache",
    "configure_data_cache",
    "get_data_cache",
    "reset_data_cache",
]
