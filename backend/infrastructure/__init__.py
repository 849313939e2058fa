"""Infrastructure layer exports."""

from .blob_cache import BlobCache, FileBlobCache, InMemoryBlobCache
from .sheets import SheetFetcher

__all__ = [
    "BlobCache",
    "FileBlobCache",
    "InMemoryBlobCache",
    "SheetFetcher",
]
