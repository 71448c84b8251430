"""
Durable object storage for mirrored images.
"""

from .blob_store import BlobStore, SupabaseBlobStore, UploadOutcome

__all__ = [
    "BlobStore",
    "SupabaseBlobStore",
    "UploadOutcome",
]
