"""HTTP endpoints served by this process."""

from .local_storage import local_storage_bp

__all__ = ["local_storage_bp"]
