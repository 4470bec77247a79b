"""
HTTP Object Fetcher

Downloads an object fully into memory through a signed URL.
"""

import logging

import requests

from ..domain.errors import NotFoundError
from ..domain.file_storage.storage_repository import FetchedObject, IObjectFetcher

logger = logging.getLogger(__name__)


class HttpObjectFetcher(IObjectFetcher):
    """requests-based IObjectFetcher."""

    def __init__(self, timeout: float = 60.0, session: requests.Session = None):
        """
        Args:
            timeout: Connect and read timeout in seconds
            session: Optional session to reuse connections
        """
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, url: str) -> FetchedObject:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Fetching source object failed: {e}")
            raise NotFoundError("Source object unreachable.", original_error=e)

        if not response.ok:
            raise NotFoundError(f"Source object returned HTTP {response.status_code}.")

        return FetchedObject(
            content=response.content,
            content_type=response.headers.get("Content-Type"),
        )
