"""
Ord Indexer API Client

A Python client for the JSON API served by a runes indexer running in server
mode (``ord server`` or a compatible candidate implementation).
Provides methods for the block height, the paginated runes listing, the rune
balances map and single rune lookups.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import SourceUnavailable

logger = logging.getLogger(__name__)


class OrdClient:
    """
    Client for interacting with an indexer's HTTP API.

    Every endpoint is a plain GET with ``Accept: application/json``; the
    indexer serves HTML otherwise.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        max_retries: int = 3,
        pool_maxsize: int = 10,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the indexer API client.

        Args:
            base_url: Base URL of the indexer (e.g., 'http://127.0.0.1:8080')
            timeout: Request timeout in seconds (default: 30)
            max_retries: Maximum number of retry attempts (default: 3). Use 0
                for probes that must fail fast, such as readiness polling.
            pool_maxsize: Connections kept per host; at least the number of
                threads sharing this client
            session: Pre-built session (used by tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["HEAD", "GET", "OPTIONS"]
            )
            adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=pool_maxsize)
            session.mount("http://", adapter)
            session.mount("https://", adapter)

        self.session = session
        self.session.headers.update({'Accept': 'application/json'})

    def _get(self, endpoint: str) -> Any:
        """
        GET an endpoint and decode its JSON body.

        Raises:
            SourceUnavailable: for connection failures, HTTP errors and
                undecodable bodies
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.HTTPError as e:
            if e.response is not None:
                logger.debug(f"HTTP {e.response.status_code} from {url}: {e.response.text[:200]}")
            raise SourceUnavailable(endpoint, e) from e
        except requests.exceptions.RequestException as e:
            raise SourceUnavailable(endpoint, e) from e
        except ValueError as e:
            # JSONDecodeError: typically an HTML page from a missing Accept header
            raise SourceUnavailable(endpoint, e, message=f"Invalid JSON from {endpoint}: {e}") from e

    # ========== Index Status ==========

    def get_block_height(self) -> Optional[int]:
        """
        Get the height of the latest indexed block.

        Returns:
            Block height, or None while the index is still empty
        """
        height = self._get('/blockheight')
        if height is None:
            return None
        if isinstance(height, bool) or not isinstance(height, int):
            raise SourceUnavailable('/blockheight', message=f"Unexpected block height payload: {height!r}")
        return height

    # ========== Rune Queries ==========

    def get_runes_page(self, page: int) -> Dict[str, Any]:
        """
        Get one page of the runes listing.

        Args:
            page: Zero-based page index

        Returns:
            Dictionary containing ``entries`` (list of ``[rune_id, detail]``
            pairs) and ``more`` (whether another page follows)
        """
        data = self._get(f'/runes/{page}')
        if not isinstance(data, dict) or not isinstance(data.get('entries'), list):
            raise SourceUnavailable(f'/runes/{page}', message=f"Unexpected runes page payload on page {page}")
        for position, entry in enumerate(data['entries']):
            if not (isinstance(entry, list) and len(entry) == 2 and isinstance(entry[1], dict)):
                raise SourceUnavailable(
                    f'/runes/{page}',
                    message=f"Entry {position} on runes page {page} is not a [rune_id, detail] pair: {entry!r}"
                )
        return data

    def get_rune_balances(self) -> Dict[str, Dict[str, Any]]:
        """
        Get every rune's outpoint balances.

        Returns:
            Mapping of spaced rune name to a mapping of ``"txhash:index"`` to amount
        """
        data = self._get('/runes/balances')
        if not isinstance(data, dict):
            raise SourceUnavailable('/runes/balances', message="Unexpected balances payload")
        return data

    def get_rune(self, spaced_rune: str) -> Dict[str, Any]:
        """
        Get a single rune by its display name.

        Args:
            spaced_rune: Display name, spacers included

        Returns:
            Dictionary with the rune detail, either bare or wrapped as
            ``{"id": ..., "entry": {...}}``
        """
        endpoint = f'/rune/{quote(spaced_rune, safe="")}'
        data = self._get(endpoint)
        if not isinstance(data, dict):
            raise SourceUnavailable(endpoint, message=f"Unexpected payload for rune {spaced_rune}")
        return data

    def health_check(self) -> bool:
        """
        Check if the server answers the block height endpoint.

        Returns:
            True if API is healthy, False otherwise
        """
        try:
            self.get_block_height()
            return True
        except SourceUnavailable as e:
            logger.info(f"Health check failed: {e}")
            return False

    # ========== Utility Methods ==========

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
