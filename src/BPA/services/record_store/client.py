"""
Realtime database REST client for benefit records.

This module provides the RecordStoreClient class, a thin read-only client
for a Firebase-style realtime database exposed over REST. Every node of the
database tree is addressable as ``<base_url>/<path>.json``; a missing node
reads as JSON ``null``.

Module Input:
    - Base URL and optional auth token from settings
    - Slash separated node paths ("firestore", "realtime/userBenefits/abc")

Module Output:
    - Decoded node values (dicts keyed by record id, scalars, or None)
    - RecordStoreError for transport, HTTP and decoding failures
"""

import asyncio
from typing import Any, Dict, Optional, Protocol

import requests

from ...core.exceptions import ConfigError, RecordStoreError
from ...core.logging_config import get_logger
from ...core.settings import settings

logger = get_logger(__name__)


class RecordStore(Protocol):
    """Narrow read interface the cache and query executor depend on."""

    async def fetch(self, path: str) -> Optional[Any]:
        """Return the value stored at ``path`` or None if the node is absent."""
        ...


def _normalize_node(value: Any) -> Any:
    """
    Present array-shaped nodes as dicts keyed by index.

    The database stores collections with sequential keys as JSON arrays and
    leaves ``null`` holes for deleted entries; callers always want a mapping.
    """
    if isinstance(value, list):
        return {str(index): item for index, item in enumerate(value) if item is not None}
    return value


class RecordStoreClient:
    """
    Read-only REST client for the realtime database.

    Uses a pooled ``requests.Session``; blocking calls are moved off the
    event loop by ``fetch``.

    Attributes:
        base_url (str): Database root URL
        timeout (float): Per-request timeout in seconds
        _auth_token (Optional[str]): Database secret or ID token
        _session (requests.Session): Pooled HTTP session

    Thread Safety:
        Safe to share across tasks; requests.Session is used read-only.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url (Optional[str]): Database root URL (default: from settings)
            auth_token (Optional[str]): Auth token (default: from settings)
            timeout (Optional[float]): Request timeout (default: from settings)
            session (Optional[requests.Session]): Preconfigured session

        Raises:
            ConfigError: If no base URL is configured
        """
        self.base_url = (base_url or settings.record_store_url or "").rstrip("/")
        self._auth_token = auth_token or settings.record_store_auth_token
        self.timeout = timeout or settings.record_store_timeout_sec

        if not self.base_url:
            raise ConfigError(
                "Record store URL not configured",
                details={"required": ["RECORD_STORE_URL"]}
            )

        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

        logger.info(f"Record store client initialized: {self.base_url}")

    def node_url(self, path: str) -> str:
        return f"{self.base_url}/{path.strip('/')}.json"

    def get_node(self, path: str) -> Optional[Any]:
        """
        Read a node synchronously.

        Args:
            path (str): Node path relative to the database root

        Returns:
            Decoded node value, or None when the node does not exist

        Raises:
            RecordStoreError: On network errors, non-2xx responses or bad JSON
        """
        url = self.node_url(path)
        params: Dict[str, str] = {}
        if self._auth_token:
            params["auth"] = self._auth_token

        logger.debug(f"GET {url}")

        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error(f"Record store returned HTTP {status} for {path}")
            raise RecordStoreError(
                f"Record store request failed with HTTP {status}",
                details={"path": path, "status_code": status}
            )
        except requests.RequestException as e:
            logger.error(f"Record store request failed for {path}: {str(e)}")
            raise RecordStoreError(
                f"Record store unreachable: {str(e)}",
                details={"path": path, "error_type": type(e).__name__}
            )

        try:
            value = response.json()
        except ValueError as e:
            raise RecordStoreError(
                "Record store returned invalid JSON",
                details={"path": path, "error": str(e)}
            )

        if value is None:
            logger.debug(f"Node not found: {path}")
            return None

        return _normalize_node(value)

    async def fetch(self, path: str) -> Optional[Any]:
        """Async wrapper around ``get_node`` running in a worker thread."""
        return await asyncio.to_thread(self.get_node, path)

    def close(self) -> None:
        self._session.close()


class InMemoryRecordStore:
    """
    Dict-backed record store.

    Resolves slash separated paths against a nested dict, matching the
    realtime database's tree semantics. Used for local runs and tests.
    """

    def __init__(self, tree: Optional[Dict[str, Any]] = None):
        self.tree = tree or {}
        self.fetch_count = 0

    async def fetch(self, path: str) -> Optional[Any]:
        self.fetch_count += 1
        node: Any = self.tree
        for segment in [s for s in path.strip("/").split("/") if s]:
            if isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
                node = node[int(segment)]
            elif isinstance(node, dict) and segment in node:
                node = node[segment]
            else:
                return None
        return _normalize_node(node)
