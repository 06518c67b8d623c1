"""Base balance fetcher interface and shared HTTP client management.

All balance fetchers inherit from BaseBalanceFetcher and implement the
fetch_balance() method. A shared httpx.AsyncClient is used across all
fetchers to avoid connection overhead.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseBalanceFetcher):
        name = "myfetcher"

        async def fetch_balance(self, address: str, token: str) -> float | None:
            response = await self._get(f"https://api.example.com/{token}/{address}")
            return float(response.json()["balance"])
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar

import httpx

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherConfigError(FetcherError):
    """Raised when fetcher configuration is invalid (e.g., missing endpoint)."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseBalanceFetcher(ABC):
    """Abstract base class for stake balance fetchers.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "indexer")
        - fetch_balance(): Async method resolving a peer's token balance

    :cvar name: Unique identifier for this fetcher.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar endpoint: Source location (URL, RPC URL or file path).
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Fetcher identification
    name: ClassVar[str] = ""

    # Default timeout for HTTP requests (seconds)
    DEFAULT_TIMEOUT = 2.0

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize the fetcher.

        :param endpoint: Source location; meaning depends on the fetcher.
        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Request timeout in seconds (default: 2).
        """
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def has_api_key(self) -> bool:
        """Check if this fetcher has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all fetcher instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        client = BaseBalanceFetcher._shared_client
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(10.0, connect=5.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
            BaseBalanceFetcher._shared_client = client
        return client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseBalanceFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseBalanceFetcher._shared_client = None

    @abstractmethod
    async def fetch_balance(self, address: str, token: str) -> float | None:
        """Fetch a peer's balance of the reputation token.

        :param address: Peer identifier / address holding the token.
        :param token: Token ticker or contract address, per fetcher.
        :returns: Balance as float, or None if it could not be resolved.
        """
        pass

    async def close(self) -> None:
        """Release resources held by this fetcher."""
        await self.close_shared_client()

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise FetcherHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e


# Registry of available fetchers (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseBalanceFetcher]] = {}


def register_fetcher(cls: type[BaseBalanceFetcher]) -> type[BaseBalanceFetcher]:
    """Decorator to register a fetcher class in the global registry.

    :param cls: Fetcher class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If fetcher has no name defined.

    .. code-block:: python

        @register_fetcher
        class IndexerFetcher(BaseBalanceFetcher):
            name = "indexer"
            ...
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(
    name: str,
    endpoint: str | None = None,
    api_key: str | None = None,
    timeout: float | None = None,
) -> BaseBalanceFetcher:
    """Get a fetcher instance by name.

    :param name: Fetcher name (e.g., "static", "indexer", "erc20").
    :param endpoint: Optional source location.
    :param api_key: Optional API key.
    :param timeout: Optional request timeout in seconds.
    :returns: Fetcher instance.
    :raises ValueError: If fetcher name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY.keys()))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](endpoint=endpoint, api_key=api_key, timeout=timeout)


def get_available_fetchers() -> list[str]:
    """Get list of available fetcher names.

    :returns: Sorted list of registered fetcher names.
    """
    return sorted(FETCHER_REGISTRY.keys())
