"""Token indexer fetcher.

Endpoint: {BASE_URL}/balance/{address}/{token}
Response: {"balance": "<number>"}
Auth: optional x-api-key header
"""

import logging

from .base import BaseBalanceFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class IndexerBalanceFetcher(BaseBalanceFetcher):
    """Fetcher for an HTTP token indexer.

    Balances are returned in whole token units; the indexer is expected to
    apply token decimals itself.
    """

    name = "indexer"
    BASE_URL = "https://api.tap.trac.network"

    @property
    def base_url(self) -> str:
        """Return the configured endpoint without a trailing slash."""
        return (self.endpoint or self.BASE_URL).rstrip("/")

    async def fetch_balance(self, address: str, token: str) -> float | None:
        """Fetch a balance from the indexer.

        :param address: Peer identifier / address.
        :param token: Token ticker (e.g., "TRAC").
        :returns: Balance or None on failure.
        """
        url = f"{self.base_url}/balance/{address}/{token}"
        headers = {"x-api-key": self.api_key} if self.has_api_key else None

        try:
            response = await self._get(url, headers=headers)
            data = response.json()

            if "balance" not in data:
                logger.warning(f"[indexer] No balance in response for {address}: {data}")
                return None

            return float(data["balance"])

        except FetcherError as e:
            logger.warning(f"[indexer] Failed to fetch {token} balance of {address}: {e}")
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"[indexer] Failed to parse response for {address}: {e}")
            return None
