"""Static balance table fetcher.

Endpoint: path to a JSON object mapping peer id to balance
Network: none

Used for demos and local testing where no indexer is reachable.
"""

import json
import logging
from collections.abc import Mapping

from .base import BaseBalanceFetcher, FetcherConfigError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class StaticBalanceFetcher(BaseBalanceFetcher):
    """Fetcher serving balances from a fixed table.

    The table is read once at construction, either from the JSON file at
    ``endpoint`` or from an explicit ``balances`` mapping. The token argument
    is ignored: the table holds balances of a single token.
    """

    name = "static"

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        balances: Mapping[str, float] | None = None,
    ):
        """Initialize from a JSON file or an in-memory mapping.

        :param endpoint: Path to a JSON file of {peer_id: balance}.
        :param balances: Mapping used instead of a file.
        :raises FetcherConfigError: If neither source is given or the file
            cannot be parsed.
        """
        super().__init__(endpoint=endpoint, api_key=api_key, timeout=timeout)
        if balances is None:
            balances = self._load(endpoint)
        self.balances: dict[str, float] = {k: float(v) for k, v in balances.items()}

    @staticmethod
    def _load(path: str | None) -> dict[str, float]:
        if not path:
            raise FetcherConfigError("static fetcher requires a balances file")
        try:
            with open(path, "r") as file:
                data = json.load(file)
        except (OSError, ValueError) as e:
            raise FetcherConfigError(f"Cannot read balances from {path}: {e}") from e
        if not isinstance(data, dict):
            raise FetcherConfigError(f"Balances file {path} must hold a JSON object")
        return data

    async def fetch_balance(self, address: str, token: str) -> float | None:
        """Look up a balance in the table.

        :param address: Peer identifier.
        :param token: Ignored.
        :returns: Balance, or None for unknown peers.
        """
        balance = self.balances.get(address)
        if balance is None:
            logger.debug(f"[static] No balance for {address}")
        return balance
