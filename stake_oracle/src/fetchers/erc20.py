"""On-chain ERC-20 balance fetcher.

Endpoint: JSON-RPC URL of an EVM node
Token: ERC-20 contract address (not a ticker)
Calls: decimals() once per token, balanceOf(address) per lookup
"""

import logging

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from .base import BaseBalanceFetcher, FetcherConfigError, register_fetcher

logger = logging.getLogger(__name__)

# Minimal ABI covering the two view functions we call.
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@register_fetcher
class ERC20BalanceFetcher(BaseBalanceFetcher):
    """Fetcher reading token balances straight from the chain.

    Raw balances are scaled down by the token's ``decimals()``.
    """

    name = "erc20"

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize the Web3 connection.

        :param endpoint: JSON-RPC URL.
        :raises FetcherConfigError: If no endpoint is configured.
        """
        super().__init__(endpoint=endpoint, api_key=api_key, timeout=timeout)
        if not endpoint:
            raise FetcherConfigError("erc20 fetcher requires an RPC endpoint")
        self.w3 = AsyncWeb3(AsyncHTTPProvider(endpoint))
        self._decimals: dict[str, int] = {}

    async def close(self) -> None:
        """Disconnect the RPC provider session and the shared HTTP client."""
        await self.w3.provider.disconnect()
        await super().close()

    def _contract(self, token: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(token), abi=ERC20_ABI
        )

    async def _get_decimals(self, token: str) -> int:
        if token not in self._decimals:
            contract = self._contract(token)
            self._decimals[token] = await contract.functions.decimals().call()
        return self._decimals[token]

    async def fetch_balance(self, address: str, token: str) -> float | None:
        """Fetch ``balanceOf(address)`` for the token contract.

        :param address: Peer's EVM address.
        :param token: ERC-20 contract address.
        :returns: Balance in whole tokens, or None on failure.
        """
        try:
            decimals = await self._get_decimals(token)
            raw = await self._contract(token).functions.balanceOf(
                Web3.to_checksum_address(address)
            ).call()
            return raw / (10 ** decimals)

        except (Web3Exception, ValueError, OSError) as e:
            logger.warning(f"[erc20] Failed to fetch balance of {address}: {e}")
            return None
