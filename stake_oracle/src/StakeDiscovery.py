"""StakeDiscovery: Concurrent, time-boxed balance resolution.

Architecture:
    - One lookup per observation, all issued concurrently
    - Each lookup bounded by the responsiveness window (default 2 seconds)
    - Timeouts, errors and unusable results degrade to balance 0, which the
      Sybil filter rejects; a round is never aborted by a failed lookup
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from .ConsensusConfig import ConsensusConfig
from .ConsensusOrchestrator import Submission

if TYPE_CHECKING:
    from .fetchers import BaseBalanceFetcher

logger = logging.getLogger(__name__)

DEFAULT_REPUTATION_TOKEN = "TRAC"


@dataclass(frozen=True)
class PriceObservation:
    """A raw price submission before its balance is known.

    :ivar peer_id: Submitting peer.
    :ivar price: Observed price.
    """

    peer_id: str
    price: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PriceObservation:
        """Build an observation from a JSON-style mapping.

        :param data: Mapping with ``peerId`` (or ``peer_id``) and ``price``.
        :returns: New PriceObservation instance.
        :raises ValueError: If the peer id or price is missing or malformed.
        """
        submission = Submission.from_dict({**data, "balance": 0})
        return cls(submission.peer_id, submission.price)


class StakeDiscovery:
    """Resolves reputation token balances for a round of observations.

    :ivar fetcher: Balance source.
    :ivar token: Reputation token passed to the fetcher.
    :ivar window: Timeout for each lookup in seconds.
    """

    def __init__(
        self,
        fetcher: BaseBalanceFetcher,
        token: str = DEFAULT_REPUTATION_TOKEN,
        window: float = ConsensusConfig.DEFAULT_BALANCE_TIMEOUT,
    ) -> None:
        """Initialize stake discovery.

        :param fetcher: Balance fetcher instance.
        :param token: Reputation token ticker or address (default: "TRAC").
        :param window: Per-lookup timeout in seconds (default: 2.0).
        :raises ValueError: If window is not positive.
        """
        if window <= 0:
            raise ValueError("window must be positive")
        self.fetcher = fetcher
        self.token = token
        self.window = window

    async def resolve(
        self, observations: list[PriceObservation]
    ) -> list[Submission]:
        """Attach a balance to every observation.

        :param observations: Raw observations for one round.
        :returns: Submissions in the same order, balance 0 where unresolved.
        """
        if not observations:
            return []

        balances = await asyncio.gather(
            *(self._resolve_one(o.peer_id) for o in observations)
        )

        resolved = sum(1 for b in balances if b > 0)
        logger.debug(
            f"Resolved {resolved}/{len(observations)} balances for {self.token}"
        )

        return [
            Submission(o.peer_id, o.price, balance)
            for o, balance in zip(observations, balances, strict=True)
        ]

    async def _resolve_one(self, peer_id: str) -> float:
        """Fetch a single balance with timeout.

        :param peer_id: Peer to look up.
        :returns: Balance, or 0.0 on any failure.
        """
        try:
            balance = await asyncio.wait_for(
                self.fetcher.fetch_balance(peer_id, self.token),
                timeout=self.window,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{self.fetcher.name}] Timeout fetching balance of {peer_id}")
            return 0.0
        except Exception as e:
            logger.warning(f"[{self.fetcher.name}] Error fetching balance of {peer_id}: {e}")
            return 0.0

        if balance is None:
            logger.warning(f"[{self.fetcher.name}] No balance for {peer_id}")
            return 0.0

        try:
            balance = float(balance)
        except (TypeError, ValueError):
            logger.warning(
                f"[{self.fetcher.name}] Unusable balance for {peer_id}: {balance!r}"
            )
            return 0.0

        if not math.isfinite(balance) or balance < 0:
            logger.warning(
                f"[{self.fetcher.name}] Unusable balance for {peer_id}: {balance}"
            )
            return 0.0

        return balance
