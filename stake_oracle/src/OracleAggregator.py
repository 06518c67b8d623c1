"""OracleAggregator: Async facade for one oracle request.

Architecture:
    - StakeDiscovery resolves balances for all observations concurrently
    - ConsensusOrchestrator runs the round in a worker thread once every
      balance is known, so independent requests proceed in parallel
    - SlashingEngine and ConsensusOrchestrator share one ReputationStore,
      whose atomic per-peer updates keep concurrent rounds consistent
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .ConsensusConfig import ConsensusConfig
from .ConsensusOrchestrator import ConsensusOrchestrator, ConsensusResult
from .SlashingEngine import SlashingEngine, SlashingListener
from .StakeDiscovery import DEFAULT_REPUTATION_TOKEN, PriceObservation, StakeDiscovery

if TYPE_CHECKING:
    from .fetchers import BaseBalanceFetcher
    from .ReputationStore import PeerReputationRecord, ReputationStore

logger = logging.getLogger(__name__)


class OracleAggregator:
    """Wires stake discovery, slashing and consensus together.

    :ivar store: Shared reputation store.
    :ivar config: Thresholds for this deployment.
    :ivar discovery: Balance resolution collaborator.
    :ivar slashing_engine: Offense recorder.
    :ivar orchestrator: Consensus round runner.
    """

    def __init__(
        self,
        store: ReputationStore,
        fetcher: BaseBalanceFetcher,
        config: ConsensusConfig | None = None,
        token: str = DEFAULT_REPUTATION_TOKEN,
        slashing_listeners: list[SlashingListener] | None = None,
    ) -> None:
        """Initialize the aggregator.

        :param store: Reputation store.
        :param fetcher: Balance fetcher used by stake discovery.
        :param config: Thresholds (default: ConsensusConfig()).
        :param token: Reputation token ticker or address (default: "TRAC").
        :param slashing_listeners: Optional callables notified of offenses.
        """
        self.store = store
        self.config = config or ConsensusConfig()
        self.discovery = StakeDiscovery(
            fetcher, token=token, window=self.config.balance_timeout
        )
        self.slashing_engine = SlashingEngine(
            store,
            slashing_threshold=self.config.slashing_threshold,
            listeners=slashing_listeners,
        )
        self.orchestrator = ConsensusOrchestrator(
            store, config=self.config, slashing_engine=self.slashing_engine
        )

        logger.info(
            f"OracleAggregator initialized: source={fetcher.name}, token={token}, "
            f"min_stake={self.config.minimum_stake_threshold}, "
            f"slashing_threshold={self.config.slashing_threshold}, "
            f"z_limit={self.config.outlier_z_score_limit}"
        )

    async def run_round(self, observations: list[PriceObservation]) -> ConsensusResult:
        """Resolve balances and compute consensus for one request.

        :param observations: Raw price observations.
        :returns: ConsensusResult for the round.
        :raises ConsensusError: If no consensus could be reached.
        """
        submissions = await self.discovery.resolve(observations)
        return await asyncio.to_thread(self.orchestrator.process_round, submissions)

    def get_reputation(self, peer_id: str) -> PeerReputationRecord:
        """Read-only status query for a peer."""
        return self.orchestrator.get_reputation(peer_id)

    async def close(self) -> None:
        """Close the fetcher and the reputation store."""
        await self.discovery.fetcher.close()
        self.store.close()
