"""ConsensusOrchestrator: Stake-weighted consensus over peer price submissions.

Algorithm (one round):
    1. Identity/Sybil filter: drop blacklisted peers and peers whose balance
       is below the minimum stake; weight survivors by sqrt(balance)
    2. Outlier filter: drop prices more than ``outlier_z_score_limit``
       standard deviations from the median and slash their peers
    3. Aggregate the survivors with a stake-weighted median

Balances must already be resolved; a round never suspends. Offenses recorded
in step 2 persist even when the round then fails.

.. code-block:: python

    >>> orchestrator = ConsensusOrchestrator(InMemoryReputationStore())
    >>> result = orchestrator.process_round([
    ...     Submission("peer_1", 100.0, 400.0),
    ...     Submission("peer_2", 101.0, 400.0),
    ... ])
    >>> result.final_price
    100.0
    >>> result.total_weight
    40.0
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from . import stats
from .ConsensusConfig import ConsensusConfig
from .ReputationStore import PeerReputationRecord, ReputationStore
from .SlashingEngine import SlashingEngine

logger = logging.getLogger(__name__)

REJECTED_BLACKLISTED = "blacklisted"
REJECTED_INSUFFICIENT_STAKE = "insufficient_stake"


class ConsensusError(Exception):
    """Base exception for failed consensus rounds.

    :ivar metadata: Details about why the round failed.
    """

    def __init__(self, message: str, metadata: dict[str, Any] | None = None):
        """Initialize the error.

        :param message: Human-readable failure reason.
        :param metadata: Optional details about the failed round.
        """
        self.metadata = metadata or {}
        super().__init__(message)


class NoQualifiedResponsesError(ConsensusError):
    """Raised when every submission fails the identity/stake filter."""

    def __init__(self, rejected: dict[str, str]):
        """Initialize with the rejected peers.

        :param rejected: Dict mapping peer id to rejection reason.
        """
        super().__init__(
            "No qualified responses for consensus.", {"rejected": rejected}
        )


class NoResponsesPassedOutlierFilterError(ConsensusError):
    """Raised when every valid response is classified as an outlier."""

    def __init__(self, outliers: dict[str, float]):
        """Initialize with the dropped outliers.

        :param outliers: Dict mapping peer id to the rejected price.
        """
        super().__init__(
            "No responses passed the outlier filter.", {"outliers": outliers}
        )


@dataclass(frozen=True)
class Submission:
    """A price submission enriched with the peer's resolved balance.

    :ivar peer_id: Submitting peer.
    :ivar price: Observed price.
    :ivar balance: Reputation token balance (0 if resolution failed).
    """

    peer_id: str
    price: float
    balance: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Submission:
        """Build a submission from a JSON-style mapping.

        Accepts either ``peerId`` or ``peer_id``; a missing balance is 0.

        :param data: Mapping with peer id, price and optional balance.
        :returns: New Submission instance.
        :raises ValueError: If the peer id or price is missing or malformed.
        """
        peer_id = data.get("peerId", data.get("peer_id"))
        if not peer_id:
            raise ValueError(f"Submission has no peer id: {dict(data)}")
        try:
            price = float(data["price"])
            balance = float(data.get("balance", 0))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed submission for {peer_id}: {e}") from e
        return cls(str(peer_id), price, balance)


@dataclass(frozen=True)
class QualifiedResponse:
    """A submission that passed the identity/stake filter.

    :ivar peer_id: Submitting peer.
    :ivar price: Observed price.
    :ivar weight: Voting weight, sqrt(balance).
    :ivar balance: Reputation token balance.
    """

    peer_id: str
    price: float
    weight: float
    balance: float


@dataclass(frozen=True)
class ConsensusResult:
    """Outcome of a successful round.

    :ivar final_price: Stake-weighted median of the qualified prices.
    :ivar participants: Number of qualified responses.
    :ivar total_weight: Sum of the qualified weights.
    :ivar peers: Peer ids that contributed to the final price.
    :ivar outliers: Dict of peers dropped (and slashed) as outliers.
    :ivar rejected: Dict of peers dropped before statistics, with reason.
    :ivar median: Median of the prices that passed the identity filter.
    :ivar std_dev: Standard deviation of those prices.
    """

    final_price: float
    participants: int
    total_weight: float
    peers: list[str] = field(default_factory=list)
    outliers: dict[str, float] = field(default_factory=dict)
    rejected: dict[str, str] = field(default_factory=dict)
    median: float = 0.0
    std_dev: float = 0.0


class ConsensusOrchestrator:
    """Runs consensus rounds against a reputation store.

    :ivar store: Reputation store consulted for blacklist status.
    :ivar config: Thresholds for this deployment.
    :ivar slashing_engine: Engine that records outlier offenses.
    """

    def __init__(
        self,
        store: ReputationStore,
        config: ConsensusConfig | None = None,
        slashing_engine: SlashingEngine | None = None,
    ) -> None:
        """Initialize the orchestrator.

        :param store: Reputation store shared with the slashing engine.
        :param config: Thresholds (default: ConsensusConfig()).
        :param slashing_engine: Optional engine; built from store and config
            when omitted.
        :raises ValueError: If slashing_engine uses a different slashing
            threshold than config.
        """
        self.store = store
        self.config = config or ConsensusConfig()
        if (
            slashing_engine is not None
            and slashing_engine.slashing_threshold != self.config.slashing_threshold
        ):
            raise ValueError(
                f"slashing_engine threshold {slashing_engine.slashing_threshold} "
                f"does not match config threshold {self.config.slashing_threshold}"
            )
        self.slashing_engine = slashing_engine or SlashingEngine(
            store, slashing_threshold=self.config.slashing_threshold
        )

    def get_reputation(self, peer_id: str) -> PeerReputationRecord:
        """Read-only status query for a peer.

        :param peer_id: Peer identifier.
        :returns: The peer's current record.
        """
        return self.store.get(peer_id)

    def process_round(self, submissions: Iterable[Submission]) -> ConsensusResult:
        """Compute the consensus price for one round of submissions.

        :param submissions: Submissions with balances already resolved.
        :returns: ConsensusResult for the round.
        :raises NoQualifiedResponsesError: If no submission passes the
            identity/stake filter.
        :raises NoResponsesPassedOutlierFilterError: If every valid response
            is an outlier.
        """
        valid, rejected = self._filter_identities(submissions)
        if not valid:
            raise NoQualifiedResponsesError(rejected)

        prices = [r.price for r in valid]
        median_price = stats.median(prices)
        std_dev = stats.standard_deviation(prices, stats.mean(prices))

        qualified, outliers = self._filter_outliers(valid, median_price, std_dev)
        if not qualified:
            raise NoResponsesPassedOutlierFilterError(outliers)

        result = ConsensusResult(
            final_price=stats.weighted_median(qualified),
            participants=len(qualified),
            total_weight=sum(r.weight for r in qualified),
            peers=[r.peer_id for r in qualified],
            outliers=outliers,
            rejected=rejected,
            median=median_price,
            std_dev=std_dev,
        )
        logger.info(
            f"Consensus reached: price={result.final_price} "
            f"participants={result.participants} "
            f"total_weight={result.total_weight:.2f} "
            f"outliers={len(outliers)} rejected={len(rejected)}"
        )
        return result

    def _filter_identities(
        self, submissions: Iterable[Submission]
    ) -> tuple[list[QualifiedResponse], dict[str, str]]:
        """Drop blacklisted and under-staked peers, weighting the rest.

        Read-only against the store.

        :returns: Tuple of (valid responses, rejected peer -> reason).
        """
        valid: list[QualifiedResponse] = []
        rejected: dict[str, str] = {}
        minimum = self.config.minimum_stake_threshold

        for submission in submissions:
            if self.store.get(submission.peer_id).blacklisted:
                logger.info(
                    f"[FILTER] Rejected submission from blacklisted peer "
                    f"{submission.peer_id}"
                )
                rejected[submission.peer_id] = REJECTED_BLACKLISTED
                continue

            if submission.balance < minimum:
                logger.info(
                    f"[FILTER] Rejected submission for Sybil threshold: "
                    f"{submission.peer_id} has {submission.balance} tokens "
                    f"(min: {minimum})"
                )
                rejected[submission.peer_id] = REJECTED_INSUFFICIENT_STAKE
                continue

            valid.append(
                QualifiedResponse(
                    peer_id=submission.peer_id,
                    price=submission.price,
                    weight=math.sqrt(submission.balance),
                    balance=submission.balance,
                )
            )

        return valid, rejected

    def _filter_outliers(
        self,
        responses: list[QualifiedResponse],
        median_price: float,
        std_dev: float,
    ) -> tuple[list[QualifiedResponse], dict[str, float]]:
        """Drop and slash responses too far from the median.

        :returns: Tuple of (qualified responses, outlier peer -> price).
        """
        qualified: list[QualifiedResponse] = []
        outliers: dict[str, float] = {}
        limit = self.config.outlier_z_score_limit

        for response in responses:
            score = stats.z_score(response.price, median_price, std_dev)
            if score > limit:
                logger.info(
                    f"[OUTLIER] Rejected submission from {response.peer_id}. "
                    f"Price: {response.price}, Median: {median_price}, "
                    f"StdDev: {std_dev:.2f}, Z: {score:.2f}"
                )
                self.slashing_engine.record_offense(response.peer_id)
                outliers[response.peer_id] = response.price
                continue
            qualified.append(response)

        return qualified, outliers
