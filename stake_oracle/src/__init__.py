"""
Stake Oracle - Reputation-Weighted Consensus Module

This module turns untrusted peer price submissions into one consensus price:
- ReputationStore: Durable per-peer offense history
- stats: Mean, median, standard deviation and weighted median
- SlashingEngine: Offense accounting and blacklisting
- ConsensusOrchestrator: Sybil filter, outlier filter, weighted median
- StakeDiscovery: Concurrent, time-boxed balance resolution
- OracleAggregator: Async facade for one oracle request
- fetchers: Modular balance fetcher implementations
"""

from .ConsensusConfig import ConsensusConfig
from .ConsensusOrchestrator import (
    ConsensusError,
    ConsensusOrchestrator,
    ConsensusResult,
    NoQualifiedResponsesError,
    NoResponsesPassedOutlierFilterError,
    QualifiedResponse,
    Submission,
)
from .OracleAggregator import OracleAggregator
from .ReputationStore import (
    InMemoryReputationStore,
    PeerReputationRecord,
    ReputationStore,
    SQLiteReputationStore,
)
from .SlashingEngine import SlashingEngine, SlashingEvent, SlashingNotice
from .StakeDiscovery import PriceObservation, StakeDiscovery

__all__ = [
    "ConsensusConfig",
    "ConsensusError",
    "ConsensusOrchestrator",
    "ConsensusResult",
    "InMemoryReputationStore",
    "NoQualifiedResponsesError",
    "NoResponsesPassedOutlierFilterError",
    "OracleAggregator",
    "PeerReputationRecord",
    "PriceObservation",
    "QualifiedResponse",
    "ReputationStore",
    "SQLiteReputationStore",
    "SlashingEngine",
    "SlashingEvent",
    "SlashingNotice",
    "StakeDiscovery",
    "Submission",
]
