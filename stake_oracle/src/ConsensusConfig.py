"""ConsensusConfig: Tunable thresholds for a consensus deployment.

.. code-block:: python

    >>> config = ConsensusConfig(minimum_stake_threshold=250)
    >>> config.slashing_threshold
    3
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ConsensusConfig:
    """Thresholds shared by the orchestrator, slashing engine and discovery.

    :ivar minimum_stake_threshold: Minimum balance a peer needs to take part.
    :ivar slashing_threshold: Offense count at which a peer is blacklisted.
    :ivar outlier_z_score_limit: Z-score above which a price is an outlier.
    :ivar balance_timeout: Seconds allowed for each balance lookup.
    """

    DEFAULT_MINIMUM_STAKE_THRESHOLD = 100.0
    DEFAULT_SLASHING_THRESHOLD = 3
    DEFAULT_OUTLIER_Z_SCORE_LIMIT = 2.0
    DEFAULT_BALANCE_TIMEOUT = 2.0

    minimum_stake_threshold: float = DEFAULT_MINIMUM_STAKE_THRESHOLD
    slashing_threshold: int = DEFAULT_SLASHING_THRESHOLD
    outlier_z_score_limit: float = DEFAULT_OUTLIER_Z_SCORE_LIMIT
    balance_timeout: float = DEFAULT_BALANCE_TIMEOUT

    def __post_init__(self) -> None:
        """Validate thresholds.

        :raises ValueError: If any threshold is out of range.
        """
        if self.minimum_stake_threshold < 0:
            raise ValueError("minimum_stake_threshold must not be negative")
        if self.slashing_threshold < 1:
            raise ValueError("slashing_threshold must be at least 1")
        if self.outlier_z_score_limit <= 0:
            raise ValueError("outlier_z_score_limit must be positive")
        if self.balance_timeout <= 0:
            raise ValueError("balance_timeout must be positive")
