"""SlashingEngine: Offense accounting and blacklisting.

Every outlier classification adds one offense to the peer's record. When the
count first reaches ``slashing_threshold`` the peer is blacklisted for good;
there is no operation that lowers a count or lifts a blacklist.

.. code-block:: python

    >>> engine = SlashingEngine(InMemoryReputationStore(), slashing_threshold=2)
    >>> engine.record_offense("rogue").blacklisted
    False
    >>> engine.record_offense("rogue").blacklisted
    True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from .ConsensusConfig import ConsensusConfig
from .ReputationStore import PeerReputationRecord, ReputationStore

logger = logging.getLogger(__name__)


class SlashingEvent(str, Enum):
    """Kind of notification emitted by :meth:`SlashingEngine.record_offense`."""

    OFFENSE_RECORDED = "offense_recorded"
    BLACKLISTED = "blacklisted"


@dataclass(frozen=True)
class SlashingNotice:
    """Notification delivered to slashing listeners.

    :ivar event: Whether this offense blacklisted the peer.
    :ivar record: The peer's record after the offense was persisted.
    """

    event: SlashingEvent
    record: PeerReputationRecord


SlashingListener = Callable[[SlashingNotice], None]


class SlashingEngine:
    """Records offenses against a :class:`ReputationStore`.

    :ivar store: Reputation store holding offense history.
    :ivar slashing_threshold: Offense count that triggers blacklisting.
    :ivar listeners: Callables notified after each recorded offense.
    """

    def __init__(
        self,
        store: ReputationStore,
        slashing_threshold: int = ConsensusConfig.DEFAULT_SLASHING_THRESHOLD,
        listeners: list[SlashingListener] | None = None,
    ) -> None:
        """Initialize the slashing engine.

        :param store: Reputation store to read and write.
        :param slashing_threshold: Offenses before blacklisting (default: 3).
        :param listeners: Optional callables receiving a SlashingNotice.
        :raises ValueError: If slashing_threshold is below 1.
        """
        if slashing_threshold < 1:
            raise ValueError("slashing_threshold must be at least 1")

        self.store = store
        self.slashing_threshold = slashing_threshold
        self.listeners: list[SlashingListener] = list(listeners or [])

    def add_listener(self, listener: SlashingListener) -> None:
        """Register a callable to be notified of future offenses."""
        self.listeners.append(listener)

    def record_offense(self, peer_id: str) -> PeerReputationRecord:
        """Add one offense to a peer, blacklisting it at the threshold.

        :param peer_id: Peer whose submission was classified as an outlier.
        :returns: The peer's updated record.
        """
        newly_blacklisted = False

        def apply(record: PeerReputationRecord) -> PeerReputationRecord:
            nonlocal newly_blacklisted
            offenses = record.offense_count + 1
            blacklist = offenses >= self.slashing_threshold
            newly_blacklisted = blacklist and not record.blacklisted
            return replace(
                record,
                offense_count=offenses,
                blacklisted=record.blacklisted or blacklist,
            )

        updated = self.store.update(peer_id, apply)

        if newly_blacklisted:
            event = SlashingEvent.BLACKLISTED
            logger.warning(
                f"[SLASHING] Peer {peer_id} has been blacklisted for repeated "
                f"outliers ({updated.offense_count} offenses)"
            )
        else:
            event = SlashingEvent.OFFENSE_RECORDED
            logger.warning(
                f"[SLASHING] Offense recorded for {peer_id}. Total offenses: "
                f"{updated.offense_count}/{self.slashing_threshold}"
            )

        notice = SlashingNotice(event=event, record=updated)
        for listener in self.listeners:
            try:
                listener(notice)
            except Exception:
                logger.exception(f"[SLASHING] Listener {listener!r} failed for {peer_id}")

        return updated
