"""Unit tests for ConsensusOrchestrator."""

import pytest

from stake_oracle.src.ConsensusConfig import ConsensusConfig
from stake_oracle.src.ConsensusOrchestrator import (
    ConsensusOrchestrator,
    ConsensusResult,
    NoQualifiedResponsesError,
    NoResponsesPassedOutlierFilterError,
    Submission,
)
from stake_oracle.src.ReputationStore import InMemoryReputationStore
from stake_oracle.src.SlashingEngine import SlashingEngine, SlashingNotice


@pytest.fixture
def store() -> InMemoryReputationStore:
    return InMemoryReputationStore()


@pytest.fixture
def orchestrator(store) -> ConsensusOrchestrator:
    return ConsensusOrchestrator(store)


def outlier_round() -> list[Submission]:
    return [
        Submission("peer_1", 100.0, 400.0),
        Submission("peer_2", 101.0, 400.0),
        Submission("peer_3", 100.0, 400.0),
        Submission("peer_4", 99.0, 400.0),
        Submission("malicious", 500.0, 400.0),
    ]


def blacklist_round() -> list[Submission]:
    return [
        Submission("peer_a", 100.0, 400.0),
        Submission("peer_b", 100.0, 400.0),
        Submission("peer_c", 100.0, 400.0),
        Submission("bad_actor", 9999.0, 10000.0),
    ]


class TestSubmission:
    """Test Submission parsing."""

    def test_from_dict_camel_case(self) -> None:
        sub = Submission.from_dict({"peerId": "p", "price": "64200", "balance": 400})
        assert sub == Submission("p", 64200.0, 400.0)

    def test_from_dict_snake_case_missing_balance(self) -> None:
        sub = Submission.from_dict({"peer_id": "p", "price": 1.5})
        assert sub == Submission("p", 1.5, 0.0)

    def test_from_dict_missing_peer(self) -> None:
        with pytest.raises(ValueError, match="no peer id"):
            Submission.from_dict({"price": 1})

    def test_from_dict_bad_price(self) -> None:
        with pytest.raises(ValueError, match="Malformed submission"):
            Submission.from_dict({"peerId": "p", "price": "abc"})


class TestIdentityFilter:
    """Stage A: blacklist and Sybil threshold."""

    def test_below_minimum_stake_fails(self, orchestrator) -> None:
        with pytest.raises(NoQualifiedResponsesError) as exc_info:
            orchestrator.process_round([Submission("test_sybil", 64200.0, 50.0)])

        assert str(exc_info.value) == "No qualified responses for consensus."
        assert exc_info.value.metadata["rejected"] == {"test_sybil": "insufficient_stake"}

    def test_empty_round_fails(self, orchestrator) -> None:
        with pytest.raises(NoQualifiedResponsesError):
            orchestrator.process_round([])

    def test_stake_exactly_at_minimum_passes(self, orchestrator) -> None:
        result = orchestrator.process_round([Submission("p", 10.0, 100.0)])
        assert result.participants == 1
        assert result.total_weight == 10.0

    def test_custom_minimum_stake(self, store) -> None:
        orchestrator = ConsensusOrchestrator(
            store, ConsensusConfig(minimum_stake_threshold=25)
        )
        result = orchestrator.process_round([Submission("p", 10.0, 50.0)])
        assert result.participants == 1

    def test_weight_is_sqrt_balance(self, orchestrator) -> None:
        result = orchestrator.process_round(
            [Submission("a", 10.0, 400.0), Submission("b", 10.0, 10000.0)]
        )
        assert result.total_weight == pytest.approx(120.0)

    def test_rejection_mutates_nothing(self, store, orchestrator) -> None:
        """Stage A failures leave offense counts untouched."""
        with pytest.raises(NoQualifiedResponsesError):
            orchestrator.process_round([Submission("poor", 1.0, 1.0)])
        assert store.get("poor").offense_count == 0

    def test_blacklisted_peer_rejected(self, store, orchestrator) -> None:
        store.set("banned", 3, True)

        result = orchestrator.process_round(
            [Submission("banned", 100.0, 1_000_000.0), Submission("ok", 100.0, 400.0)]
        )

        assert result.peers == ["ok"]
        assert result.rejected == {"banned": "blacklisted"}
        assert result.total_weight == 20.0
        # No additional offense for being blacklisted
        assert store.get("banned").offense_count == 3


class TestOutlierFilter:
    """Stage B: z-score outlier rejection."""

    def test_single_outlier_dropped_and_slashed(self, store, orchestrator) -> None:
        result = orchestrator.process_round(outlier_round())

        assert result.participants == 4
        assert result.final_price == 100.0
        assert result.outliers == {"malicious": 500.0}
        assert "malicious" not in result.peers
        assert store.get("malicious").offense_count == 1

    def test_identical_prices_flag_nothing(self, orchestrator) -> None:
        result = orchestrator.process_round(
            [Submission(f"p{i}", 100.0, 400.0) for i in range(5)]
        )
        assert result.std_dev == 0
        assert result.outliers == {}
        assert result.participants == 5

    def test_exclusion_iff_beyond_two_std_devs(self, orchestrator) -> None:
        """Prices within 2 std devs of the median all survive."""
        subs = [
            Submission("a", 98.0, 400.0),
            Submission("b", 100.0, 400.0),
            Submission("c", 102.0, 400.0),
        ]
        result = orchestrator.process_round(subs)
        assert result.outliers == {}
        assert result.participants == 3

    def test_z_exactly_at_limit_is_kept(self, orchestrator) -> None:
        """A price sitting exactly 2 std devs from the median survives."""
        # mean 1.5, std dev 1.5, median 1, so 4 scores exactly 2.0
        subs = [
            Submission("a", 0.0, 400.0),
            Submission("b", 1.0, 400.0),
            Submission("c", 1.0, 400.0),
            Submission("d", 4.0, 400.0),
        ]
        result = orchestrator.process_round(subs)

        assert result.std_dev == 1.5
        assert result.outliers == {}
        assert result.participants == 4

    def test_custom_z_limit(self, store) -> None:
        """A tighter limit flags moderate deviations."""
        orchestrator = ConsensusOrchestrator(
            store, ConsensusConfig(outlier_z_score_limit=0.5)
        )
        subs = [
            Submission("a", 98.0, 400.0),
            Submission("b", 100.0, 400.0),
            Submission("c", 102.0, 400.0),
        ]
        result = orchestrator.process_round(subs)
        # std dev ~1.63, so 98 and 102 sit at z ~1.22
        assert set(result.outliers) == {"a", "c"}
        assert result.peers == ["b"]

    def test_all_outliers_fails_but_keeps_offenses(self, store) -> None:
        orchestrator = ConsensusOrchestrator(
            store, ConsensusConfig(outlier_z_score_limit=0.5)
        )
        with pytest.raises(NoResponsesPassedOutlierFilterError) as exc_info:
            orchestrator.process_round(
                [Submission("a", 100.0, 400.0), Submission("b", 200.0, 400.0)]
            )

        assert str(exc_info.value) == "No responses passed the outlier filter."
        assert exc_info.value.metadata["outliers"] == {"a": 100.0, "b": 200.0}
        assert store.get("a").offense_count == 1
        assert store.get("b").offense_count == 1


class TestAggregation:
    """Stage C: weighted median and round metadata."""

    def test_result_fields(self, orchestrator) -> None:
        result = orchestrator.process_round(
            [
                Submission("a", 100.0, 100.0),
                Submission("b", 110.0, 400.0),
                Submission("c", 120.0, 2500.0),
                Submission("d", 130.0, 900.0),
            ]
        )

        assert isinstance(result, ConsensusResult)
        # weights 10, 20, 50, 30 -> target 55 -> 120
        assert result.final_price == 120.0
        assert result.participants == 4
        assert result.total_weight == pytest.approx(110.0)
        assert result.median == 115.0

    def test_qualified_subset_of_submitted(self, store, orchestrator) -> None:
        store.set("banned", 3, True)
        subs = outlier_round() + [
            Submission("poor", 100.0, 10.0),
            Submission("banned", 100.0, 400.0),
        ]

        result = orchestrator.process_round(subs)

        submitted = {s.peer_id for s in subs}
        assert set(result.peers) <= submitted
        assert set(result.peers).isdisjoint(result.rejected)
        assert set(result.peers).isdisjoint(result.outliers)
        assert len(result.peers) + len(result.rejected) + len(result.outliers) == len(subs)


class TestProgressiveSlashing:
    """Offenses accumulate across rounds until blacklisting."""

    def test_blacklist_after_three_rounds(self, store, orchestrator) -> None:
        for expected in (1, 2, 3):
            result = orchestrator.process_round(blacklist_round())
            assert result.participants == 3
            assert store.get("bad_actor").offense_count == expected

        record = orchestrator.get_reputation("bad_actor")
        assert record.offense_count == 3
        assert record.blacklisted is True

        # 4th round: excluded before statistics, not re-flagged
        result = orchestrator.process_round(blacklist_round())
        assert result.participants == 3
        assert result.rejected == {"bad_actor": "blacklisted"}
        assert result.outliers == {}
        assert store.get("bad_actor").offense_count == 3

    def test_blacklisted_peer_excluded_with_honest_price(self, store, orchestrator) -> None:
        for _ in range(3):
            orchestrator.process_round(blacklist_round())

        result = orchestrator.process_round(
            [
                Submission("peer_a", 100.0, 400.0),
                Submission("bad_actor", 100.0, 10000.0),
            ]
        )

        assert result.peers == ["peer_a"]
        assert result.total_weight == 20.0

    def test_custom_slashing_threshold(self, store) -> None:
        orchestrator = ConsensusOrchestrator(store, ConsensusConfig(slashing_threshold=1))
        orchestrator.process_round(outlier_round())
        assert store.get("malicious").blacklisted is True

    def test_failing_slashing_listener_does_not_abort_round(self, store) -> None:
        def broken(notice: SlashingNotice) -> None:
            raise RuntimeError("listener down")

        engine = SlashingEngine(store, listeners=[broken])
        orchestrator = ConsensusOrchestrator(store, slashing_engine=engine)

        result = orchestrator.process_round(outlier_round())

        assert result.participants == 4
        assert result.outliers == {"malicious": 500.0}
        assert store.get("malicious").offense_count == 1

    def test_mismatched_engine_threshold_rejected(self, store) -> None:
        with pytest.raises(ValueError, match="does not match config threshold"):
            ConsensusOrchestrator(
                store,
                ConsensusConfig(slashing_threshold=3),
                SlashingEngine(store, slashing_threshold=5),
            )

    def test_matching_engine_threshold_accepted(self, store) -> None:
        engine = SlashingEngine(store, slashing_threshold=5)
        orchestrator = ConsensusOrchestrator(
            store, ConsensusConfig(slashing_threshold=5), engine
        )
        assert orchestrator.slashing_engine is engine

    def test_get_reputation_unseen_peer(self, orchestrator) -> None:
        assert orchestrator.get_reputation("stranger").to_dict() == {
            "peer_id": "stranger",
            "offenses": 0,
            "blacklisted": False,
        }
