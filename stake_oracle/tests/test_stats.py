"""Unit tests for the stats module."""

import itertools
from types import SimpleNamespace

import pytest

from stake_oracle.src import stats


def response(price: float, weight: float) -> SimpleNamespace:
    return SimpleNamespace(price=price, weight=weight)


class TestEmptyInput:
    """Degenerate inputs map to 0 instead of raising."""

    def test_mean_empty(self) -> None:
        assert stats.mean([]) == 0

    def test_median_empty(self) -> None:
        assert stats.median([]) == 0

    def test_standard_deviation_empty(self) -> None:
        assert stats.standard_deviation([], 0.0) == 0

    def test_weighted_median_empty(self) -> None:
        assert stats.weighted_median([]) == 0

    def test_weighted_median_zero_total_weight(self) -> None:
        """Zero total weight has no meaningful median."""
        assert stats.weighted_median([response(100, 0), response(200, 0)]) == 0


class TestMeanMedian:
    """Test mean and classical median."""

    def test_mean(self) -> None:
        assert stats.mean([1.0, 2.0, 3.0, 6.0]) == 3.0

    def test_median_odd(self) -> None:
        assert stats.median([5.0, 1.0, 3.0]) == 3.0

    def test_median_even_averages_middle(self) -> None:
        assert stats.median([4.0, 1.0, 3.0, 2.0]) == 2.5

    def test_median_single(self) -> None:
        assert stats.median([42.0]) == 42.0


class TestStandardDeviation:
    """Test population standard deviation."""

    def test_population_divides_by_n(self) -> None:
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
        assert stats.standard_deviation(values, stats.mean(values)) == pytest.approx(2.0)

    def test_identical_values(self) -> None:
        assert stats.standard_deviation([7.0, 7.0, 7.0], 7.0) == 0

    def test_uses_supplied_mean(self) -> None:
        """Deviation is measured around the given center."""
        assert stats.standard_deviation([1.0, 1.0], 0.0) == pytest.approx(1.0)


class TestZScore:
    """Test z-score helper."""

    def test_zero_std_dev(self) -> None:
        assert stats.z_score(500.0, 100.0, 0.0) == 0

    def test_absolute_distance(self) -> None:
        assert stats.z_score(90.0, 100.0, 5.0) == 2.0
        assert stats.z_score(110.0, 100.0, 5.0) == 2.0


class TestWeightedMedian:
    """Test stake-weighted median."""

    def test_reference_scenario(self) -> None:
        """Total weight 110, target 55: cumulative 80 first reaches it at 120."""
        data = [
            response(100, 10),
            response(110, 20),
            response(120, 50),
            response(130, 30),
        ]
        assert stats.weighted_median(data) == 120

    def test_exact_boundary_picks_lower_price(self) -> None:
        """Cumulative weight landing exactly on half selects the lower price."""
        assert stats.weighted_median([response(200, 1), response(100, 1)]) == 100
        assert stats.weighted_median([response(100, 30), response(300, 30)]) == 100

    def test_heavy_peer_dominates(self) -> None:
        data = [response(100, 1), response(101, 1), response(150, 10)]
        assert stats.weighted_median(data) == 150

    def test_permutation_invariant(self) -> None:
        data = [
            response(100, 10),
            response(110, 20),
            response(120, 50),
            response(130, 30),
            response(90, 5),
        ]
        expected = stats.weighted_median(data)
        for perm in itertools.permutations(data):
            assert stats.weighted_median(list(perm)) == expected

    def test_result_is_an_input_price(self) -> None:
        data = [response(3.5, 2), response(1.25, 7), response(9.0, 1), response(4.0, 3)]
        assert stats.weighted_median(data) in {r.price for r in data}

    @pytest.mark.parametrize(
        "prices",
        [
            [5.0],
            [3.0, 1.0, 2.0],
            [10.0, 50.0, 20.0, 40.0, 30.0],
            [99.0, 100.0, 100.0, 101.0, 102.0, 98.0, 97.0],
        ],
    )
    def test_equal_weights_match_classical_median(self, prices) -> None:
        """Odd-length equal weights reduce to the classical median."""
        data = [response(p, 20.0) for p in prices]
        assert stats.weighted_median(data) == stats.median(prices)

    def test_does_not_mutate_input(self) -> None:
        data = [response(130, 1), response(100, 1), response(120, 1)]
        stats.weighted_median(data)
        assert [r.price for r in data] == [130, 100, 120]
