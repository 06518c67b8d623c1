"""Pure numeric helpers for consensus rounds.

Every function here is stateless and total: degenerate inputs (empty
sequences, zero variance, zero total weight) map to ``0`` instead of
raising, so callers never need to guard against ``StatisticsError``.

.. code-block:: python

    >>> median([99, 100, 100, 101, 500])
    100
    >>> standard_deviation([1.0, 3.0], mean([1.0, 3.0]))
    1.0
"""

from __future__ import annotations

from statistics import fmean as _fmean
from statistics import median as _median
from statistics import pstdev as _pstdev
from typing import Protocol, Sequence


class Weighted(Protocol):
    """Anything carrying a price and a non-negative weight."""

    price: float
    weight: float


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, or 0 for an empty sequence."""
    if not values:
        return 0.0
    return _fmean(values)


def median(values: Sequence[float]) -> float:
    """Sorted median, or 0 for an empty sequence.

    Even-length input averages the two middle elements.
    """
    if not values:
        return 0.0
    return _median(values)


def standard_deviation(values: Sequence[float], mean: float) -> float:
    """Population standard deviation (divides by N) around ``mean``.

    :param values: Sample values.
    :param mean: Precomputed center, usually :func:`mean` of ``values``.
    :returns: Standard deviation, or 0 for an empty sequence.
    """
    if not values:
        return 0.0
    return _pstdev(values, mu=mean)


def z_score(value: float, center: float, std_dev: float) -> float:
    """Distance of ``value`` from ``center`` in standard deviations.

    Zero variance means nothing stands out, so the score is 0.
    """
    if std_dev == 0:
        return 0.0
    return abs(value - center) / std_dev


def weighted_median(responses: Sequence[Weighted]) -> float:
    """Price at which cumulative weight first reaches half the total weight.

    Responses are scanned in ascending price order, so a cumulative weight
    landing exactly on the halfway mark selects the lower price.

    :param responses: Objects exposing ``price`` and ``weight``.
    :returns: The weighted median price, or 0 for empty input or zero weight.

    .. code-block:: python

        >>> from types import SimpleNamespace as R
        >>> weighted_median([R(price=100, weight=10), R(price=110, weight=20),
        ...                  R(price=120, weight=50), R(price=130, weight=30)])
        120
    """
    if not responses:
        return 0.0

    ordered = sorted(responses, key=lambda r: r.price)
    total_weight = sum(r.weight for r in ordered)
    if total_weight == 0:
        return 0.0

    target = total_weight / 2
    cumulative = 0.0
    for response in ordered:
        cumulative += response.weight
        if cumulative >= target:
            return response.price

    # Only reachable through floating point drift in the running sum
    return ordered[-1].price
