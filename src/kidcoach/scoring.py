"""Fixed-threshold labels and child rankings."""

from __future__ import annotations

from typing import Iterable, Tuple

from .models import ChildSnapshot, ConsistencyBand, LeaderboardMetric, MomentumLabel, Trend

GREEN_MIN_DAYS = 5
YELLOW_MIN_DAYS = 2

BAND_ORDER = {ConsistencyBand.RED: 0, ConsistencyBand.YELLOW: 1, ConsistencyBand.GREEN: 2}
MOMENTUM_ORDER = {MomentumLabel.DECLINING: 0, MomentumLabel.STABLE: 1, MomentumLabel.IMPROVING: 2}


def consistency_band(days_active: int) -> ConsistencyBand:
    """Green for 5+ active days, yellow for 2-4, red for 0-1."""

    if days_active >= GREEN_MIN_DAYS:
        return ConsistencyBand.GREEN
    if days_active >= YELLOW_MIN_DAYS:
        return ConsistencyBand.YELLOW
    return ConsistencyBand.RED


def momentum_label(delta: int) -> MomentumLabel:
    if delta > 0:
        return MomentumLabel.IMPROVING
    if delta < 0:
        return MomentumLabel.DECLINING
    return MomentumLabel.STABLE


def kpi_trend(delta: float) -> Trend:
    if delta > 0:
        return Trend.UP
    if delta < 0:
        return Trend.DOWN
    return Trend.FLAT


def leaderboard(
    children: Iterable[ChildSnapshot],
    metric: LeaderboardMetric | str = LeaderboardMetric.MINUTES_EARNED,
) -> Tuple[ChildSnapshot, ...]:
    """Rank children by ``metric``, highest first; ties keep roster order."""

    attribute = LeaderboardMetric(metric).value
    return tuple(sorted(children, key=lambda child: getattr(child, attribute), reverse=True))


def needs_attention(children: Iterable[ChildSnapshot]) -> Tuple[ChildSnapshot, ...]:
    """Red consistency first, then declining momentum."""

    return tuple(
        sorted(
            children,
            key=lambda child: (BAND_ORDER[child.consistency_band], MOMENTUM_ORDER[child.momentum_label]),
        )
    )


__all__ = [
    "BAND_ORDER",
    "MOMENTUM_ORDER",
    "consistency_band",
    "kpi_trend",
    "leaderboard",
    "momentum_label",
    "needs_attention",
]
