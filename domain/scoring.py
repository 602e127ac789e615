"""
Domain: Behavioral signals and the triage score.

Contract implemented here:
- A lead's triage score is a weighted sum of its behavioral signals.
- A flat freshness bonus is added once when the lead responded within the
  freshness window (inclusive):
    now - last_response_at <= freshness_window
- An opt-in stale-lead penalty is subtracted once the lead has accumulated
  more call attempts than the configured threshold. It defaults to 0, so
  the default score depends on signals and freshness only.
- The total is clamped to [0, 100].

Scoring is pure: the same (signals, last_response_at, now, config,
call_attempts) always produce the same score. No implicit 'now' is used.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .time import require_utc_timestamp

SCORE_MIN: int = 0
SCORE_MAX: int = 100


class SignalType(str, Enum):
    PAGE_VIEW = "PAGE_VIEW"
    FORM_INTERACTION = "FORM_INTERACTION"
    EMAIL_OPEN = "EMAIL_OPEN"
    EMAIL_CLICK = "EMAIL_CLICK"
    PRICING_VIEW = "PRICING_VIEW"
    DOWNLOAD = "DOWNLOAD"


DEFAULT_WEIGHTS: Mapping[SignalType, int] = {
    SignalType.PAGE_VIEW: 2,
    SignalType.FORM_INTERACTION: 10,
    SignalType.EMAIL_OPEN: 5,
    SignalType.EMAIL_CLICK: 15,
    SignalType.PRICING_VIEW: 25,
    SignalType.DOWNLOAD: 20,
}


@dataclass(frozen=True, slots=True)
class Signal:
    """A single behavioral event observed for a lead."""

    signal_type: SignalType
    occurred_at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("occurred_at", self.occurred_at)


@dataclass(frozen=True, slots=True)
class ScoringConfig:
    """
    Tunable scoring parameters, supplied as configuration data.

    Signal types missing from `weights` contribute 0.
    Weights are integers; no upper/lower bound is imposed beyond that.
    """

    weights: Mapping[SignalType, int] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    freshness_bonus: int = 20
    freshness_window: timedelta = timedelta(days=30)
    stale_attempts_threshold: int = 3
    stale_penalty: int = 0

    def __post_init__(self) -> None:
        for signal_type, weight in self.weights.items():
            if not isinstance(signal_type, SignalType):
                raise ValueError(f"Unknown signal type in weights: {signal_type!r}")
            if isinstance(weight, bool) or not isinstance(weight, int):
                raise ValueError(f"Weight for {signal_type.value} must be an integer")
        if self.freshness_window < timedelta(0):
            raise ValueError("freshness_window must be >= 0")
        if self.stale_attempts_threshold < 0:
            raise ValueError("stale_attempts_threshold must be >= 0")

    def weight_for(self, signal_type: SignalType) -> int:
        return self.weights.get(signal_type, 0)

    @staticmethod
    def from_mapping(raw_weights: Mapping[str, int], **overrides: object) -> "ScoringConfig":
        """
        Build a config from a plain {"PAGE_VIEW": 2, ...} mapping.

        Unknown keys raise ValueError. Missing signal types keep their default weight.
        """

        weights: Dict[SignalType, int] = dict(DEFAULT_WEIGHTS)
        for key, value in raw_weights.items():
            try:
                signal_type = SignalType(str(key).upper())
            except ValueError:
                raise ValueError(f"Unknown signal type in weights: {key!r}") from None
            weights[signal_type] = value
        return ScoringConfig(weights=weights, **overrides)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    """Itemised explanation of a computed score."""

    contributions: Tuple[Tuple[SignalType, int, int], ...]  # (type, count, points)
    freshness_bonus: int
    stale_penalty: int
    raw_total: int
    score: int


def explain_score(
    signals: Iterable[Signal],
    last_response_at: Optional[datetime],
    now: datetime,
    config: ScoringConfig,
    *,
    call_attempts: int = 0,
) -> ScoreBreakdown:
    """
    Compute the triage score and its breakdown.

    The freshness bonus is applied at most once, regardless of how many
    recent signals exist. A last_response_at in the future counts as fresh.
    """

    require_utc_timestamp("now", now)

    counts: Dict[SignalType, int] = {}
    for signal in signals:
        counts[signal.signal_type] = counts.get(signal.signal_type, 0) + 1

    contributions = tuple(
        (signal_type, counts[signal_type], counts[signal_type] * config.weight_for(signal_type))
        for signal_type in SignalType
        if signal_type in counts
    )
    total = sum(points for _, _, points in contributions)

    bonus = 0
    if last_response_at is not None:
        require_utc_timestamp("last_response_at", last_response_at)
        if now - last_response_at <= config.freshness_window:
            bonus = config.freshness_bonus

    penalty = config.stale_penalty if call_attempts > config.stale_attempts_threshold else 0

    raw_total = total + bonus - penalty
    return ScoreBreakdown(
        contributions=contributions,
        freshness_bonus=bonus,
        stale_penalty=penalty,
        raw_total=raw_total,
        score=max(SCORE_MIN, min(SCORE_MAX, raw_total)),
    )


def compute_score(
    signals: Iterable[Signal],
    last_response_at: Optional[datetime],
    now: datetime,
    config: ScoringConfig,
    *,
    call_attempts: int = 0,
) -> int:
    """Return the clamped 0..100 triage score."""

    return explain_score(signals, last_response_at, now, config, call_attempts=call_attempts).score


__all__ = [
    "SCORE_MIN",
    "SCORE_MAX",
    "SignalType",
    "DEFAULT_WEIGHTS",
    "Signal",
    "ScoringConfig",
    "ScoreBreakdown",
    "explain_score",
    "compute_score",
]
