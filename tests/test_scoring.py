"""
Tests for `domain/scoring.py`.

Covers contract rules:
- Score is the weighted sum of signals plus a single freshness bonus.
- The freshness window is inclusive at its boundary.
- Stale leads (too many call attempts) lose a flat penalty when one is configured.
- The result is clamped to [0, 100].
- Adding a positive-weight signal never lowers the score.
- Weights are configuration data (unknown signal types rejected).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from domain.scoring import (
    DEFAULT_WEIGHTS,
    ScoringConfig,
    Signal,
    SignalType,
    compute_score,
    explain_score,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _signals(*types: SignalType) -> list[Signal]:
    return [Signal(signal_type=t, occurred_at=NOW - timedelta(days=1)) for t in types]


def test_no_signals_and_no_response_scores_zero() -> None:
    assert compute_score([], None, NOW, ScoringConfig()) == 0


def test_weighted_sum_uses_default_weights() -> None:
    signals = _signals(SignalType.PAGE_VIEW, SignalType.PAGE_VIEW, SignalType.EMAIL_CLICK)

    breakdown = explain_score(signals, None, NOW, ScoringConfig())

    assert breakdown.score == 2 + 2 + 15
    assert breakdown.freshness_bonus == 0
    assert (SignalType.PAGE_VIEW, 2, 4) in breakdown.contributions
    assert (SignalType.EMAIL_CLICK, 1, 15) in breakdown.contributions


def test_freshness_bonus_applies_once_within_window() -> None:
    signals = _signals(SignalType.EMAIL_OPEN, SignalType.EMAIL_OPEN)

    score = compute_score(signals, NOW - timedelta(days=2), NOW, ScoringConfig())

    assert score == 5 + 5 + 20


def test_freshness_window_boundary_is_inclusive() -> None:
    config = ScoringConfig()

    assert compute_score([], NOW - timedelta(days=30), NOW, config) == 20
    assert compute_score([], NOW - timedelta(days=30, seconds=1), NOW, config) == 0


def test_stale_penalty_is_disabled_by_default() -> None:
    signals = _signals(SignalType.PAGE_VIEW, SignalType.PAGE_VIEW)

    breakdown = explain_score(signals, None, NOW, ScoringConfig(), call_attempts=4)

    assert breakdown.stale_penalty == 0
    assert breakdown.score == 4


def test_stale_penalty_applies_above_attempt_threshold() -> None:
    signals = _signals(SignalType.PRICING_VIEW)
    config = ScoringConfig(stale_penalty=10)

    assert compute_score(signals, None, NOW, config, call_attempts=3) == 25
    breakdown = explain_score(signals, None, NOW, config, call_attempts=4)
    assert breakdown.stale_penalty == 10
    assert breakdown.score == 15


def test_score_is_clamped_to_range() -> None:
    many = _signals(*([SignalType.PRICING_VIEW] * 10))
    assert compute_score(many, NOW, NOW, ScoringConfig()) == 100

    negative = ScoringConfig(weights={SignalType.PAGE_VIEW: -50})
    breakdown = explain_score(_signals(SignalType.PAGE_VIEW), None, NOW, negative)
    assert breakdown.raw_total == -50
    assert breakdown.score == 0


def test_missing_weight_contributes_zero() -> None:
    config = ScoringConfig(weights={SignalType.PAGE_VIEW: 3})

    assert compute_score(_signals(SignalType.DOWNLOAD, SignalType.PAGE_VIEW), None, NOW, config) == 3


def test_scoring_is_deterministic() -> None:
    signals = _signals(SignalType.FORM_INTERACTION, SignalType.DOWNLOAD)
    responded = NOW - timedelta(days=5)

    first = explain_score(signals, responded, NOW, ScoringConfig(), call_attempts=1)
    second = explain_score(signals, responded, NOW, ScoringConfig(), call_attempts=1)

    assert first == second


def test_now_must_be_utc() -> None:
    with pytest.raises(ValueError):
        compute_score([], None, datetime(2026, 3, 1, 12, 0, 0), ScoringConfig())


def test_from_mapping_overrides_and_keeps_defaults() -> None:
    config = ScoringConfig.from_mapping({"page_view": 7}, freshness_bonus=5)

    assert config.weight_for(SignalType.PAGE_VIEW) == 7
    assert config.weight_for(SignalType.PRICING_VIEW) == DEFAULT_WEIGHTS[SignalType.PRICING_VIEW]
    assert config.freshness_bonus == 5


def test_from_mapping_rejects_unknown_signal_type() -> None:
    with pytest.raises(ValueError, match="Unknown signal type"):
        ScoringConfig.from_mapping({"WEBINAR": 10})


def test_non_integer_weight_rejected() -> None:
    with pytest.raises(ValueError):
        ScoringConfig(weights={SignalType.PAGE_VIEW: 2.5})  # type: ignore[dict-item]
    with pytest.raises(ValueError):
        ScoringConfig(weights={SignalType.PAGE_VIEW: True})


_HISTORIES = {
    "empty": [],
    "mixed": [SignalType.PAGE_VIEW, SignalType.EMAIL_OPEN, SignalType.FORM_INTERACTION],
    "near_cap": [SignalType.PRICING_VIEW] * 3 + [SignalType.EMAIL_CLICK],
    "at_cap": [SignalType.PRICING_VIEW] * 4,
    "over_cap": [SignalType.DOWNLOAD] * 6,
}


@pytest.mark.parametrize("added", [t for t, weight in DEFAULT_WEIGHTS.items() if weight > 0])
@pytest.mark.parametrize("history", sorted(_HISTORIES))
@pytest.mark.parametrize("responded_days_ago", [None, 2])
def test_adding_a_signal_never_lowers_the_score(added, history, responded_days_ago) -> None:
    config = ScoringConfig(stale_penalty=10)
    last_response_at = None if responded_days_ago is None else NOW - timedelta(days=responded_days_ago)
    before = _signals(*_HISTORIES[history])

    base = compute_score(before, last_response_at, NOW, config, call_attempts=5)
    more = compute_score(before + _signals(added), last_response_at, NOW, config, call_attempts=5)

    assert more >= base
    assert 0 <= more <= 100
