"""
Pipeline configuration.

Values come from the environment (a `.env` file at the project root is loaded
first). Scoring weights are configuration data so organizations can tune the
call-queue priority without code changes.

Environment variables (all optional):
- PIPELINE_STORAGE: "memory" (default) or "supabase"
- PIPELINE_MAX_FOLLOW_UPS: follow-ups before a lead moves to NO_ANSWER (3)
- PIPELINE_MAX_CALL_ATTEMPTS: unanswered calls before NO_ANSWER (5)
- PIPELINE_PLACEMENT_MIN_SCORE: minimum placement-test score (50)
- PIPELINE_CONFLICT_RETRIES: extra attempts after a concurrency conflict (3)
- SCORING_WEIGHTS: JSON object, e.g. {"PAGE_VIEW": 2, "PRICING_VIEW": 25}
- SCORING_FRESHNESS_DAYS: freshness window in days (30)
- SCORING_FRESHNESS_BONUS: flat bonus for fresh leads (20)
- SCORING_STALE_ATTEMPTS: attempts above which the stale penalty applies (3)
- SCORING_STALE_PENALTY: points removed from stale leads (0, disabled)
- LOG_LEVEL: logging level name (INFO)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from domain.lead_workflow import WorkflowPolicy
from domain.scoring import ScoringConfig

env_path = Path(__file__).parent.parent / ".env"

STORAGE_BACKENDS = ("memory", "supabase")


def _read_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer (got {raw!r})") from None


def _read_weights(env: Mapping[str, str]) -> Mapping[str, int]:
    raw = env.get("SCORING_WEIGHTS")
    if raw is None or raw.strip() == "":
        return {}
    try:
        weights = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"SCORING_WEIGHTS must be a JSON object: {exc}") from None
    if not isinstance(weights, dict):
        raise RuntimeError("SCORING_WEIGHTS must be a JSON object of signal type -> integer weight")
    return weights


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    storage: str = "memory"
    policy: WorkflowPolicy = field(default_factory=WorkflowPolicy)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    conflict_retries: int = 3
    log_level: str = "INFO"

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        """
        Build settings from a mapping (defaults to os.environ after loading .env).

        Raises RuntimeError naming the offending variable on malformed input.
        """

        if env is None:
            load_dotenv(dotenv_path=env_path)
            env = os.environ

        storage = env.get("PIPELINE_STORAGE", "memory").strip().lower() or "memory"
        if storage not in STORAGE_BACKENDS:
            raise RuntimeError(f"PIPELINE_STORAGE must be one of {STORAGE_BACKENDS} (got {storage!r})")

        conflict_retries = _read_int(env, "PIPELINE_CONFLICT_RETRIES", 3)
        if conflict_retries < 0:
            raise RuntimeError("PIPELINE_CONFLICT_RETRIES must be >= 0")

        try:
            policy = WorkflowPolicy(
                max_follow_ups=_read_int(env, "PIPELINE_MAX_FOLLOW_UPS", 3),
                max_call_attempts=_read_int(env, "PIPELINE_MAX_CALL_ATTEMPTS", 5),
                placement_test_min_score=_read_int(env, "PIPELINE_PLACEMENT_MIN_SCORE", 50),
            )
            scoring = ScoringConfig.from_mapping(
                _read_weights(env),
                freshness_bonus=_read_int(env, "SCORING_FRESHNESS_BONUS", 20),
                freshness_window=timedelta(days=_read_int(env, "SCORING_FRESHNESS_DAYS", 30)),
                stale_attempts_threshold=_read_int(env, "SCORING_STALE_ATTEMPTS", 3),
                stale_penalty=_read_int(env, "SCORING_STALE_PENALTY", 0),
            )
        except ValueError as exc:
            raise RuntimeError(f"Invalid pipeline configuration: {exc}") from None

        return PipelineSettings(
            storage=storage,
            policy=policy,
            scoring=scoring,
            conflict_retries=conflict_retries,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


__all__ = ["PipelineSettings", "STORAGE_BACKENDS"]
