"""Shortlist selection from scored and classified matches.

Strategies:
  quality   - score desc, then confidence band, then candidate id (default)
  fast      - score desc, then candidate id
  strict    - HIGH confidence only, quality order; may return nothing
  diversity - quality order, skipping near-duplicate profiles

Every strategy first drops matches below max(min_match_score,
shortlist_min_score) and then cuts to the configured cap.
"""

import logging
import math

from pydantic import BaseModel, ConfigDict, Field

from decision_engine.core.config import (
    GUARDRAILS_PRESETS,
    GuardrailsConfig,
    ShortlistConfig,
    ShortlistStrategy,
)
from decision_engine.core.schemas import BAND_RANK, ConfidenceBand, MatchSignals
from decision_engine.pipeline.match_engine import normalize_score_threshold

logger = logging.getLogger(__name__)

DIVERSITY_SCORE_EPSILON = 1.0
DIVERSITY_SIGNAL_TOLERANCE = 0.05


class ShortlistMatch(BaseModel):
    """A match annotated with its confidence band."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    score: float
    confidence_band: ConfidenceBand = "LOW"
    signals: MatchSignals | None = None


class ShortlistOutput(BaseModel):
    strategy: ShortlistStrategy
    shortlisted_candidate_ids: list[str] = Field(default_factory=list)
    cutoff_score: float | None = None
    notes: list[str] = Field(default_factory=list)


def resolve_strategy(config: GuardrailsConfig, override: ShortlistStrategy | None = None) -> ShortlistStrategy:
    if override:
        return override
    if config.shortlist is not None:
        return config.shortlist.strategy
    return "quality"


def resolve_max_candidates(config: GuardrailsConfig) -> float:
    """Cap from shortlist config, else thresholds, else unbounded."""
    configured = config.shortlist.max_candidates if config.shortlist is not None else None
    if configured is None:
        configured = config.scoring.thresholds.shortlist_max_candidates
    if configured is None:
        return math.inf
    return math.floor(configured)


def resolve_min_score(config: GuardrailsConfig) -> float:
    thresholds = config.scoring.thresholds
    return max(
        normalize_score_threshold(thresholds.min_match_score),
        normalize_score_threshold(thresholds.shortlist_min_score),
    )


def _quality_key(match: ShortlistMatch) -> tuple[float, int, str]:
    return (-match.score, -BAND_RANK[match.confidence_band], match.candidate_id)


def _score_key(match: ShortlistMatch) -> tuple[float, str]:
    return (-match.score, match.candidate_id)


def is_near_duplicate(a: ShortlistMatch, b: ShortlistMatch) -> bool:
    """Scores within 1 point and every signal within 0.05 of each other."""
    if abs(a.score - b.score) >= DIVERSITY_SCORE_EPSILON:
        return False
    if a.signals is None or b.signals is None:
        return False
    va, vb = a.signals.as_vector(), b.signals.as_vector()
    return all(abs(va[key] - vb[key]) <= DIVERSITY_SIGNAL_TOLERANCE for key in va)


def _take(ordered: list[ShortlistMatch], cap: float) -> list[ShortlistMatch]:
    return ordered if math.isinf(cap) else ordered[: int(cap)]


def _select_diverse(ordered: list[ShortlistMatch], cap: float) -> list[ShortlistMatch]:
    selected: list[ShortlistMatch] = []
    for match in ordered:
        if len(selected) >= cap:
            break
        if any(is_near_duplicate(existing, match) for existing in selected):
            logger.debug("Diversity: skipped %s as near-duplicate", match.candidate_id)
            continue
        selected.append(match)
    return selected


def plan_shortlist(
    matches: list[ShortlistMatch],
    config: GuardrailsConfig,
    strategy: ShortlistStrategy | None = None,
) -> ShortlistOutput:
    """Select the shortlist and report the cutoff score and strategy notes."""
    use_strategy = resolve_strategy(config, strategy)
    cap = resolve_max_candidates(config)
    min_score = resolve_min_score(config)

    eligible = [m for m in matches if m.score >= min_score]
    notes = [f"strategy={use_strategy}", f"minScore={min_score:g}"]
    if cap <= 0 or not eligible:
        return ShortlistOutput(strategy=use_strategy, notes=notes)

    if use_strategy == "fast":
        selected = _take(sorted(eligible, key=_score_key), cap)
    elif use_strategy == "strict":
        high_only = [m for m in eligible if m.confidence_band == "HIGH"]
        selected = _take(sorted(high_only, key=_quality_key), cap)
    elif use_strategy == "diversity":
        selected = _select_diverse(sorted(eligible, key=_quality_key), cap)
    else:
        selected = _take(sorted(eligible, key=_quality_key), cap)

    logger.info(
        "Shortlist (%s): %d of %d eligible, %d submitted",
        use_strategy, len(selected), len(eligible), len(matches),
    )
    return ShortlistOutput(
        strategy=use_strategy,
        shortlisted_candidate_ids=[m.candidate_id for m in selected],
        cutoff_score=selected[-1].score if selected else None,
        notes=notes,
    )


def build_shortlist(
    matches: list[ShortlistMatch],
    config: GuardrailsConfig,
    strategy: ShortlistStrategy | None = None,
) -> list[str]:
    """Shortlisted candidate ids, best first. Never raises on empty input."""
    return plan_shortlist(matches, config, strategy).shortlisted_candidate_ids


def apply_fire_drill_thresholds(config: GuardrailsConfig) -> GuardrailsConfig:
    """Tighten a tenant's shortlist to the stricter of its own and the conservative thresholds.

    Also forces the strict strategy.
    """
    base = config.scoring.thresholds
    conservative = GUARDRAILS_PRESETS["conservative"].scoring.thresholds

    caps = [
        c for c in (
            resolve_max_candidates(config),
            conservative.shortlist_max_candidates,
        )
        if c is not None
    ]
    cap = min(caps)
    thresholds = base.model_copy(update={
        "min_match_score": max(
            normalize_score_threshold(base.min_match_score),
            normalize_score_threshold(conservative.min_match_score),
        ),
        "shortlist_min_score": max(
            normalize_score_threshold(base.shortlist_min_score),
            normalize_score_threshold(conservative.shortlist_min_score),
        ),
        "shortlist_max_candidates": None if math.isinf(cap) else int(cap),
    })
    shortlist = config.shortlist or ShortlistConfig()
    return config.model_copy(update={
        "scoring": config.scoring.model_copy(update={"thresholds": thresholds}),
        "shortlist": shortlist.model_copy(update={
            "strategy": "strict",
            "max_candidates": None if math.isinf(cap) else int(cap),
        }),
    })
