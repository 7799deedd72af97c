"""Candidate-job match scoring.

Each candidate gets four signals in [0, 1] and a 0-100 score. Signals are
blended by the tenant's normalized weights ("weighted") or by the skill
weights only ("simple"). The must-have guardrail zeroes the score of any
candidate missing a required skill, and anything under the minimum match
score is dropped from the result rather than hidden.
"""

import logging
import math
import re
from collections.abc import Iterable

from decision_engine.core.config import GUARDRAILS_PRESETS, GuardrailsConfig, ScoringWeights
from decision_engine.core.schemas import Candidate, Job, MatchResult, MatchSignals, Skill

logger = logging.getLogger(__name__)

NEUTRAL_SIGNAL = 0.5

SIMPLE_DEFAULT_WEIGHTS = ScoringWeights(
    must_have_skills=0.7,
    nice_to_have_skills=0.3,
    experience=0.0,
    location=0.0,
)

_LOCATION_SPLIT = re.compile(r"[,\-]")


def _normalize_name(value: str | None) -> str:
    return (value or "").strip().lower()


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_skill_coverage(targets: Iterable[Skill], candidate_skills: Iterable[Skill]) -> float:
    """Share of target skills the candidate has. An empty target list is fully covered."""
    have = {s.key for s in candidate_skills}
    wanted = [s.key for s in targets if s.key]
    if not wanted:
        return 1.0
    matched = sum(1 for key in wanted if key in have)
    return matched / len(wanted)


def calculate_experience_alignment(job: Job, candidate: Candidate) -> float:
    """Score how the candidate's years sit against the job's range.

    Unknown candidate years are neutral (0.5); a job with no range is
    satisfied by anyone.
    """
    years = candidate.total_experience_years
    min_years = job.min_experience_years
    max_years = job.max_experience_years

    if years is None:
        return NEUTRAL_SIGNAL
    if min_years is None and max_years is None:
        return 1.0
    if min_years is not None and years < min_years:
        return _clamp(years / max(min_years, 1))
    if max_years is not None and years > max_years:
        return _clamp(max(max_years, 0) / max(years, 1))
    return 1.0


def calculate_location_alignment(job_location: str | None, candidate_location: str | None) -> float:
    job = _normalize_name(job_location)
    candidate = _normalize_name(candidate_location)

    if not job or not candidate:
        return NEUTRAL_SIGNAL
    if job == candidate:
        return 1.0
    if "remote" in job or "remote" in candidate:
        return 0.8

    job_parts = {p.strip() for p in _LOCATION_SPLIT.split(job) if p.strip()}
    candidate_parts = {p.strip() for p in _LOCATION_SPLIT.split(candidate) if p.strip()}
    return 0.7 if job_parts & candidate_parts else 0.3


def calculate_signals(job: Job, candidate: Candidate) -> MatchSignals:
    return MatchSignals(
        must_have_skills_coverage=calculate_skill_coverage(job.must_have_skills, candidate.skills),
        nice_to_have_skills_coverage=calculate_skill_coverage(
            job.nice_to_have_skills, candidate.skills
        ),
        experience_alignment=calculate_experience_alignment(job, candidate),
        location_alignment=calculate_location_alignment(job.location, candidate.location),
    )


def normalize_weights(weights: ScoringWeights, fallback: ScoringWeights) -> ScoringWeights:
    """Scale weights to sum to 1. Falls back when the raw sum is not positive."""
    total = (
        weights.must_have_skills
        + weights.nice_to_have_skills
        + weights.experience
        + weights.location
    )
    if total <= 0:
        return fallback
    return ScoringWeights(
        must_have_skills=weights.must_have_skills / total,
        nice_to_have_skills=weights.nice_to_have_skills / total,
        experience=weights.experience / total,
        location=weights.location / total,
    )


WEIGHTED_DEFAULT_WEIGHTS = normalize_weights(
    GUARDRAILS_PRESETS["balanced"].scoring.weights, SIMPLE_DEFAULT_WEIGHTS
)


def resolve_weights(config: GuardrailsConfig) -> ScoringWeights:
    """Effective normalized weights for the configured strategy."""
    weights = config.scoring.weights
    if config.scoring.strategy == "simple":
        skills_only = weights.model_copy(update={"experience": 0.0, "location": 0.0})
        return normalize_weights(skills_only, SIMPLE_DEFAULT_WEIGHTS)
    return normalize_weights(weights, WEIGHTED_DEFAULT_WEIGHTS)


def normalize_score_threshold(value: float | None) -> float:
    """Put a threshold on the 0-100 scale; values <= 1 are fractions."""
    if value is None or math.isnan(value):
        return 0.0
    return value * 100 if value <= 1 else value


def resolve_min_score(config: GuardrailsConfig) -> int:
    scaled = normalize_score_threshold(config.scoring.thresholds.min_match_score)
    return max(0, _round_half_up(scaled))


def score_signals(signals: MatchSignals, weights: ScoringWeights) -> int:
    """Blend signals by (already normalized) weights into a 0-100 score."""
    weighted = (
        signals.must_have_skills_coverage * weights.must_have_skills
        + signals.nice_to_have_skills_coverage * weights.nice_to_have_skills
        + signals.experience_alignment * weights.experience
        + signals.location_alignment * weights.location
    )
    return max(0, min(100, _round_half_up(weighted * 100)))


def score_candidate(
    job: Job,
    candidate: Candidate,
    config: GuardrailsConfig,
    weights: ScoringWeights | None = None,
) -> MatchResult:
    """Score a single candidate, applying the must-have guardrail but not the threshold."""
    signals = calculate_signals(job, candidate)
    use_weights = weights or resolve_weights(config)

    if config.safety.require_must_haves and signals.must_have_skills_coverage < 1:
        score = 0
    else:
        score = score_signals(signals, use_weights)

    return MatchResult(candidate_id=candidate.id, score=score, signals=signals)


def run_match(job: Job, candidates: list[Candidate], config: GuardrailsConfig) -> list[MatchResult]:
    """Score a candidate pool against a job, returning survivors sorted by score desc.

    Ties keep input order.
    """
    weights = resolve_weights(config)
    min_score = resolve_min_score(config)

    results: list[MatchResult] = []
    for candidate in candidates:
        result = score_candidate(job, candidate, config, weights)
        if result.score < min_score:
            logger.debug(
                "Dropped candidate %s for job %s: score %d < %d",
                candidate.id, job.id, result.score, min_score,
            )
            continue
        results.append(result)

    results.sort(key=lambda r: r.score, reverse=True)
    logger.info(
        "Matched job %s: %d/%d candidates at or above %d",
        job.id, len(results), len(candidates), min_score,
    )
    return results
