"""Guardrail tuning recommendations from match-quality telemetry.

``GuardrailRecommendationEngine.generate`` reads the tenant's quality-index
trend and recent recruiter feedback, proposes threshold changes, and merges
the batch with what was stored before so recruiter decisions (applied /
dismissed) survive regeneration. Generation and status updates for the same
tenant are serialized; different tenants never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from typing import Literal, Protocol
from weakref import WeakValueDictionary

from pydantic import BaseModel, ConfigDict, Field

from decision_engine.core.config import (
    GUARDRAILS_PRESETS,
    GuardrailsConfig,
    GuardrailsLoader,
    default_guardrails_loader,
)
from decision_engine.core.errors import TelemetryUnavailableError
from decision_engine.core.modes import ModeLoader, default_mode_loader
from decision_engine.core.schemas import Recommendation, RecommendationStatus
from decision_engine.pipeline.match_engine import normalize_score_threshold
from decision_engine.pipeline.shortlist import resolve_max_candidates

logger = logging.getLogger(__name__)

FEEDBACK_WINDOW = 100
MAX_MIN_MATCH_SCORE = 95.0
MIN_SHORTLIST_WIDTH = 3
DEFAULT_SHORTLIST_WIDTH = 10
MAX_MEDIUM_BAND = 0.9
MAX_HIGH_BAND = 0.95


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class QualitySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    mqi: float
    captured_at: datetime | None = None


class FeedbackRecord(BaseModel):
    """A recruiter thumbs-up/down on a match. Scores are on the 0-100 scale."""

    model_config = ConfigDict(frozen=True)

    direction: Literal["UP", "DOWN"]
    match_score: float | None = None
    confidence_score: float | None = None


class ConfidenceDistribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    high: float = 0.4
    medium: float = 0.4
    low: float = 0.2


class TelemetrySnapshot(BaseModel):
    """Aggregated telemetry; the defaults are the neutral values used when data is missing."""

    model_config = ConfigDict(frozen=True)

    mqi_trend: float = 0.0
    average_match_score: float = 70.0
    false_positive_rate: float = 0.0
    shortlist_pressure: float = 0.0
    confidence_distribution: ConfidenceDistribution = Field(default_factory=ConfidenceDistribution)
    sample_size: int = 0


class TelemetryReader(Protocol):
    """Read side of the telemetry tables. Both methods return newest first.

    Implementations raise TelemetryUnavailableError when the backing
    table does not exist.
    """

    async def quality_snapshots(self, tenant_id: str, limit: int) -> list[QualitySnapshot]: ...

    async def feedback(self, tenant_id: str, limit: int) -> list[FeedbackRecord]: ...


def compute_mqi_trend(snapshots: list[QualitySnapshot]) -> float:
    """Latest minus previous MQI, rounded to 0.1. Zero with fewer than two snapshots."""
    if len(snapshots) < 2:
        return 0.0
    latest, previous = snapshots[0], snapshots[1]
    return round(latest.mqi - previous.mqi, 1)


def summarize_feedback(records: list[FeedbackRecord], mqi_trend: float = 0.0) -> TelemetrySnapshot:
    if not records:
        return TelemetrySnapshot(mqi_trend=mqi_trend)

    n = len(records)
    average = sum(r.match_score or 0.0 for r in records) / n
    false_positive_rate = sum(1 for r in records if r.direction == "DOWN") / n

    high = medium = low = 0
    for record in records:
        score = record.confidence_score or 0.0
        if score >= 80:
            high += 1
        elif score >= 60:
            medium += 1
        else:
            low += 1

    return TelemetrySnapshot(
        mqi_trend=mqi_trend,
        average_match_score=average,
        false_positive_rate=false_positive_rate,
        shortlist_pressure=min(1.0, (medium + high) / n),
        confidence_distribution=ConfidenceDistribution(high=high / n, medium=medium / n, low=low / n),
        sample_size=n,
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class RecommendationStore(Protocol):
    async def list(self, tenant_id: str) -> list[Recommendation]: ...

    async def save(self, tenant_id: str, recommendations: list[Recommendation]) -> None: ...


class InMemoryRecommendationStore:
    """Per-tenant recommendation lists held in process memory."""

    def __init__(self) -> None:
        self._data: dict[str, list[Recommendation]] = {}

    async def list(self, tenant_id: str) -> list[Recommendation]:
        return [r.model_copy() for r in self._data.get(tenant_id, [])]

    async def save(self, tenant_id: str, recommendations: list[Recommendation]) -> None:
        self._data[tenant_id] = [r.model_copy() for r in recommendations]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _fmt(value: float) -> str:
    return f"{value:g}"


def build_recommendations(
    guardrails: GuardrailsConfig,
    telemetry: TelemetrySnapshot,
    system_mode: str,
    generated_at: datetime | None = None,
) -> list[Recommendation]:
    """Apply the tuning rules to one telemetry snapshot. Rules fire independently."""
    generated_at = generated_at or datetime.now()
    pilot = system_mode == "pilot"
    thresholds = guardrails.scoring.thresholds
    drafts: list[Recommendation] = []

    def add(confidence: str, **fields: object) -> None:
        drafts.append(Recommendation(
            confidence="low" if pilot else confidence,
            system_mode=system_mode,
            generated_at=generated_at,
            **fields,
        ))

    if telemetry.false_positive_rate > 0.25 or telemetry.mqi_trend < -5:
        current = normalize_score_threshold(thresholds.min_match_score)
        target = min(MAX_MIN_MATCH_SCORE, round(current + 5, 1))
        add(
            "high" if telemetry.false_positive_rate > 0.35 else "medium",
            id="increase-min-match-score",
            title="Tighten shortlist cutoff",
            summary="Raise the minimum match score used for shortlist decisions.",
            rationale=(
                f"MQI dropped by {telemetry.mqi_trend:.1f} points and "
                f"{telemetry.false_positive_rate * 100:.1f}% of recent feedback called out false positives."
            ),
            suggested_change=(
                f"Increase minMatchScore from {_fmt(current)}% to {_fmt(target)}% "
                "to prioritize higher-signal candidates."
            ),
            signals=["MQI trend", "Feedback false-positive rate"],
        )

    if telemetry.shortlist_pressure > 0.6 or telemetry.average_match_score < 60:
        cap = resolve_max_candidates(guardrails)
        current_width = int(cap) if math.isfinite(cap) and cap > 0 else DEFAULT_SHORTLIST_WIDTH
        delta = 3 if telemetry.shortlist_pressure > 0.8 else 2
        target_width = max(MIN_SHORTLIST_WIDTH, current_width - delta)
        add(
            "medium",
            id="reduce-shortlist-width",
            title="Reduce shortlist width",
            summary="Lower the maximum candidates allowed on a shortlist to cut down review noise.",
            rationale=(
                f"Shortlists are overfilled {telemetry.shortlist_pressure * 100:.0f}% of the time and "
                f"average match scores are dipping to {telemetry.average_match_score:.1f}%."
            ),
            suggested_change=(
                f"Reduce shortlistMaxCandidates from {current_width} to {target_width} "
                "to keep reviews focused on the highest quality profiles."
            ),
            signals=["Shortlist overfill rate", "Average match quality"],
        )

    low_share = telemetry.confidence_distribution.low
    if low_share > 0.35:
        bands = (
            guardrails.safety.confidence_bands
            or GUARDRAILS_PRESETS["balanced"].safety.confidence_bands
        )
        from_high = bands.high if bands else 0.75
        from_medium = bands.medium if bands else 0.55
        to_medium = min(MAX_MEDIUM_BAND, round(from_medium + 0.05, 2))
        to_high = min(MAX_HIGH_BAND, round(from_high + 0.03, 2))
        add(
            "high",
            id="raise-confidence-bands",
            title="Raise confidence bands",
            summary="Tighten confidence thresholds so low-signal matches are flagged sooner.",
            rationale=(
                f"{low_share * 100:.0f}% of recent matches are falling into the low confidence bucket, "
                "increasing reviewer load."
            ),
            suggested_change=(
                f"Increase confidence bands from high={_fmt(from_high)}, medium={_fmt(from_medium)} "
                f"to high={_fmt(to_high)}, medium={_fmt(to_medium)}."
            ),
            signals=["Confidence distribution", "Reviewer burden"],
        )

    if not drafts:
        add(
            "medium",
            id="no-action",
            title="Guardrails look healthy",
            summary="Metrics are stable; no tuning required right now.",
            rationale=(
                "MQI is steady and false positives are under control across "
                f"{telemetry.sample_size} recent signals."
            ),
            suggested_change="No configuration change recommended.",
            signals=["MQI trend", "Feedback stability"],
        )

    return drafts


def merge_with_stored(drafts: list[Recommendation], stored: list[Recommendation]) -> list[Recommendation]:
    """Carry recruiter status forward by id. Stored ids absent from the drafts are dropped."""
    previous = {r.id: r.status for r in stored}
    return [
        d.model_copy(update={"status": previous[d.id]}) if d.id in previous else d
        for d in drafts
    ]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class GuardrailRecommendationEngine:
    """Generates and persists per-tenant guardrail recommendations."""

    def __init__(
        self,
        store: RecommendationStore | None = None,
        telemetry: TelemetryReader | None = None,
        load_mode: ModeLoader | None = None,
        load_guardrails: GuardrailsLoader | None = None,
    ) -> None:
        self._store: RecommendationStore = store or InMemoryRecommendationStore()
        self._telemetry = telemetry
        self._load_mode = load_mode or default_mode_loader
        self._load_guardrails = load_guardrails or default_guardrails_loader
        # entries drop out once no coroutine holds or waits on the lock
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    async def generate(self, tenant_id: str) -> list[Recommendation]:
        """Recompute recommendations for a tenant. Fire-drill tenants get none."""
        mode, guardrails = await asyncio.gather(
            self._load_mode(tenant_id),
            self._load_guardrails(tenant_id),
        )
        if mode.is_fire_drill:
            logger.info("Recommendations suppressed for tenant %s (fire drill)", tenant_id)
            return []

        telemetry = await self.collect_telemetry(tenant_id)
        drafts = build_recommendations(guardrails, telemetry, mode.mode)

        async with self._lock_for(tenant_id):
            merged = merge_with_stored(drafts, await self._store.list(tenant_id))
            await self._store.save(tenant_id, merged)

        logger.info(
            "Generated %d recommendation(s) for tenant %s: %s",
            len(merged), tenant_id, ", ".join(r.id for r in merged),
        )
        return merged

    async def update_status(
        self,
        tenant_id: str,
        recommendation_id: str,
        status: RecommendationStatus,
    ) -> list[Recommendation]:
        """Record a recruiter decision on one recommendation and return the tenant's list."""
        async with self._lock_for(tenant_id):
            current = await self._store.list(tenant_id)
            if not any(r.id == recommendation_id for r in current):
                logger.warning(
                    "No recommendation '%s' stored for tenant %s", recommendation_id, tenant_id
                )
                return current
            updated = [
                r.model_copy(update={"status": status}) if r.id == recommendation_id else r
                for r in current
            ]
            await self._store.save(tenant_id, updated)
        return updated

    async def collect_telemetry(self, tenant_id: str) -> TelemetrySnapshot:
        if self._telemetry is None:
            logger.debug("No telemetry reader configured - using neutral defaults")
            return TelemetrySnapshot()

        trend_result, feedback_result = await asyncio.gather(
            self._telemetry.quality_snapshots(tenant_id, 2),
            self._telemetry.feedback(tenant_id, FEEDBACK_WINDOW),
            return_exceptions=True,
        )
        trend = self._unwrap(trend_result, "quality snapshots", [])
        feedback = self._unwrap(feedback_result, "match feedback", [])
        return summarize_feedback(feedback, compute_mqi_trend(trend))

    @staticmethod
    def _unwrap(result: object, what: str, default: list) -> list:
        if isinstance(result, TelemetryUnavailableError):
            logger.warning("Telemetry unavailable (%s) - using neutral defaults", what, exc_info=result)
            return default
        if isinstance(result, BaseException):
            raise result
        return result  # type: ignore[return-value]
