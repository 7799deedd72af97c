"""Confidence classification for match results (job-aware variant).

Classifies how far a match score can be trusted into HIGH/MEDIUM/LOW bands
from tenant guardrails, narrates the band, and flags data risks. Scores may
arrive as 0-1 fractions or 0-100 percentages; anything above 1 is treated
as a percentage.

Classification and narration are toggled independently: with narration
off (fire drill, or the CONFIDENCE agent disabled) the band is still
computed so downstream gating keeps working, but reasons and risk flags
come back empty.
"""

import asyncio
import logging
import re

from pydantic import BaseModel, ConfigDict, Field

from decision_engine.core.config import (
    ConfidenceBands,
    GuardrailsConfig,
    GuardrailsLoader,
    default_guardrails_loader,
)
from decision_engine.core.modes import AGENT_CONFIDENCE, ModeLoader, default_mode_loader
from decision_engine.core.schemas import (
    ConfidenceBand,
    ConfidenceResult,
    MatchResult,
    RecruiterAction,
    RiskFlag,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_BANDS = ConfidenceBands(high=0.75, medium=0.55)

CONFLICT_GAP = 0.35
_STALE_NOTE = re.compile(r"stale|sync", re.IGNORECASE)


class ConfidenceSignals(BaseModel):
    """Signals the confidence engine reads. Any of them may be absent."""

    model_config = ConfigDict(frozen=True)

    must_have_coverage: float | None = None
    nice_to_have_coverage: float | None = None
    experience_alignment: float | None = None
    engagement: float | None = None
    missing_must_haves: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    def core_values(self) -> list[float | None]:
        return [
            self.must_have_coverage,
            self.experience_alignment,
            self.engagement,
            self.nice_to_have_coverage,
        ]

    @property
    def has_any_data(self) -> bool:
        return bool(
            self.notes
            or self.missing_must_haves
            or any(v is not None for v in self.core_values())
        )


class ConfidenceMatch(BaseModel):
    """A match as seen by the confidence engine."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    score: float
    signals: ConfidenceSignals = Field(default_factory=ConfidenceSignals)

    @classmethod
    def from_match_result(
        cls,
        match: MatchResult,
        *,
        missing_must_haves: list[str] | None = None,
        notes: list[str] | None = None,
        engagement: float | None = None,
    ) -> "ConfidenceMatch":
        s = match.signals
        return cls(
            candidate_id=match.candidate_id,
            score=match.score,
            signals=ConfidenceSignals(
                must_have_coverage=s.must_have_skills_coverage,
                nice_to_have_coverage=s.nice_to_have_skills_coverage,
                experience_alignment=s.experience_alignment,
                engagement=engagement,
                missing_must_haves=missing_must_haves or [],
                notes=notes or [],
            ),
        )


class ConfidenceAssessment(BaseModel):
    """Per-candidate output of the confidence agent."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    score: float
    confidence_score: int
    confidence_band: ConfidenceBand
    confidence_reasons: list[str] = Field(default_factory=list)
    risk_flags: list[RiskFlag] = Field(default_factory=list)
    recommended_action: RecruiterAction

    def to_result(self) -> ConfidenceResult:
        return ConfidenceResult(
            candidate_id=self.candidate_id,
            band=self.confidence_band,
            score=self.confidence_score / 100,
            reasons=self.confidence_reasons,
            risk_flags=self.risk_flags,
        )


class ConfidenceAgentInput(BaseModel):
    match_results: list[ConfidenceMatch]
    job_id: str
    tenant_id: str | None = None


class ConfidenceAgentOutput(BaseModel):
    job_id: str
    results: list[ConfidenceAssessment]


def normalize_score(score: float) -> float:
    return score / 100 if score > 1 else score


def _percent(value: float) -> str:
    return f"{round(value * 100)}%"


def resolve_bands(config: GuardrailsConfig) -> ConfidenceBands:
    return config.safety.confidence_bands or DEFAULT_CONFIDENCE_BANDS


def get_confidence_band(score: float, config: GuardrailsConfig) -> ConfidenceBand:
    bands = resolve_bands(config)
    normalized = normalize_score(score)
    if normalized >= bands.high:
        return "HIGH"
    if normalized >= bands.medium:
        return "MEDIUM"
    return "LOW"


def _weakest_signal(signals: ConfidenceSignals) -> tuple[str, float] | None:
    candidates = [
        ("must-have skills", signals.must_have_coverage),
        ("experience alignment", signals.experience_alignment),
        ("engagement", signals.engagement),
        ("nice-to-have coverage", signals.nice_to_have_coverage),
    ]
    available = [(label, value) for label, value in candidates if value is not None]
    if not available:
        return None
    return min(available, key=lambda item: item[1])


def build_confidence_summary(
    match: ConfidenceMatch,
    config: GuardrailsConfig,
    confidence_score: float | None = None,
) -> tuple[ConfidenceBand, list[str]]:
    """Classify a match and narrate the band.

    ``confidence_score`` (0-100) overrides the raw match score when given.
    The returned reasons are never empty.
    """
    normalized = confidence_score / 100 if confidence_score is not None else normalize_score(match.score)
    band = get_confidence_band(normalized, config)
    signals = match.signals
    reasons = [f"Score {_percent(normalized)} maps to {band} confidence."]

    if band == "HIGH":
        if signals.must_have_coverage is not None:
            reasons.append(f"Strong must-have coverage ({_percent(signals.must_have_coverage)}).")
        if signals.experience_alignment is not None:
            reasons.append(
                f"Experience aligns with the role ({_percent(signals.experience_alignment)})."
            )
        if signals.engagement is not None:
            reasons.append(f"Engagement signals look healthy ({_percent(signals.engagement)}).")
        if signals.nice_to_have_coverage is not None:
            reasons.append(
                f"Nice-to-have skills also contribute ({_percent(signals.nice_to_have_coverage)})."
            )
    elif band == "MEDIUM":
        weakest = _weakest_signal(signals)
        if weakest:
            label, value = weakest
            reasons.append(f"Good overall fit, but {label} is weaker at {_percent(value)}.")
        else:
            reasons.append("Decent fit with at least one area needing verification.")
        if signals.missing_must_haves:
            reasons.append(
                f"Missing must-have skills to validate: {', '.join(signals.missing_must_haves)}."
            )
    else:
        if signals.missing_must_haves:
            reasons.append(f"Missing must-have skills: {', '.join(signals.missing_must_haves)}.")
        elif signals.must_have_coverage is not None:
            reasons.append(f"Must-have coverage is low at {_percent(signals.must_have_coverage)}.")
        else:
            reasons.append("Insufficient evidence about must-have skills.")
        if signals.experience_alignment is not None:
            reasons.append(
                f"Experience alignment appears weak ({_percent(signals.experience_alignment)}); "
                "further review is needed."
            )

    reasons.extend(signals.notes)
    return band, reasons


def _has_conflict(signals: ConfidenceSignals) -> bool:
    if signals.must_have_coverage is None or signals.experience_alignment is None:
        return False
    return abs(signals.must_have_coverage - signals.experience_alignment) >= CONFLICT_GAP


def _stale_note(signals: ConfidenceSignals) -> str | None:
    return next((note for note in signals.notes if _STALE_NOTE.search(note)), None)


def compute_confidence_score(match: ConfidenceMatch) -> int:
    """Match score (0-100) less penalties for missing, stale or conflicting evidence."""
    signals = match.signals
    base = normalize_score(match.score) * 100

    missing_must_have_penalty = len(signals.missing_must_haves) * 5
    missing_signal_penalty = 0
    if signals.has_any_data:
        absent = sum(1 for v in signals.core_values() if v is None)
        missing_signal_penalty = max(0, absent - 1) * 2
    stale_penalty = 7 if _stale_note(signals) else 0
    conflict_penalty = 8 if _has_conflict(signals) else 0

    penalties = missing_must_have_penalty + missing_signal_penalty + stale_penalty + conflict_penalty
    return max(0, min(100, round(base - penalties)))


def identify_risk_flags(match: ConfidenceMatch) -> list[RiskFlag]:
    signals = match.signals
    flags: list[RiskFlag] = []

    if signals.missing_must_haves:
        flags.append(RiskFlag(
            type="MISSING_DATA",
            detail=f"Missing must-haves: {', '.join(signals.missing_must_haves)}.",
        ))

    stale = _stale_note(signals)
    if stale:
        flags.append(RiskFlag(type="STALE_ATS_SYNC", detail=f"Data freshness risk: {stale}"))

    if _has_conflict(signals):
        flags.append(RiskFlag(
            type="CONFLICTING_SIGNALS",
            detail=(
                f"Must-have coverage {_percent(signals.must_have_coverage or 0.0)} conflicts with "
                f"experience alignment {_percent(signals.experience_alignment or 0.0)}."
            ),
        ))

    return flags


def recommend_recruiter_action(band: ConfidenceBand, risk_flags: list[RiskFlag]) -> RecruiterAction:
    if band == "HIGH" and not risk_flags:
        return "PUSH"
    if band != "HIGH" and risk_flags:
        return "ESCALATE"
    return "REQUEST_INFO"


def assess_match(match: ConfidenceMatch, config: GuardrailsConfig, *, narrate: bool = True) -> ConfidenceAssessment:
    """Classify one match. With ``narrate=False`` reasons and risk flags stay empty."""
    confidence_score = compute_confidence_score(match)
    if narrate:
        band, reasons = build_confidence_summary(match, config, confidence_score)
        risk_flags = identify_risk_flags(match)
    else:
        band = get_confidence_band(confidence_score / 100, config)
        reasons, risk_flags = [], []

    return ConfidenceAssessment(
        candidate_id=match.candidate_id,
        score=normalize_score(match.score),
        confidence_score=confidence_score,
        confidence_band=band,
        confidence_reasons=reasons,
        risk_flags=risk_flags,
        recommended_action=recommend_recruiter_action(band, risk_flags),
    )


async def run_confidence_agent(
    agent_input: ConfidenceAgentInput,
    *,
    load_guardrails: GuardrailsLoader | None = None,
    load_mode: ModeLoader | None = None,
) -> ConfidenceAgentOutput:
    """Classify every match for a job using the tenant's guardrails and mode."""
    tenant_id = agent_input.tenant_id or "default-tenant"
    guardrails, mode = await asyncio.gather(
        (load_guardrails or default_guardrails_loader)(tenant_id),
        (load_mode or default_mode_loader)(tenant_id),
    )

    narrate = mode.is_enabled(AGENT_CONFIDENCE)
    if not narrate:
        logger.info("Confidence narration disabled for tenant %s (%s mode)", tenant_id, mode.mode)

    results = [assess_match(m, guardrails, narrate=narrate) for m in agent_input.match_results]
    return ConfidenceAgentOutput(job_id=agent_input.job_id, results=results)
