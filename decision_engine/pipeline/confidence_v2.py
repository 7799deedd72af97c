"""Signal-bag confidence variant.

Scores confidence as the weighted mean of whatever named signals are
present, instead of reading match signals plus recruiter notes. Kept
alongside the job-aware engine for callers that only hold a signal bag
(e.g. imported ATS scores); select it with ``version="v2"`` in
``classify_confidence``. Defaults differ: medium starts at 0.60 here.
"""

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from decision_engine.core.config import ConfidenceBands, GuardrailsConfig
from decision_engine.core.schemas import ConfidenceBand, ConfidenceResult

logger = logging.getLogger(__name__)

ConfidenceVersion = Literal["v1", "v2"]

SIGNAL_LABELS: dict[str, str] = {
    "must_have_coverage": "Must-have coverage",
    "nice_to_have_coverage": "Nice-to-have coverage",
    "experience_alignment": "Experience alignment",
    "engagement_signal": "Engagement signal",
    "quality_signal": "Quality signal",
    "duration": "Duration",
    "language_analysis": "Language analysis",
}


class ConfidenceSignalBag(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate_id: str
    must_have_coverage: float | None = None
    nice_to_have_coverage: float | None = None
    experience_alignment: float | None = None
    engagement_signal: float | None = None
    quality_signal: float | None = None
    duration: float | None = None
    language_analysis: float | None = None


class ConfidenceV2Config(BaseModel):
    model_config = ConfigDict(frozen=True)

    bands: ConfidenceBands = Field(default_factory=lambda: ConfidenceBands(high=0.75, medium=0.60))
    signal_weights: dict[str, float] = Field(
        default_factory=lambda: {key: 1.0 for key in SIGNAL_LABELS}
    )


DEFAULT_CONFIDENCE_V2_CONFIG = ConfidenceV2Config()


def normalize_signal(value: float | None) -> float | None:
    if value is None or value != value:
        return None
    normalized = value / 100 if value > 1 else value
    return min(max(normalized, 0.0), 1.0)


def collect_signals(bag: ConfidenceSignalBag) -> dict[str, float]:
    """Normalized values of the signals present in the bag, in label order."""
    collected: dict[str, float] = {}
    for key in SIGNAL_LABELS:
        value = normalize_signal(getattr(bag, key))
        if value is not None:
            collected[key] = value
    return collected


def get_confidence_score(
    bag: ConfidenceSignalBag,
    config: ConfidenceV2Config = DEFAULT_CONFIDENCE_V2_CONFIG,
) -> float:
    """Weighted mean of present signals; 0 when nothing usable is present."""
    total_weighted = 0.0
    total_weight = 0.0
    for key, value in collect_signals(bag).items():
        weight = config.signal_weights.get(key, 0.0)
        if weight > 0:
            total_weighted += value * weight
            total_weight += weight
    return total_weighted / total_weight if total_weight else 0.0


def get_confidence_band(
    score: float,
    config: ConfidenceV2Config = DEFAULT_CONFIDENCE_V2_CONFIG,
) -> ConfidenceBand:
    normalized = score / 100 if score > 1 else score
    if normalized >= config.bands.high:
        return "HIGH"
    if normalized >= config.bands.medium:
        return "MEDIUM"
    return "LOW"


def _percent(value: float) -> str:
    return f"{round(value * 100)}%"


def build_confidence_summary(
    score: float,
    bag: ConfidenceSignalBag,
    config: ConfidenceV2Config = DEFAULT_CONFIDENCE_V2_CONFIG,
    *,
    narrate: bool = True,
) -> ConfidenceResult:
    normalized = min(max(score / 100 if score > 1 else score, 0.0), 1.0)
    band = get_confidence_band(normalized, config)
    if not narrate:
        return ConfidenceResult(candidate_id=bag.candidate_id, band=band, score=normalized)

    signals = collect_signals(bag)
    reasons: list[str] = []

    if band == "HIGH":
        strongest = sorted(signals.items(), key=lambda item: item[1], reverse=True)[:2]
        for key, value in strongest:
            reasons.append(f"{SIGNAL_LABELS[key]} supports the match ({_percent(value)}).")
        reasons.append(f"Score {_percent(normalized)} is in HIGH confidence band.")
    elif band == "MEDIUM":
        if signals:
            key, value = min(signals.items(), key=lambda item: item[1])
            reasons.append(f"{SIGNAL_LABELS[key]} is the weakest factor ({_percent(value)}).")
        reasons.append(f"Overall score {_percent(normalized)} sits in MEDIUM confidence band.")
    else:
        if signals:
            key, value = max(signals.items(), key=lambda item: item[1])
            reasons.append(
                f"{SIGNAL_LABELS[key]} shows some strength ({_percent(value)}), "
                f"but overall score {_percent(normalized)} is LOW."
            )
        else:
            reasons.append("Insufficient signal data; confidence is LOW by default.")

    return ConfidenceResult(candidate_id=bag.candidate_id, band=band, score=normalized, reasons=reasons)


def classify_confidence(
    bag: ConfidenceSignalBag,
    guardrails: GuardrailsConfig | None = None,
    *,
    version: ConfidenceVersion = "v2",
    narrate: bool = True,
) -> ConfidenceResult:
    """Score and narrate a signal bag.

    ``version="v1"`` classifies against the tenant's guardrail bands (the
    job-aware defaults, medium 0.55); ``"v2"`` uses this module's defaults.
    """
    config = DEFAULT_CONFIDENCE_V2_CONFIG
    if version == "v1" and guardrails is not None and guardrails.safety.confidence_bands:
        config = config.model_copy(update={"bands": guardrails.safety.confidence_bands})
    elif version == "v1":
        config = config.model_copy(update={"bands": ConfidenceBands(high=0.75, medium=0.55)})

    score = get_confidence_score(bag, config)
    logger.debug("Confidence %s for %s: %.3f", version, bag.candidate_id, score)
    return build_confidence_summary(score, bag, config, narrate=narrate)
