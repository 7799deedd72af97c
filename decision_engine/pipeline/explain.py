"""Recruiter-facing explanations for a single match.

Strengths and risks come straight from the match signals, the skill overlap
and the confidence band; no LLM is needed for the structured part. List
lengths follow the tenant's explain level and are padded with filler
rather than coming back short. An optional LLM pass may rewrite the
summary sentence only.
"""

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from decision_engine.core.config import ExplainLevel, GuardrailsConfig
from decision_engine.core.schemas import Candidate, ConfidenceResult, Explanation, Job, MatchResult
from decision_engine.pipeline.match_engine import resolve_weights

logger = logging.getLogger(__name__)

# (min, max) strengths and risks per verbosity; only "compact" is compact
_STRENGTH_BOUNDS: dict[str, tuple[int, int]] = {
    "compact": (1, 2),
    "detailed": (3, 5),
}
_RISK_BOUNDS: dict[str, tuple[int, int]] = {
    "compact": (0, 1),
    "detailed": (1, 3),
}

STRENGTH_FILLER = "Overall signals suggest solid alignment with the role."
RISK_FILLER = "No significant risks flagged."
_SUMMARY_FALLBACK = "Candidate shows relevant alignment."

_POLISH_SYSTEM_PROMPT = (
    "You are an assistant that polishes candidate-job explanations for recruiters.\n\n"
    "Rewrite the provided summary in one or two concise, recruiter-friendly "
    "sentences. Preserve its meaning, keep any percentages exactly as given, "
    "and do not invent strengths or risks that are not listed.\n\n"
    "Return ONLY the rewritten summary as plain text (no markdown, no quotes)."
)


def _percent(value: float) -> str:
    return f"{round(value * 100)}%"


def resolve_verbosity(level: ExplainLevel | None) -> str:
    return "compact" if level == "compact" else "detailed"


def _bounded(items: list[str], verbosity: str, bounds: dict[str, tuple[int, int]], filler: str) -> list[str]:
    low, high = bounds[verbosity]
    trimmed = items[:high]
    while len(trimmed) < low:
        trimmed.append(filler)
    return trimmed


def matched_skill_names(job: Job, candidate: Candidate) -> list[str]:
    """Job skills the candidate also lists, by job display name, in job order."""
    have = {s.key for s in candidate.skills}
    return [s.name for s in job.skills if s.key and s.key in have]


def missing_must_have_names(job: Job, candidate: Candidate) -> list[str]:
    have = {s.key for s in candidate.skills}
    return [s.name for s in job.must_have_skills if s.key and s.key not in have]


def _is_location_mismatch(job: Job, candidate: Candidate, alignment: float) -> bool:
    job_location = (job.location or "").strip().lower()
    candidate_location = (candidate.location or "").strip().lower()
    if not job_location or not candidate_location:
        return alignment < 0.5
    return job_location != candidate_location or alignment < 0.5


def _strengths(job: Job, candidate: Candidate, match: MatchResult, confidence: ConfidenceResult) -> list[str]:
    signals = match.signals
    strengths: list[str] = []

    if signals.must_have_skills_coverage >= 0.8:
        strengths.append(
            f"High must-have skill coverage ({_percent(signals.must_have_skills_coverage)})."
        )
    matched = matched_skill_names(job, candidate)
    if matched:
        strengths.append(f"Matches key skills: {', '.join(matched)}.")
    if signals.experience_alignment >= 0.7:
        strengths.append("Strong experience alignment with the role expectations.")
    if signals.location_alignment >= 0.8:
        strengths.append("Location fits the role.")
    if confidence.band == "HIGH":
        reason = confidence.reasons[0] if confidence.reasons else None
        strengths.append(
            f"High confidence band: {reason}" if reason
            else "High confidence band supported by reliable signals."
        )
    return strengths


def _risks(job: Job, candidate: Candidate, match: MatchResult, confidence: ConfidenceResult) -> list[str]:
    signals = match.signals
    risks: list[str] = []

    if signals.must_have_skills_coverage < 0.8:
        missing = missing_must_have_names(job, candidate)
        if missing:
            risks.append(f"Missing must-have skills may require ramp-up: {', '.join(missing)}.")
        else:
            risks.append("Missing must-have skills may require ramp-up.")

    years = candidate.total_experience_years
    min_years = job.min_experience_years
    below_range = years is not None and min_years is not None and years < min_years
    if below_range or signals.experience_alignment < 0.5:
        risks.append("Experience appears below the target range.")

    if _is_location_mismatch(job, candidate, signals.location_alignment):
        risks.append("Location mismatch could impact availability expectations.")

    if confidence.band == "LOW":
        risks.append("Low confidence band; profile data needs manual validation.")
    return risks


def build_summary(strengths: list[str], risks: list[str]) -> str:
    """First strength, plus the first real (non-filler) risk when there is one."""
    lead = strengths[0] if strengths else _SUMMARY_FALLBACK
    real_risks = [r for r in risks if r != RISK_FILLER]
    if real_risks:
        return f"{lead} Key risk: {real_risks[0]}"
    return lead


def _weights_note(config: GuardrailsConfig) -> str:
    w = resolve_weights(config)
    return (
        f"Signal blend ({config.scoring.strategy}): "
        f"must-have {_percent(w.must_have_skills)}, "
        f"nice-to-have {_percent(w.nice_to_have_skills)}, "
        f"experience {_percent(w.experience)}, "
        f"location {_percent(w.location)}."
    )


def build_explanation(
    job: Job,
    candidate: Candidate,
    match: MatchResult,
    confidence: ConfidenceResult,
    config: GuardrailsConfig,
) -> Explanation:
    """Build the structured explanation for one match at the tenant's explain level."""
    verbosity = resolve_verbosity(config.explain.level)
    strengths = _bounded(_strengths(job, candidate, match, confidence), verbosity, _STRENGTH_BOUNDS, STRENGTH_FILLER)
    risks = _bounded(_risks(job, candidate, match, confidence), verbosity, _RISK_BOUNDS, RISK_FILLER)

    notes: list[str] = []
    if config.explain.include_weights:
        notes.append(_weights_note(config))
    if verbosity == "detailed" and confidence.reasons:
        notes.append(f"Confidence: {confidence.reasons[0]}")

    return Explanation(
        summary=build_summary(strengths, risks),
        strengths=strengths,
        risks=risks,
        notes=notes,
    )


# ---------------------------------------------------------------------------
# LLM polish
# ---------------------------------------------------------------------------


class LLMPrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_prompt: str
    user_prompt: str


LLMCall = Callable[[LLMPrompt], Awaitable[str]]


class PolishOptions(BaseModel):
    """Inputs that decide whether and how an explanation is polished."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    config: GuardrailsConfig
    fire_drill: bool = False
    llm_call: LLMCall | None = None
    timeout_seconds: float = 10.0


def build_polish_prompt(explanation: Explanation) -> LLMPrompt:
    payload = {
        "summary": explanation.summary,
        "strengths": explanation.strengths,
        "risks": explanation.risks,
    }
    return LLMPrompt(
        system_prompt=_POLISH_SYSTEM_PROMPT,
        user_prompt=json.dumps(payload, indent=2),
    )


def _clean_polished(raw: str) -> str:
    cleaned = re.sub(r"^```(?:\w+)?\s*\n?", "", raw.strip())
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    return cleaned.strip().strip('"').strip()


async def maybe_polish_explanation(explanation: Explanation, options: PolishOptions) -> Explanation:
    """Rewrite the summary with an LLM when the tenant allows it.

    Returns the explanation unchanged when weights are not requested, in
    fire drill, without an LLM call, or when the call fails, times out or
    comes back blank.
    """
    if not options.config.explain.include_weights or options.fire_drill or options.llm_call is None:
        return explanation

    prompt = build_polish_prompt(explanation)
    try:
        raw = await asyncio.wait_for(options.llm_call(prompt), timeout=options.timeout_seconds)
    except Exception:
        logger.warning("Explain polish failed - keeping structured summary", exc_info=True)
        return explanation

    polished = _clean_polished(raw) if isinstance(raw, str) else ""
    if not polished:
        logger.debug("Explain polish returned blank text - keeping structured summary")
        return explanation
    return explanation.model_copy(update={"summary": polished})
