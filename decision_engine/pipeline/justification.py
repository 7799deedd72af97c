"""Recruiter-facing recommendation text for a shortlisted candidate."""

import math

from decision_engine.core.schemas import (
    Candidate,
    ConfidenceResult,
    Explanation,
    Job,
    Justification,
    MatchResult,
)

STRENGTH_COUNT = 3
MAX_RISKS = 2

_STRENGTH_FILLER = "Consistent signals indicate readiness for the role."
_NO_RISK_FILLER = "No critical risks identified; confirm details during conversation."


def normalize_percent(value: float | None, fallback: float = 0.0) -> int:
    """0-1 fractions and 0-100 percentages both come back as a whole percent."""
    if value is None or math.isnan(value):
        return round(fallback * 100)
    scaled = value * 100 if value <= 1 else value
    return max(0, round(scaled))


def candidate_display_name(candidate: Candidate) -> str:
    return (candidate.name or "").strip() or candidate.id


def job_display_title(job: Job) -> str:
    return (job.title or "").strip() or job.id


def _strengths(match: MatchResult, explanation: Explanation | None) -> list[str]:
    signals = match.signals
    strengths = [s for s in (explanation.strengths if explanation else []) if s]
    strengths += [
        f"Must-have skill coverage at {normalize_percent(signals.must_have_skills_coverage)}%.",
        f"Experience alignment near {normalize_percent(signals.experience_alignment)}%.",
        f"Overall match score of {match.score}% suggests solid fit.",
    ]
    while len(strengths) < STRENGTH_COUNT:
        strengths.append(_STRENGTH_FILLER)
    return strengths[:STRENGTH_COUNT]


def _risks(
    match: MatchResult,
    confidence: ConfidenceResult | None,
    explanation: Explanation | None,
) -> list[str]:
    signals = match.signals
    risks = [r for r in (explanation.risks if explanation else []) if r]

    if signals.must_have_skills_coverage < 0.8:
        risks.append("Some must-have skills may require ramp-up.")
    if signals.experience_alignment < 0.6:
        risks.append("Experience may sit below the target range.")
    if signals.location_alignment < 0.5:
        risks.append("Location/availability may need clarification.")
    if confidence is not None and confidence.band == "LOW":
        risks.append("Low confidence band; validate profile details manually.")

    if not risks:
        risks.append(_NO_RISK_FILLER)
    return risks[:MAX_RISKS]


def _summary(
    name: str,
    title: str,
    match: MatchResult,
    strengths: list[str],
    risks: list[str],
    explanation: Explanation | None,
) -> str:
    if explanation is not None and explanation.summary.strip():
        return explanation.summary.strip()

    score = f"{match.score}%"
    lead = strengths[0] if strengths else "relevant alignment"
    if risks:
        return f"{name} shows a {score} match for {title}, with {lead} and a key risk around {risks[0]}"
    return f"{name} shows a {score} match for {title}, highlighted by {lead}"


def _confidence_line(confidence: ConfidenceResult | None) -> str | None:
    if confidence is None:
        return None
    reason = f" – {confidence.reasons[0]}" if confidence.reasons else ""
    return f"Confidence: {confidence.band} ({normalize_percent(confidence.score)}%){reason}"


def _next_step(risks: list[str], strengths: list[str]) -> str:
    focus = risks[0] if risks else "role expectations"
    highlight = strengths[0].lower() if strengths else "core strengths"
    return f"Schedule a structured screen focusing on {focus}; validate {highlight} in depth."


def build_justification(
    job: Job,
    candidate: Candidate,
    match: MatchResult,
    confidence: ConfidenceResult | None = None,
    explanation: Explanation | None = None,
) -> Justification:
    """Compose the subject and body a recruiter sends to the hiring manager.

    Always three strengths and one or two risks; the confidence line is
    included only when a confidence result is given.
    """
    name = candidate_display_name(candidate)
    title = job_display_title(job)
    strengths = _strengths(match, explanation)
    risks = _risks(match, confidence, explanation)

    lines = [_summary(name, title, match, strengths, risks, explanation)]
    confidence_line = _confidence_line(confidence)
    if confidence_line:
        lines += ["", confidence_line]

    lines += ["", "Top strengths:"]
    lines += [f"- {s}" for s in strengths]
    lines += ["", "Risks:"]
    lines += [f"- {r}" for r in risks]
    lines += ["", "Next best step:", f"- {_next_step(risks, strengths)}"]

    return Justification(
        subject=f"Recommendation: {name} for {title}",
        body="\n".join(lines),
    )
