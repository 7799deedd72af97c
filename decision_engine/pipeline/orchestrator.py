"""Orchestrator: wires match, confidence, shortlist, explain and justification.

Data flow for one job:
  1. Candidate pool (internal candidates dropped when the tenant asks)
  2. Match engine -> scored survivors
  3. Confidence -> band, reasons, risk flags, recruiter action
  4. Shortlist -> ordered ids (strict + conservative thresholds in fire drill)
  5. Explain (+ optional LLM polish) and justification for shortlisted ids
"""

import json
import logging

from pydantic import BaseModel, ConfigDict, Field

from decision_engine.core.config import GuardrailsConfig, ShortlistStrategy
from decision_engine.core.modes import (
    AGENT_CONFIDENCE,
    AGENT_EXPLAIN,
    AGENT_MATCH,
    AGENT_SHORTLIST,
    ModeState,
    mode_state_for,
)
from decision_engine.core.schemas import (
    Candidate,
    Explanation,
    Job,
    Justification,
    MatchResult,
)
from decision_engine.pipeline.confidence import (
    ConfidenceAssessment,
    ConfidenceMatch,
    assess_match,
)
from decision_engine.pipeline.explain import (
    LLMCall,
    PolishOptions,
    build_explanation,
    maybe_polish_explanation,
    missing_must_have_names,
)
from decision_engine.pipeline.justification import build_justification
from decision_engine.pipeline.match_engine import run_match
from decision_engine.pipeline.shortlist import (
    ShortlistMatch,
    apply_fire_drill_thresholds,
    plan_shortlist,
)

logger = logging.getLogger(__name__)

FIRE_DRILL_NOTE = "Fire Drill mode active: using strict shortlist strategy and conservative thresholds."


class CandidateDecision(BaseModel):
    """Everything the pipeline concluded about one matched candidate."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    match: MatchResult
    confidence: ConfidenceAssessment
    shortlisted: bool = False
    explanation: Explanation | None = None
    justification: Justification | None = None


class DecisionRunResult(BaseModel):
    job_id: str
    mode: str
    strategy: ShortlistStrategy | None = None
    cutoff_score: float | None = None
    shortlisted_candidate_ids: list[str] = Field(default_factory=list)
    decisions: list[CandidateDecision] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


async def run_decision_pipeline(
    job: Job,
    candidates: list[Candidate],
    config: GuardrailsConfig,
    mode: ModeState | None = None,
    *,
    strategy: ShortlistStrategy | None = None,
    llm_call: LLMCall | None = None,
    polish: bool = False,
    timeout_seconds: float = 10.0,
) -> DecisionRunResult:
    """Run the full decision pipeline for one job.

    Disabled agents shrink the result rather than failing it: without MATCH
    nothing is scored, without SHORTLIST nothing is shortlisted.
    """
    mode = mode or mode_state_for("production")
    notes: list[str] = []

    if not mode.is_enabled(AGENT_MATCH):
        logger.info("Match agent disabled (%s mode) - skipping job %s", mode.mode, job.id)
        return DecisionRunResult(job_id=job.id, mode=mode.mode, notes=["Match agent disabled."])

    # Step 1: Candidate pool
    pool = candidates
    if config.safety.exclude_internal_candidates:
        pool = [c for c in candidates if not c.is_internal]
        if len(pool) != len(candidates):
            logger.debug("Excluded %d internal candidate(s)", len(candidates) - len(pool))
    by_id = {c.id: c for c in pool}

    # Step 2: Match
    matches = run_match(job, pool, config)

    # Step 3: Confidence
    narrate = mode.is_enabled(AGENT_CONFIDENCE)
    assessments = {
        m.candidate_id: assess_match(
            ConfidenceMatch.from_match_result(
                m, missing_must_haves=missing_must_have_names(job, by_id[m.candidate_id])
            ),
            config,
            narrate=narrate,
        )
        for m in matches
    }

    # Step 4: Shortlist
    shortlist_config = config
    use_strategy = strategy
    if mode.is_fire_drill:
        shortlist_config = apply_fire_drill_thresholds(config)
        use_strategy = "strict"
        notes.append(FIRE_DRILL_NOTE)

    shortlisted: list[str] = []
    cutoff: float | None = None
    resolved_strategy: ShortlistStrategy | None = None
    if mode.is_enabled(AGENT_SHORTLIST):
        plan = plan_shortlist(
            [
                ShortlistMatch(
                    candidate_id=m.candidate_id,
                    score=m.score,
                    confidence_band=assessments[m.candidate_id].confidence_band,
                    signals=m.signals,
                )
                for m in matches
            ],
            shortlist_config,
            use_strategy,
        )
        shortlisted, cutoff, resolved_strategy = (
            plan.shortlisted_candidate_ids, plan.cutoff_score, plan.strategy,
        )
        notes.extend(plan.notes)
    else:
        notes.append("Shortlist agent disabled.")

    # Step 5: Explain + justify shortlisted candidates.
    # Fire drill keeps the deterministic explanation; only the LLM polish is off.
    explain_enabled = mode.is_fire_drill or mode.is_enabled(AGENT_EXPLAIN)
    polish_options = PolishOptions(
        config=config,
        fire_drill=mode.is_fire_drill,
        llm_call=llm_call if polish and mode.is_enabled(AGENT_EXPLAIN) else None,
        timeout_seconds=timeout_seconds,
    )

    shortlisted_set = set(shortlisted)
    decisions: list[CandidateDecision] = []
    for m in matches:
        assessment = assessments[m.candidate_id]
        if m.candidate_id not in shortlisted_set:
            decisions.append(CandidateDecision(candidate_id=m.candidate_id, match=m, confidence=assessment))
            continue

        candidate = by_id[m.candidate_id]
        confidence = assessment.to_result()
        explanation = None
        if explain_enabled:
            explanation = build_explanation(job, candidate, m, confidence, config)
            explanation = await maybe_polish_explanation(explanation, polish_options)
        decisions.append(CandidateDecision(
            candidate_id=m.candidate_id,
            match=m,
            confidence=assessment,
            shortlisted=True,
            explanation=explanation,
            justification=build_justification(job, candidate, m, confidence, explanation),
        ))

    logger.info(
        "Decision run for job %s (%s): %d candidates, %d matched, %d shortlisted",
        job.id, mode.mode, len(candidates), len(matches), len(shortlisted),
    )
    return DecisionRunResult(
        job_id=job.id,
        mode=mode.mode,
        strategy=resolved_strategy,
        cutoff_score=cutoff,
        shortlisted_candidate_ids=shortlisted,
        decisions=decisions,
        notes=notes,
    )


def export_results_json(result: DecisionRunResult) -> str:
    """Export a decision run as a JSON string, shortlisted candidates first."""
    ordered = sorted(result.decisions, key=lambda d: not d.shortlisted)
    data = result.model_dump(mode="json")
    data["decisions"] = [d.model_dump(mode="json") for d in ordered]
    return json.dumps(data, indent=2)
