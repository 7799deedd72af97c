"""Tests for shortlist strategies, caps and fire-drill tightening."""

import math

from decision_engine.core.config import GUARDRAILS_PRESETS, GuardrailsConfig, resolve_guardrails
from decision_engine.core.schemas import MatchSignals
from decision_engine.pipeline.shortlist import (
    ShortlistMatch,
    apply_fire_drill_thresholds,
    build_shortlist,
    is_near_duplicate,
    plan_shortlist,
    resolve_max_candidates,
    resolve_min_score,
    resolve_strategy,
)


def _signals(must: float = 1.0, nice: float = 1.0, exp: float = 1.0, loc: float = 1.0) -> MatchSignals:
    return MatchSignals(
        must_have_skills_coverage=must,
        nice_to_have_skills_coverage=nice,
        experience_alignment=exp,
        location_alignment=loc,
    )


def _m(cid: str, score: float, band: str = "HIGH", signals: MatchSignals | None = None) -> ShortlistMatch:
    return ShortlistMatch(candidate_id=cid, score=score, confidence_band=band, signals=signals)


def _cfg(
    strategy: str | None = None,
    cap: int | None = None,
    min_score: float = 0,
    shortlist_min: float | None = None,
) -> GuardrailsConfig:
    data: dict = {
        "scoring": {
            "thresholds": {
                "min_match_score": min_score,
                "shortlist_min_score": shortlist_min,
                "shortlist_max_candidates": cap,
            }
        }
    }
    if strategy:
        data["shortlist"] = {"strategy": strategy}
    return GuardrailsConfig.model_validate(data)


# ---------------------------------------------------------------------------
# Resolution helpers
# ---------------------------------------------------------------------------
class TestResolution:
    def test_strategy_defaults_to_quality(self) -> None:
        assert resolve_strategy(_cfg()) == "quality"

    def test_strategy_override_wins(self) -> None:
        assert resolve_strategy(_cfg("diversity"), "fast") == "fast"

    def test_unbounded_without_cap(self) -> None:
        assert math.isinf(resolve_max_candidates(_cfg()))

    def test_shortlist_cap_beats_threshold_cap(self) -> None:
        cfg = resolve_guardrails("balanced", {"shortlist": {"maxCandidates": 3}})
        assert resolve_max_candidates(cfg) == 3

    def test_min_score_is_stricter_threshold(self) -> None:
        assert resolve_min_score(_cfg(min_score=0.6, shortlist_min=75)) == 75
        assert resolve_min_score(_cfg(min_score=80, shortlist_min=0.5)) == 80


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
class TestStrategies:
    def test_quality_breaks_ties_by_band_then_id(self) -> None:
        matches = [_m("c", 80, "MEDIUM"), _m("b", 80, "HIGH"), _m("a", 80, "MEDIUM"), _m("d", 90, "LOW")]
        assert build_shortlist(matches, _cfg()) == ["d", "b", "a", "c"]

    def test_fast_ignores_band(self) -> None:
        matches = [_m("c", 80, "HIGH"), _m("a", 80, "LOW"), _m("b", 95, "LOW")]
        assert build_shortlist(matches, _cfg("fast")) == ["b", "a", "c"]

    def test_strict_keeps_high_only(self) -> None:
        matches = [_m("a", 90, "MEDIUM"), _m("b", 85, "HIGH"), _m("c", 70, "LOW")]
        assert build_shortlist(matches, _cfg("strict")) == ["b"]

    def test_strict_may_be_empty(self) -> None:
        assert build_shortlist([_m("a", 90, "MEDIUM")], _cfg("strict")) == []

    def test_diversity_skips_near_duplicates(self) -> None:
        matches = [
            _m("a", 90, signals=_signals()),
            _m("b", 89.5, signals=_signals(must=0.98)),
            _m("c", 85, signals=_signals(loc=0.3)),
        ]
        assert build_shortlist(matches, _cfg("diversity")) == ["a", "c"]

    def test_diversity_never_returns_duplicates(self) -> None:
        matches = [_m(f"c{i}", 80 + (i % 2) * 0.2, signals=_signals()) for i in range(6)]
        selected = build_shortlist(matches, _cfg("diversity"))
        assert len(selected) == len(set(selected))
        assert len(selected) == 1

    def test_near_duplicate_requires_signals(self) -> None:
        assert not is_near_duplicate(_m("a", 80), _m("b", 80))
        assert is_near_duplicate(_m("a", 80, signals=_signals()), _m("b", 80.5, signals=_signals(exp=0.96)))
        assert not is_near_duplicate(_m("a", 80, signals=_signals()), _m("b", 81, signals=_signals()))


class TestPlanShortlist:
    def test_cap_respected(self) -> None:
        matches = [_m(f"c{i}", 90 - i) for i in range(8)]
        assert build_shortlist(matches, _cfg(cap=3)) == ["c0", "c1", "c2"]

    def test_cap_zero_returns_nothing(self) -> None:
        plan = plan_shortlist([_m("a", 99)], _cfg(cap=0))
        assert plan.shortlisted_candidate_ids == []
        assert plan.cutoff_score is None

    def test_threshold_drops_low_scores(self) -> None:
        plan = plan_shortlist([_m("a", 80), _m("b", 74)], _cfg(min_score=0.6, shortlist_min=75))
        assert plan.shortlisted_candidate_ids == ["a"]
        assert plan.cutoff_score == 80
        assert plan.notes == ["strategy=quality", "minScore=75"]

    def test_empty_input(self) -> None:
        plan = plan_shortlist([], GUARDRAILS_PRESETS["balanced"])
        assert plan.shortlisted_candidate_ids == []
        assert plan.strategy == "quality"

    def test_cutoff_is_last_selected_score(self) -> None:
        plan = plan_shortlist([_m("a", 95), _m("b", 88), _m("c", 81)], _cfg(cap=2))
        assert plan.cutoff_score == 88


# ---------------------------------------------------------------------------
# Fire drill
# ---------------------------------------------------------------------------
class TestFireDrillThresholds:
    def test_aggressive_tightened_to_conservative(self) -> None:
        cfg = apply_fire_drill_thresholds(GUARDRAILS_PRESETS["aggressive"])
        thresholds = cfg.scoring.thresholds
        assert thresholds.min_match_score == 70
        assert thresholds.shortlist_min_score == 80
        assert thresholds.shortlist_max_candidates == 8
        assert cfg.shortlist is not None
        assert cfg.shortlist.strategy == "strict"

    def test_stricter_tenant_values_kept(self) -> None:
        tenant = _cfg("quality", cap=3, min_score=90, shortlist_min=0.85)
        cfg = apply_fire_drill_thresholds(tenant)
        assert cfg.scoring.thresholds.min_match_score == 90
        assert cfg.scoring.thresholds.shortlist_min_score == 85
        assert resolve_max_candidates(cfg) == 3

    def test_without_shortlist_section(self) -> None:
        cfg = apply_fire_drill_thresholds(_cfg())
        assert cfg.shortlist is not None
        assert cfg.shortlist.strategy == "strict"
        assert cfg.shortlist.max_candidates == 8

    def test_input_config_untouched(self) -> None:
        base = GUARDRAILS_PRESETS["balanced"]
        apply_fire_drill_thresholds(base)
        assert base.scoring.thresholds.min_match_score == 60
