"""Integration test: full decision pipeline, recommendation flow on SQLite, and the CLI."""

import json
from pathlib import Path
from textwrap import dedent
from unittest.mock import AsyncMock

import pytest

from decision_engine.core.config import GUARDRAILS_PRESETS, Settings, TenantSettings, resolve_guardrails
from decision_engine.core.db import (
    SqliteRecommendationStore,
    SqliteTelemetryReader,
    init_db,
    insert_feedback,
    insert_quality_snapshot,
)
from decision_engine.core.modes import mode_state_for
from decision_engine.core.schemas import Candidate, Job, Skill
from decision_engine.optimization.recommendations import GuardrailRecommendationEngine
from decision_engine.pipeline.orchestrator import (
    FIRE_DRILL_NOTE,
    DecisionRunResult,
    export_results_json,
    run_decision_pipeline,
)
from main import main

BALANCED = GUARDRAILS_PRESETS["balanced"]

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _skills(*names: str) -> list[Skill]:
    return [Skill(name=n) for n in names]


def _job() -> Job:
    return Job(
        id="job-fe",
        title="Frontend Engineer",
        location="Berlin",
        min_experience_years=3,
        skills=[
            Skill(name="React", required=True),
            Skill(name="GraphQL", required=True),
            Skill(name="TypeScript"),
        ],
    )


def _pool() -> list[Candidate]:
    return [
        # 100: every signal maxed
        Candidate(id="ada", name="Ada", location="Berlin", total_experience_years=6,
                  skills=_skills("React", "GraphQL", "TypeScript")),
        # 77: remote, no nice-to-have
        Candidate(id="ben", location="Remote", total_experience_years=5,
                  skills=_skills("React", "GraphQL")),
        # 73: junior and far away, matches but below the shortlist cutoff
        Candidate(id="cy", location="Tokyo", total_experience_years=1,
                  skills=_skills("React", "GraphQL", "TypeScript")),
        # gated out: missing GraphQL
        Candidate(id="dan", location="Berlin", total_experience_years=8,
                  skills=_skills("React", "TypeScript")),
    ]


def _internal() -> Candidate:
    return Candidate(id="eve", location="Berlin", total_experience_years=7, is_internal=True,
                     skills=_skills("React", "GraphQL", "TypeScript"))


def _decision(result: DecisionRunResult, cid: str):
    return next(d for d in result.decisions if d.candidate_id == cid)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
class TestDecisionPipeline:
    async def test_production_run(self) -> None:
        result = await run_decision_pipeline(_job(), _pool(), BALANCED, mode_state_for("production"))

        assert [d.candidate_id for d in result.decisions] == ["ada", "ben", "cy"]
        assert [d.match.score for d in result.decisions] == [100, 77, 73]
        assert result.shortlisted_candidate_ids == ["ada", "ben"]
        assert result.strategy == "quality"
        assert result.cutoff_score == 77
        assert result.notes == ["strategy=quality", "minScore=75"]

        ada = _decision(result, "ada")
        assert ada.confidence.confidence_band == "HIGH"
        assert ada.confidence.recommended_action == "PUSH"
        assert ada.explanation is not None
        assert ada.explanation.strengths[0] == "High must-have skill coverage (100%)."
        assert ada.justification is not None
        assert ada.justification.subject == "Recommendation: Ada for Frontend Engineer"

        cy = _decision(result, "cy")
        assert not cy.shortlisted
        assert cy.explanation is None
        assert cy.justification is None
        assert cy.confidence.confidence_band == "MEDIUM"
        assert [f.type for f in cy.confidence.risk_flags] == ["CONFLICTING_SIGNALS"]
        assert cy.confidence.recommended_action == "ESCALATE"

    async def test_fire_drill_run(self) -> None:
        llm = AsyncMock(return_value="Polished.")
        result = await run_decision_pipeline(
            _job(), _pool(), BALANCED, mode_state_for("fire_drill"), llm_call=llm, polish=True,
        )

        assert result.strategy == "strict"
        assert result.shortlisted_candidate_ids == ["ada"]
        assert result.notes[0] == FIRE_DRILL_NOTE
        assert "minScore=80" in result.notes
        for decision in result.decisions:
            assert decision.confidence.confidence_reasons == []
            assert decision.confidence.risk_flags == []

        ada = _decision(result, "ada")
        assert ada.explanation is not None
        assert ada.explanation.summary != "Polished."
        llm.assert_not_awaited()

    async def test_polish_rewrites_shortlisted_summaries(self) -> None:
        llm = AsyncMock(return_value="Polished.")
        result = await run_decision_pipeline(
            _job(), _pool(), BALANCED, mode_state_for("production"), llm_call=llm, polish=True,
        )

        assert llm.await_count == 2
        ada = _decision(result, "ada")
        assert ada.explanation is not None
        assert ada.explanation.summary == "Polished."
        assert ada.justification is not None
        assert ada.justification.body.splitlines()[0] == "Polished."

    async def test_polish_failure_is_not_fatal(self) -> None:
        llm = AsyncMock(side_effect=RuntimeError("boom"))
        result = await run_decision_pipeline(
            _job(), _pool(), BALANCED, mode_state_for("production"), llm_call=llm, polish=True,
        )
        assert result.shortlisted_candidate_ids == ["ada", "ben"]
        assert _decision(result, "ada").explanation.summary == "High must-have skill coverage (100%)."

    async def test_internal_candidates_excluded(self) -> None:
        cfg = resolve_guardrails("balanced", {"safety": {"excludeInternalCandidates": True}})
        result = await run_decision_pipeline(_job(), [*_pool(), _internal()], cfg)
        assert "eve" not in [d.candidate_id for d in result.decisions]

        result = await run_decision_pipeline(_job(), [*_pool(), _internal()], BALANCED)
        assert "eve" in result.shortlisted_candidate_ids

    async def test_strategy_override(self) -> None:
        result = await run_decision_pipeline(_job(), _pool(), BALANCED, strategy="fast")
        assert result.strategy == "fast"
        assert result.shortlisted_candidate_ids == ["ada", "ben"]

    async def test_match_disabled(self) -> None:
        mode = mode_state_for("production", agents_enabled=["CONFIDENCE", "EXPLAIN"])
        result = await run_decision_pipeline(_job(), _pool(), BALANCED, mode)
        assert result.decisions == []
        assert result.notes == ["Match agent disabled."]

    async def test_shortlist_disabled(self) -> None:
        mode = mode_state_for("production", agents_enabled=["MATCH", "CONFIDENCE", "EXPLAIN"])
        result = await run_decision_pipeline(_job(), _pool(), BALANCED, mode)
        assert result.shortlisted_candidate_ids == []
        assert len(result.decisions) == 3
        assert "Shortlist agent disabled." in result.notes

    async def test_empty_pool(self) -> None:
        result = await run_decision_pipeline(_job(), [], BALANCED)
        assert result.decisions == []
        assert result.shortlisted_candidate_ids == []

    async def test_export_json(self) -> None:
        result = await run_decision_pipeline(_job(), _pool(), BALANCED)
        data = json.loads(export_results_json(result))
        assert data["job_id"] == "job-fe"
        assert [d["shortlisted"] for d in data["decisions"]] == [True, True, False]
        assert data["decisions"][0]["justification"]["subject"].startswith("Recommendation: Ada")


# ---------------------------------------------------------------------------
# Recommendations on SQLite
# ---------------------------------------------------------------------------
class TestRecommendationFlow:
    async def test_generate_update_regenerate(self, tmp_path: Path) -> None:
        db_path = tmp_path / "engine.db"
        settings = Settings(tenants={"acme": TenantSettings(preset="balanced", mode="production")})

        conn = init_db(db_path)
        insert_quality_snapshot(conn, "acme", 80.0)
        insert_quality_snapshot(conn, "acme", 70.0)
        for _ in range(3):
            insert_feedback(conn, "acme", "DOWN", 50.0, 40.0)
        insert_feedback(conn, "acme", "UP", 55.0, 45.0)

        engine = GuardrailRecommendationEngine(
            store=SqliteRecommendationStore(conn),
            telemetry=SqliteTelemetryReader(conn),
            load_mode=settings.mode_loader(),
            load_guardrails=settings.guardrails_loader(),
        )
        first = await engine.generate("acme")
        assert [r.id for r in first] == [
            "increase-min-match-score",
            "reduce-shortlist-width",
            "raise-confidence-bands",
        ]
        assert first[0].confidence == "high"
        await engine.update_status("acme", "reduce-shortlist-width", "dismissed")
        conn.close()

        conn = init_db(db_path)
        engine = GuardrailRecommendationEngine(
            store=SqliteRecommendationStore(conn),
            telemetry=SqliteTelemetryReader(conn),
            load_mode=settings.mode_loader(),
            load_guardrails=settings.guardrails_loader(),
        )
        second = await engine.generate("acme")
        conn.close()

        statuses = {r.id: r.status for r in second}
        assert statuses["reduce-shortlist-width"] == "dismissed"
        assert statuses["increase-min-match-score"] == "pending"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
@pytest.fixture()
def cli_config(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(dedent(f"""\
        database:
          path: {tmp_path / "engine.db"}
        tenants:
          default-tenant:
            preset: balanced
            mode: production
          globex:
            preset: aggressive
            mode: fire_drill
    """))
    return path


@pytest.fixture()
def match_input(tmp_path: Path) -> Path:
    path = tmp_path / "input.json"
    payload = {
        "job": _job().model_dump(mode="json"),
        "candidates": [c.model_dump(mode="json") for c in _pool()],
    }
    path.write_text(json.dumps(payload))
    return path


class TestCli:
    def test_match(self, cli_config: Path, match_input: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["match", "--config", str(cli_config), "--input", str(match_input)])
        out = capsys.readouterr().out
        assert "Decision run for job 'job-fe' (production mode): 3 matched, 2 shortlisted" in out
        assert '"shortlisted_candidate_ids"' in out

    def test_match_fire_drill_tenant(
        self, cli_config: Path, match_input: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["match", "--config", str(cli_config), "--input", str(match_input), "--tenant", "globex"])
        assert FIRE_DRILL_NOTE in capsys.readouterr().out

    def test_missing_input(self, cli_config: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["match", "--config", str(cli_config), "--input", str(tmp_path / "none.json")])
        assert exc.value.code == 1
        assert "Input file not found" in capsys.readouterr().err

    def test_missing_config(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["recommend", "--config", str(tmp_path / "nope.yaml")])
        assert exc.value.code == 1
        assert "Error loading config" in capsys.readouterr().err

    def test_telemetry_then_recommend(self, cli_config: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["record-mqi", "--config", str(cli_config), "--mqi", "80"])
        main(["record-mqi", "--config", str(cli_config), "--mqi", "70"])
        main(["record-feedback", "--config", str(cli_config), "--direction", "DOWN",
              "--match-score", "50", "--confidence-score", "40"])
        capsys.readouterr()

        main(["recommend", "--config", str(cli_config)])
        out = capsys.readouterr().out
        data = json.loads(out)
        assert data[0]["id"] == "increase-min-match-score"

        main(["set-recommendation-status", "--config", str(cli_config),
              "--id", "increase-min-match-score", "--status", "applied"])
        assert "marked applied" in capsys.readouterr().out

    def test_recommend_fire_drill(self, cli_config: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["recommend", "--config", str(cli_config), "--tenant", "globex"])
        assert "No recommendations for tenant 'globex'." in capsys.readouterr().out

    def test_unknown_recommendation_id(self, cli_config: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["set-recommendation-status", "--config", str(cli_config), "--id", "bogus", "--status", "applied"])
        assert exc.value.code == 1
        assert "No recommendation 'bogus'" in capsys.readouterr().err
