"""CLI entry point for the decision engine."""

import argparse
import asyncio
import json
import logging
import sqlite3
import sys
from pathlib import Path

from pydantic import BaseModel, Field

from decision_engine.core.config import Settings
from decision_engine.core.db import (
    SqliteRecommendationStore,
    SqliteTelemetryReader,
    init_db,
    insert_feedback,
    insert_quality_snapshot,
)
from decision_engine.core.schemas import Candidate, Job, Recommendation
from decision_engine.optimization.recommendations import GuardrailRecommendationEngine
from decision_engine.pipeline.orchestrator import export_results_json, run_decision_pipeline


class MatchInput(BaseModel):
    """Contents of the ``--input`` file for the match subcommand."""

    job: Job
    candidates: list[Candidate] = Field(default_factory=list)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--tenant",
        default="default-tenant",
        help="Tenant id whose guardrails and mode apply (default: default-tenant)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Decision engine - score, classify, shortlist and explain candidates for a job",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- match subcommand ---
    match_parser = subparsers.add_parser("match", help="Run the decision pipeline for one job")
    _add_common(match_parser)
    match_parser.add_argument(
        "--input",
        required=True,
        help="Path to a JSON file holding {job, candidates}",
    )
    match_parser.add_argument(
        "--strategy",
        choices=["quality", "fast", "strict", "diversity"],
        help="Override the tenant's shortlist strategy",
    )
    match_parser.add_argument(
        "--polish",
        action="store_true",
        help="Polish explanation summaries with the configured LLM provider",
    )

    # --- recommend subcommand ---
    recommend_parser = subparsers.add_parser(
        "recommend",
        help="Generate guardrail tuning recommendations from telemetry",
    )
    _add_common(recommend_parser)

    # --- set-recommendation-status subcommand ---
    status_parser = subparsers.add_parser(
        "set-recommendation-status",
        help="Mark a stored recommendation as applied, dismissed or pending",
    )
    _add_common(status_parser)
    status_parser.add_argument("--id", required=True, help="Recommendation id")
    status_parser.add_argument(
        "--status",
        required=True,
        choices=["pending", "applied", "dismissed"],
    )

    # --- record-feedback subcommand ---
    feedback_parser = subparsers.add_parser(
        "record-feedback",
        help="Record recruiter feedback on a match (telemetry input)",
    )
    _add_common(feedback_parser)
    feedback_parser.add_argument("--direction", required=True, choices=["UP", "DOWN"])
    feedback_parser.add_argument("--match-score", type=float, help="Match score (0-100)")
    feedback_parser.add_argument("--confidence-score", type=float, help="Confidence score (0-100)")

    # --- record-mqi subcommand ---
    mqi_parser = subparsers.add_parser(
        "record-mqi",
        help="Record a match-quality index snapshot (telemetry input)",
    )
    _add_common(mqi_parser)
    mqi_parser.add_argument("--mqi", required=True, type=float, help="Match-quality index value")

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_match_input(path: str | Path) -> MatchInput:
    path = Path(path)
    if not path.exists():
        msg = f"Input file not found: {path}"
        raise FileNotFoundError(msg)
    return MatchInput.model_validate_json(path.read_text())


async def cmd_match(args: argparse.Namespace, settings: Settings) -> None:
    """Handle match subcommand."""
    tenant = settings.tenant(args.tenant)
    payload = load_match_input(args.input)

    llm_call = None
    if args.polish or settings.polish.enabled:
        from decision_engine.llm import get_provider, provider_llm_call

        provider = get_provider(settings.polish.provider)
        llm_call = provider_llm_call(provider, settings.polish.model, settings.polish.max_tokens)

    result = await run_decision_pipeline(
        payload.job,
        payload.candidates,
        tenant.guardrails(),
        tenant.mode_state(),
        strategy=args.strategy,
        llm_call=llm_call,
        polish=llm_call is not None,
        timeout_seconds=settings.polish.timeout_seconds,
    )

    print(f"Decision run for job '{result.job_id}' ({result.mode} mode): "
          f"{len(result.decisions)} matched, {len(result.shortlisted_candidate_ids)} shortlisted")
    for note in result.notes:
        print(f"  {note}")
    print(f"\n{export_results_json(result)}")


def _engine(settings: Settings) -> tuple[GuardrailRecommendationEngine, sqlite3.Connection]:
    conn = init_db(settings.database.path)
    engine = GuardrailRecommendationEngine(
        store=SqliteRecommendationStore(conn),
        telemetry=SqliteTelemetryReader(conn),
        load_mode=settings.mode_loader(),
        load_guardrails=settings.guardrails_loader(),
    )
    return engine, conn


def _print_recommendations(recommendations: list[Recommendation]) -> None:
    data = [r.model_dump(mode="json") for r in recommendations]
    print(json.dumps(data, indent=2))


async def cmd_recommend(args: argparse.Namespace, settings: Settings) -> None:
    """Handle recommend subcommand."""
    engine, conn = _engine(settings)
    try:
        recommendations = await engine.generate(args.tenant)
    finally:
        conn.close()

    if not recommendations:
        print(f"No recommendations for tenant '{args.tenant}'.")
        return
    _print_recommendations(recommendations)


async def cmd_set_status(args: argparse.Namespace, settings: Settings) -> None:
    """Handle set-recommendation-status subcommand."""
    engine, conn = _engine(settings)
    try:
        recommendations = await engine.update_status(args.tenant, args.id, args.status)
    finally:
        conn.close()

    if not any(r.id == args.id for r in recommendations):
        msg = f"No recommendation '{args.id}' for tenant '{args.tenant}'. Run 'recommend' first."
        raise ValueError(msg)
    print(f"Recommendation '{args.id}' marked {args.status}.")
    _print_recommendations(recommendations)


def cmd_record_feedback(args: argparse.Namespace, settings: Settings) -> None:
    conn = init_db(settings.database.path)
    try:
        row_id = insert_feedback(
            conn, args.tenant, args.direction, args.match_score, args.confidence_score,
        )
    finally:
        conn.close()
    print(f"Feedback #{row_id} recorded for tenant '{args.tenant}'.")


def cmd_record_mqi(args: argparse.Namespace, settings: Settings) -> None:
    conn = init_db(settings.database.path)
    try:
        row_id = insert_quality_snapshot(conn, args.tenant, args.mqi)
    finally:
        conn.close()
    print(f"MQI snapshot #{row_id} recorded for tenant '{args.tenant}'.")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "match":
            asyncio.run(cmd_match(args, settings))
        elif args.command == "recommend":
            asyncio.run(cmd_recommend(args, settings))
        elif args.command == "set-recommendation-status":
            asyncio.run(cmd_set_status(args, settings))
        elif args.command == "record-feedback":
            cmd_record_feedback(args, settings)
        elif args.command == "record-mqi":
            cmd_record_mqi(args, settings)
    except (FileNotFoundError, ImportError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
