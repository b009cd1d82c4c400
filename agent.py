"""Client Health Score — command-line entry point.

Commands:
  # Analyze one client now
  python agent.py analyze --client-id <uuid> --agency-id <uuid>

  # Weekly job: every active client of the agencies scheduled for today
  python agent.py scheduled

  # Delete cached WhatsApp messages past the retention window
  python agent.py purge-messages --days 90
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

# Must run before any LLM call
from llm_init import init_llm

init_llm()

from agents.orchestrator import run_analysis
from agents.scheduler import purge_old_messages, run_scheduled_analyses
from config import AnalysisConfig
from db.connection import dispose_engine
from db.store import AnalysisStore
from schemas import AnalysisRequest

logger = logging.getLogger(__name__)

OUTPUT_DIR = Path(__file__).parent / "output"


async def run_single_analysis(client_id: str, agency_id: str) -> int:
    print(f"\n[Analyze] Client {client_id} (agency {agency_id})...")
    store = AnalysisStore()
    try:
        outcome = await run_analysis(
            AnalysisRequest(client_id=client_id, agency_id=agency_id, triggered_by="manual"),
            store=store,
            config=AnalysisConfig.from_env(),
        )
    finally:
        await dispose_engine()

    if outcome.skipped:
        print(f"  Skipped: {outcome.skip_reason}")
        return 0
    if not outcome.success:
        print(f"  Failed: {outcome.error}")
        return 1

    result = outcome.result
    print(f"  Health score: {result.score_total}/100 (churn risk: {result.churn_risk})")
    print(
        f"  Pillars: financial={result.score_financial} proximity={result.score_proximity} "
        f"outcome={result.score_outcome} nps={result.score_nps}"
    )
    print(f"  Flags: {', '.join(result.flags) or 'none'}")
    for position, action in enumerate(result.action_plan, start=1):
        print(f"  {position}. {action}")
    print(f"  Tokens: {result.tokens_used} (~R$ {result.estimated_cost_brl:.2f})")

    OUTPUT_DIR.mkdir(exist_ok=True)
    result_path = OUTPUT_DIR / f"analysis_{client_id}.json"
    result_path.write_text(json.dumps(outcome.model_dump(mode="json"), indent=2, ensure_ascii=False))
    print(f"  Result saved to {result_path}")
    return 0


async def run_weekly() -> int:
    print("\n[Scheduled] Running weekly analyses...")
    try:
        counts = await run_scheduled_analyses(AnalysisStore(), config=AnalysisConfig.from_env())
    finally:
        await dispose_engine()
    print(
        f"  Agencies: {counts['agencies']}  Clients: {counts['clients']}  "
        f"Success: {counts['success']}  Skipped: {counts['skipped']}  Failed: {counts['failed']}"
    )
    return 0


async def run_purge(days: int) -> int:
    print(f"\n[Purge] Deleting cached messages older than {days} days...")
    try:
        deleted = await purge_old_messages(AnalysisStore(), retention_days=days)
    finally:
        await dispose_engine()
    print(f"  Deleted: {deleted}")
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Client Health Score analysis")
    sub = parser.add_subparsers(dest="command")

    analyze = sub.add_parser("analyze", help="Analyze one client now")
    analyze.add_argument("--client-id", required=True)
    analyze.add_argument("--agency-id", required=True)

    sub.add_parser("scheduled", help="Run the weekly analyses scheduled for today")

    purge = sub.add_parser("purge-messages", help="Purge cached WhatsApp messages")
    purge.add_argument(
        "--days",
        type=int,
        default=AnalysisConfig.from_env().message_retention_days,
        help="Retention window in days (default: MESSAGE_RETENTION_DAYS or 90)",
    )

    return parser


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.command == "analyze":
        sys.exit(asyncio.run(run_single_analysis(args.client_id, args.agency_id)))

    elif args.command == "scheduled":
        sys.exit(asyncio.run(run_weekly()))

    elif args.command == "purge-messages":
        sys.exit(asyncio.run(run_purge(args.days)))

    else:
        parser.print_help()
        sys.exit(1)
