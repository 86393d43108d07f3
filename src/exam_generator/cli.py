"""
Command line runner.

Reads unit definitions from a JSON file, registers them in the local
store, and runs generation for all (or selected) units:

    exam-generator --units units.json --materials files/
    exam-generator --unit bio-ch05 --regenerate
    exam-generator --usage
"""
import argparse
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from exam_generator import config
from exam_generator.core.gemini_client import GeminiGenerationClient
from exam_generator.core.ledger import UsageLedger, format_local_cost
from exam_generator.core.orchestrator import GenerationOrchestrator
from exam_generator.exceptions import ConfigurationError
from exam_generator.models.run_models import GenerationRun, GenerationUnit
from exam_generator.protocols.registry import get_registry
from exam_generator.storage.local import DirectoryMaterialSource, JsonUnitStore
from exam_generator.utils.env_loader import load_env
from exam_generator.utils.log_config import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exam-generator",
        description="Generate protocol-validated exam questions from curriculum PDFs.")
    parser.add_argument("--units", default=config.UNITS_FILE,
                        help="JSON file with the list of generation units")
    parser.add_argument("--store", default=str(Path(config.OUTPUT_DIR) / config.QUESTIONS_OUTPUT_FILE),
                        help="JSON file holding unit status and accepted questions")
    parser.add_argument("--materials", default=config.MATERIALS_DIR,
                        help="Directory with one folder of PDFs per chapter")
    parser.add_argument("--unit", action="append", dest="unit_ids",
                        help="Only run this unit (repeatable)")
    parser.add_argument("--regenerate", action="store_true",
                        help="Run completed units again")
    parser.add_argument("--model", default=config.MODEL_NAME, help="Gemini model name")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--usage", action="store_true",
                        help="Print today's token usage and cost, then exit")
    parser.add_argument("--list-protocols", action="store_true",
                        help="Print the registered exam protocols, then exit")
    return parser


def load_units(path: str) -> List[GenerationUnit]:
    """
    Read unit definitions from a JSON list.

    Raises:
        ConfigurationError: If the file is missing or a unit is invalid.
    """
    units_path = Path(path)
    if not units_path.is_file():
        raise ConfigurationError(f"Units file not found: {units_path}")
    try:
        with open(units_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [GenerationUnit.model_validate(item) for item in data]
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid units file {units_path}: {e}") from e


async def register_units(store: JsonUnitStore, units: List[GenerationUnit]) -> None:
    """Add units the store does not know yet; known units keep their status."""
    known = {u.unit_id for u in await store.list_units()}
    new_units = [u for u in units if u.unit_id not in known]
    if new_units:
        await store.add_units(new_units)
        logger.info("Registered %d new units", len(new_units))


def display_summary(run: GenerationRun) -> None:
    """Print a human-readable run summary."""
    print("\n" + "=" * 70)
    print("GENERATION SUMMARY")
    print("=" * 70)
    print(f"\nTotal Questions Generated: {run.total_generated}")
    print(f"Units Completed: {len(run.units_completed)}")
    print(f"Units Failed: {len(run.units_failed)}")
    print(f"Tokens Used: {run.token_usage.total_tokens:,}\n")

    for outcome in run.outcomes:
        if outcome.skipped:
            print(f"  - {outcome.unit_id}: already completed, skipped")
        elif outcome.success:
            print(f"  ✓ {outcome.unit_id}: {outcome.questions_generated} questions "
                  f"({outcome.elapsed_ms / 1000:.1f}s)")
        else:
            print(f"  ✗ {outcome.unit_id}: [{outcome.reason['code']}] {outcome.reason['message']}")

    if run.warnings:
        print(f"\nWarnings ({len(run.warnings)} of {run.warnings_total}):")
        for warning in run.warnings:
            print(f"  • {warning}")
    if run.aggregate_warnings:
        print("\nDistribution across the run:")
        for warning in run.aggregate_warnings:
            print(f"  • {warning}")
    print()


def display_usage(ledger: UsageLedger) -> None:
    summary = ledger.summarize()
    print("=" * 70)
    print(f"TOKEN USAGE FOR {summary['date']}")
    print("=" * 70)
    print(f"Calls: {summary['total_calls']}")
    print(f"Tokens: {summary['prompt_tokens']:,} prompt + {summary['completion_tokens']:,} completion")
    print(f"Cost: ${summary['cost_usd']:.4f} ({summary['cost_local_formatted']})")
    for model, bucket in summary["by_model"].items():
        local = format_local_cost(bucket["cost_usd"] * config.USD_TO_LOCAL_RATE)
        print(f"  • {model}: {bucket['calls']} calls, {bucket['total_tokens']:,} tokens, {local}")


async def run(args: argparse.Namespace) -> GenerationRun:
    store = JsonUnitStore(args.store)
    await register_units(store, load_units(args.units))

    unit_ids = args.unit_ids or [u.unit_id for u in await store.list_units()]
    orchestrator = GenerationOrchestrator(
        boundary=GeminiGenerationClient(model_name=args.model),
        materials=DirectoryMaterialSource(args.materials),
        store=store,
    )
    return await orchestrator.run_units(unit_ids, regenerate=args.regenerate)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the exam-generator command."""
    args = build_parser().parse_args(argv)
    load_env()
    configure_logging(args.log_level, json_format=args.json_logs)

    if args.usage:
        display_usage(UsageLedger())
        return 0
    if args.list_protocols:
        for entry in get_registry().metadata():
            print(f"{entry['id']}: {entry['exam']} / {entry['subject']} (v{entry['version']})")
        return 0

    print("=" * 70)
    print("EXAM QUESTION GENERATOR")
    print("Protocol-driven MCQ generation from curriculum PDFs")
    print("=" * 70 + "\n")

    if not os.environ.get("GEMINI_API_KEY"):
        print("ERROR: GEMINI_API_KEY environment variable not set.")
        print("Please set it using: export GEMINI_API_KEY='your-api-key'")
        return 1

    try:
        result = asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"\n✗ ERROR: {e.message}")
        return 2

    display_summary(result)
    print(f"Questions saved to '{args.store}'")
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
