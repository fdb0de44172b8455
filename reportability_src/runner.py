#!/usr/bin/env python3
"""CLI runner for reportability evaluation.

Usage:
    python -m reportability_src.runner --record record.json --rules-dir rules/
    python -m reportability_src.runner --record - --rules-json rules.json --json
    python -m reportability_src.runner --catalog-summary
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import Config
from .models import PatientRecord
from .rules import (
    Catalog,
    CatalogSourceError,
    EvaluationResult,
    ReportabilityEvaluator,
    load_catalog_from_config,
    load_catalog_from_csv,
    load_catalog_from_json,
)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REPORTABLE = 2


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),  # stdout carries results
        ],
    )


def load_catalog_for_args(args: argparse.Namespace) -> Catalog:
    """Load the catalog from CLI overrides, falling back to Config."""
    if args.rules_json:
        return load_catalog_from_json(args.rules_json)
    if args.rules_dir:
        return load_catalog_from_csv(args.rules_dir)
    return load_catalog_from_config()


def read_record(source: str) -> PatientRecord:
    """Read a resolved patient record from a JSON file, or stdin for '-'."""
    if source == "-":
        data = json.load(sys.stdin)
    else:
        data = json.loads(Path(source).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Patient record JSON must be an object")
    return PatientRecord.from_dict(data)


def show_catalog_summary(catalog: Catalog) -> None:
    """Display loaded conditions and load diagnostics."""
    stats = catalog.stats

    print("\n=== Reportability Rule Catalog ===")
    print(f"Conditions:               {catalog.condition_count}")
    print(f"Rules:                    {catalog.rule_count}")
    print(f"Criteria:                 {catalog.criterion_count}")
    print(f"Skipped rows:             {stats.skipped_rows}")
    print(f"Unknown criterion types:  {stats.unknown_criterion_types}")
    print("-" * 80)
    for condition in catalog.conditions:
        print(
            f"  {condition.id:12s} | "
            f"{condition.name[:45]:45s} | "
            f"{len(condition.rules):>3} rules"
        )
    print("-" * 80)


def _describe_match(group) -> str:
    data = group.matched_data
    if data is None:
        return "(no detail)"
    if data.type == "demographic_age":
        return f"age {data.patient_age} {data.operator} {data.limit} {data.unit}"
    if data.type == "lab_result":
        return f"{data.test_display} -> {data.result_display or data.result_code}"
    detail = f"{data.display} ({data.code})"
    if data.status:
        detail += f" [{data.status}]"
    return detail


def show_result(result: EvaluationResult) -> None:
    """Display an evaluation result with the data that triggered each rule."""
    print(f"\n=== {result.summary()} ===")

    for heading, conditions in (
        ("Triggered conditions", result.triggered_conditions),
        ("Potential conditions", result.potential_conditions),
    ):
        if not conditions:
            continue
        print(f"\n{heading}:")
        print("-" * 80)
        for condition in conditions:
            print(f"  {condition.condition_name} ({condition.condition_id})")
            for rule in condition.matched_rules:
                marker = "✓" if rule.passed else "~"
                print(f"    {marker} Rule {rule.rule_id}: {rule.rule_name}")
                for group in rule.groups:
                    if group.passed:
                        print(f"        group {group.group_id}: {_describe_match(group)}")
                    else:
                        print(f"        group {group.group_id}: not met")
        print("-" * 80)

    if result.warnings:
        print("\nWarnings:")
        for warning in result.warnings:
            print(f"  ! {warning}")
    print()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Determine public health reportability for a patient record",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Evaluate a record against CSV rule tables
    python -m reportability_src.runner --record record.json --rules-dir rules/

    # Read the record from stdin and print the result as JSON
    cat record.json | python -m reportability_src.runner --record - --json

    # Show what the configured catalog contains
    python -m reportability_src.runner --catalog-summary
        """,
    )

    parser.add_argument(
        "--record",
        type=str,
        default=None,
        help="Path to a resolved patient record JSON file ('-' for stdin)",
    )

    parser.add_argument(
        "--rules-dir",
        type=str,
        default=None,
        help=f"Directory with the CSV rule tables (default: {Config.RULES_DIR})",
    )

    parser.add_argument(
        "--rules-json",
        type=str,
        default=None,
        help=f"JSON rules document (default: {Config.RULES_JSON_PATH})",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the evaluation result as JSON",
    )

    parser.add_argument(
        "--catalog-summary",
        action="store_true",
        help="Show the loaded catalog and exit",
    )

    parser.add_argument(
        "--fail-on-reportable",
        action="store_true",
        help=f"Exit with status {EXIT_REPORTABLE} when the record is reportable",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    logger = logging.getLogger(__name__)

    try:
        catalog = load_catalog_for_args(args)
    except CatalogSourceError as e:
        logger.error(f"Failed to load rule catalog: {e}")
        return EXIT_ERROR

    if args.catalog_summary:
        show_catalog_summary(catalog)
        return EXIT_OK

    if not args.record:
        parser.error("--record is required unless --catalog-summary is given")

    try:
        record = read_record(args.record)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read patient record: {e}")
        return EXIT_ERROR

    result = ReportabilityEvaluator(catalog).evaluate(record)
    logger.info(f"Evaluation complete: {result.summary()}")

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        show_result(result)

    if args.fail_on_reportable and result.is_reportable:
        return EXIT_REPORTABLE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
