"""Main entry point for apptrail."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from apptrail import __version__
from apptrail.config.settings import Settings
from apptrail.utils.logging import configure_logging


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def _resolve_input(path: Path, base_dir: Path) -> Path:
    """Relative paths that do not exist here are looked up under ``base_dir``."""
    if path.is_absolute() or path.exists():
        return path
    candidate = base_dir / path
    return candidate if candidate.exists() else path


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="apptrail",
        description="apptrail: reconcile job application emails into one record",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m apptrail merge data/observations/acme.yaml
  python -m apptrail merge batch.json --record record.json --out merged.json
  python -m apptrail merge acme.yaml --save
  python -m apptrail classify --subject "Interview invitation" --body "..."
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the log level from settings",
    )

    subparsers = parser.add_subparsers(
        dest="mode",
        title="modes",
        description="Available modes",
    )

    merge_parser = subparsers.add_parser(
        "merge",
        help="Merge an observation batch into a canonical record",
    )
    merge_parser.add_argument(
        "observations",
        type=Path,
        help="Observation batch (YAML or JSON); relative names also resolve "
        "under APPTRAIL_OBSERVATIONS_DIR",
    )
    merge_parser.add_argument(
        "--record",
        type=Path,
        default=None,
        help="Existing record (JSON or YAML) to update",
    )
    merge_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the merge result here instead of printing it",
    )
    merge_parser.add_argument(
        "--save",
        action="store_true",
        help="Write the merge result to <output_dir>/<record id>.json",
    )
    merge_parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Use the rule tier only",
    )

    classify_parser = subparsers.add_parser(
        "classify",
        help="Classify one message with the rule tier",
    )
    classify_parser.add_argument("--subject", required=True, help="Message subject")
    classify_parser.add_argument("--body", default="", help="Message body")

    return parser


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    log_level = parsed.log_level or settings.log_level
    logger = configure_logging(level=log_level, log_file=settings.log_file)

    if parsed.mode is None:
        parser.print_help()
        return 0

    logger.debug("apptrail v%s starting in %s mode", __version__, parsed.mode)

    if parsed.mode == "classify":
        from apptrail.reconciler.rules import classify_by_rules

        analysis = classify_by_rules(parsed.subject, parsed.body)
        print(json.dumps(analysis.to_dict(), indent=2, ensure_ascii=False))
        return 0

    if parsed.mode == "merge":
        from apptrail.reconciler.classifier import StatusClassifier
        from apptrail.reconciler.config import get_reconciler_config
        from apptrail.reconciler.engine import ReconciliationEngine
        from apptrail.reconciler.llm import StatusLLM
        from apptrail.tracker.loader import ObservationLoader

        loader = ObservationLoader()
        try:
            batch_path = _resolve_input(parsed.observations, settings.observations_dir)
            observations = loader.load_observations(batch_path)
            records = loader.load_records(parsed.record) if parsed.record else []
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if not observations:
            print(f"Error: no observations in {batch_path}", file=sys.stderr)
            return 1
        if len(records) > 1:
            print("Error: --record must hold a single record", file=sys.stderr)
            return 1

        config = get_reconciler_config()
        service = None if parsed.no_ai or config.ai_policy == "off" else StatusLLM(config)
        engine = ReconciliationEngine(
            config=config,
            classifier=StatusClassifier(service, config),
        )

        result = asyncio.run(
            engine.merge(observations, existing=records[0] if records else None)
        )
        payload = result.to_dict()

        out_path = parsed.out
        if out_path is None and parsed.save:
            out_path = settings.output_dir / f"{result.record.id}.json"

        if out_path is not None:
            _write_json(out_path, payload)
            print(f"Wrote: {out_path}")
        else:
            print(json.dumps(payload, indent=2, ensure_ascii=False))

        record = result.record
        logger.info(
            "%s: %s at %s -> %s",
            "Updated" if result.is_update else "Created",
            record.position or "?",
            record.company or "?",
            record.status.value,
        )
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
