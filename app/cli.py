"""Command-line entry point.

Usage: python -m app.cli [--work-dir DIR] [--url URL] [--requirement TEXT ...]

Exit status is 0 when the pipeline completes or stops at a provider usage
limit, and 1 for any other failure.
"""
from __future__ import annotations
import argparse
import logging
import sys
from typing import Optional, Sequence
from app.core.artifacts import inspect, log_inspection
from app.core.config import PipelineConfig, settings, site_name_from_url
from app.core.errors import classify
from app.core.logging import configure_logging
from app.core.workflow import ExecutionStage
from app.tasks.pipeline import execute_pipeline

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate and run end-to-end tests for a website")
    parser.add_argument("--work-dir", default=settings.work_dir, help="Directory holding the checkpoint artifacts")
    parser.add_argument("--url", help="Target site URL")
    parser.add_argument("--site-name", help="Display name of the site (defaults to the URL host)")
    parser.add_argument("--requirement", action="append", default=[], help="Test requirement (repeatable)")
    parser.add_argument("--test-type", action="append", default=[], help="Test type, e.g. functional (repeatable)")
    parser.add_argument("--max-cases", type=int, default=10)
    parser.add_argument("--priority", choices=["low", "medium", "high"], default="medium")
    parser.add_argument("--from-stage", type=int, choices=[int(s) for s in ExecutionStage],
                        help="Force the starting stage instead of inferring it from the work dir")
    parser.add_argument("--verbose", action="store_true")
    return parser


def resolve_config(args: argparse.Namespace, inspection) -> Optional[PipelineConfig]:
    if inspection.config_usable and inspection.config_path and not args.url:
        try:
            config = PipelineConfig.load(inspection.config_path)
        except (OSError, ValueError) as e:
            log.warning("Ignoring configuration %s: %s", inspection.config_path, e)
            if inspection.next_stage <= ExecutionStage.SCENARIO_GENERATION:
                return None
        else:
            log.info("Using configuration %s", inspection.config_path)
            return config.model_copy(update={"work_dir": args.work_dir})

    if not args.url:
        if inspection.needs_fresh_config:
            return None
        # later stages run purely from upstream artifacts
        return PipelineConfig(targetUrl="", workDir=args.work_dir, verbose=args.verbose)

    config = PipelineConfig(
        targetUrl=args.url,
        siteName=args.site_name or site_name_from_url(args.url),
        testRequirements=args.requirement,
        testTypes=args.test_type or ["functional", "ux"],
        maxTestCases=args.max_cases,
        priority=args.priority,
        workDir=args.work_dir,
        verbose=args.verbose,
    )
    path = config.save()
    log.info("Configuration saved to %s", path)
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    try:
        inspection = inspect(args.work_dir)
        log_inspection(inspection)

        config = resolve_config(args, inspection)
        if config is None:
            log.error("No usable configuration in %s; pass --url and --requirement", args.work_dir)
            return 1

        start = args.from_stage or inspection.next_stage
        result = execute_pipeline(config, int(start))
        if result["status"] == "usage_limit":
            log.warning("Usage limit reached; partial results are in %s", args.work_dir)
        return 0
    except Exception as e:
        if classify(e):
            log.warning("Usage limit reached, exiting; rerun later to resume")
            return 0
        log.error("Pipeline failed: %s", e, exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
