# src/main.py — v3
"""CLI entry point — run, recipe, compose, history, show commands.

Usage:
    shipline run [--manual | --branch <b>] [--revision <sha>]
    shipline recipe {backend,frontend} [-o Dockerfile]
    shipline compose [-o docker-compose.yml]
    shipline history
    shipline show <run_id>

Exit status of ``run`` is 0 when the Pipeline Run succeeded (or the
trigger was ignored) and 1 when it failed.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from shipline.logging.logger import get_logger, setup_logging
from shipline.version import __version__

if TYPE_CHECKING:
    from shipline.config.settings import Settings
    from shipline.core.models import PipelineRun

logger = get_logger("main")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args)
        _setup_logging(settings, args.verbose)
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shipline",
        description=f"shipline v{__version__} - build, publish and deploy the tutorial app",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--env-file", type=Path, default=None,
        help="Settings file (default: .env)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser("run", help="Run the pipeline once")
    source = p_run.add_mutually_exclusive_group()
    source.add_argument(
        "--manual", action="store_true",
        help="Manual trigger (default when no --branch is given)",
    )
    source.add_argument(
        "--branch", default=None,
        help="Branch a push was made to; other branches are ignored",
    )
    p_run.add_argument("--revision", default=None, help="Source revision")
    p_run.add_argument("--host", default=None, help="Override SSH_HOST")
    p_run.set_defaults(func=_cmd_run)

    # --- recipe ---
    p_recipe = subparsers.add_parser("recipe", help="Print a default build recipe")
    p_recipe.add_argument("service", choices=["backend", "frontend"])
    p_recipe.add_argument("-o", "--output", type=Path, default=None, help="Write to file")
    p_recipe.set_defaults(func=_cmd_recipe)

    # --- compose ---
    p_compose = subparsers.add_parser("compose", help="Print the default descriptor")
    p_compose.add_argument("-o", "--output", type=Path, default=None, help="Write to file")
    p_compose.set_defaults(func=_cmd_compose)

    # --- history ---
    p_history = subparsers.add_parser("history", help="Summarize recorded runs")
    p_history.set_defaults(func=_cmd_history)

    # --- show ---
    p_show = subparsers.add_parser("show", help="Show stages of one run")
    p_show.add_argument("run_id", help="Run id, or 'latest'")
    p_show.set_defaults(func=_cmd_show)

    return parser


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Trigger one Pipeline Run."""
    from shipline.api.facade import run_pipeline
    from shipline.core.models import Trigger

    if args.branch:
        trigger = Trigger(kind="push", branch=args.branch, revision=args.revision)
    else:
        trigger = Trigger(kind="manual", revision=args.revision)

    run = await run_pipeline(trigger, settings=settings)
    if run is None:
        print(f"Trigger ignored: branch {args.branch!r} is not the pipeline branch")
        return 0

    _print_run(run)
    return 0 if run.succeeded else 1


async def _cmd_recipe(args: argparse.Namespace, settings: Settings) -> int:
    """Render a built-in recipe as Dockerfile text."""
    from shipline.build.recipe import default_recipe

    text = default_recipe(args.service).render()
    _emit(text, args.output)
    return 0


async def _cmd_compose(args: argparse.Namespace, settings: Settings) -> int:
    """Render the built-in descriptor for the configured images."""
    from shipline.api.facade import resolve_descriptor
    from shipline.compose.descriptor import render_descriptor

    _emit(render_descriptor(resolve_descriptor(settings)), args.output)
    return 0


async def _cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    """Display aggregate run statistics."""
    from shipline.storage.run_manager import RunLedger

    ledger = RunLedger(settings.output_dir)
    summary = await ledger.summarize()

    print(f"\nRuns in {ledger.output_dir}:")
    print(f"  Total:      {summary.total_runs}")
    print(f"  Succeeded:  {summary.succeeded}")
    print(f"  Failed:     {summary.failed}")
    print(f"  Unfinished: {summary.unfinished}")
    if summary.last_run_id:
        print(f"  Last run:   {summary.last_run_id} ({summary.last_state})")
    for stage, count in sorted(summary.failures_by_stage.items()):
        print(f"  Failures in {stage}: {count}")
    return 0


async def _cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    """Display one run manifest."""
    from shipline.storage.run_manager import RunLedger

    ledger = RunLedger(settings.output_dir)
    if args.run_id == "latest":
        run = await ledger.latest()
        if run is None:
            print("No finished runs recorded")
            return 1
    else:
        try:
            run = await ledger.load(args.run_id)
        except FileNotFoundError as exc:
            print(str(exc), file=sys.stderr)
            return 1

    _print_run(run)
    return 0


def _load_settings(args: argparse.Namespace) -> Settings:
    from shipline.config.settings import load_settings

    overrides: dict[str, object] = {}
    if args.env_file is not None:
        overrides["_env_file"] = args.env_file
    if getattr(args, "host", None):
        overrides["ssh_host"] = args.host
    return load_settings(**overrides)


def _print_run(run: PipelineRun) -> None:
    """Print a human-readable per-stage summary of a PipelineRun."""
    print(f"\nRun {run.run_id}: {run.state}")
    for stage in run.stages:
        line = f"  {stage.name:<18} {stage.status}"
        if stage.duration_ms is not None:
            line += f" ({stage.duration_ms}ms)"
        if stage.error:
            line += f" - {stage.error_type}: {stage.error}"
        print(line)
    if run.changed_services:
        print(f"  Recreated: {', '.join(run.changed_services)}")


def _emit(text: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(text)
        return
    output.write_text(text, encoding="utf-8")
    print(f"Wrote {output}")


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging from settings; --verbose forces DEBUG."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
