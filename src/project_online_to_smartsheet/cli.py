"""
Command-line interface for the Project Online to Smartsheet migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys

from . import project_online_utils as pou
from . import smartsheet_utils as ssu
from .exceptions import OperationCancelledError
from .hierarchy import build_plan
from .orchestrator import MigrationOrchestrator, MigrationResult
from .retry import Cancellation, RetryPolicy
from .row_loader import DEFAULT_BATCH_SIZE
from .sheet_builder import task_nodes
from .utils import env_float, env_int, setup_logging

logger: logging.Logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        msg = f"invalid integer: {value!r}"
        raise argparse.ArgumentTypeError(msg) from e
    if number < 1:
        msg = f"must be at least 1, got {number}"
        raise argparse.ArgumentTypeError(msg)
    return number


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError as e:
        msg = f"invalid number: {value!r}"
        raise argparse.ArgumentTypeError(msg) from e
    if number <= 0:
        msg = f"must be greater than 0, got {value}"
        raise argparse.ArgumentTypeError(msg)
    return number


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Migrate Project Online projects to Smartsheet workspaces")

    # Positional arguments
    _ = parser.add_argument("project_ids", nargs="+", metavar="PROJECT_ID", help="Project Online project GUID")

    _ = parser.add_argument(
        "--project-online-url",
        help="PWA site URL, e.g. https://contoso.sharepoint.com/sites/pwa (env: PROJECT_ONLINE_URL)",
    )

    _ = parser.add_argument(
        "--project-online-pass-token",
        help="Path for Project Online token in pass utility (default: projectonline/token)",
    )

    _ = parser.add_argument(
        "--smartsheet-pass-token", help="Path for Smartsheet API token in pass utility (default: smartsheet/api_token)"
    )

    _ = parser.add_argument(
        "--pmo-workspace-id", help="Existing PMO Standards workspace ID (env: PMO_STANDARDS_WORKSPACE_ID)"
    )

    _ = parser.add_argument(
        "--max-retries", type=_positive_int, help="Attempts per remote call (env: MAX_RETRIES, default: 5)"
    )
    _ = parser.add_argument(
        "--retry-delay", type=_positive_float, help="Seconds before the first retry (env: RETRY_DELAY, default: 1)"
    )
    _ = parser.add_argument(
        "--retry-ceiling",
        type=_positive_float,
        help="Longest wait between retries in seconds (env: RETRY_CEILING, default: 60)",
    )
    _ = parser.add_argument("--deadline", type=_positive_float, help="Give up after this many seconds in total")
    _ = parser.add_argument(
        "--batch-size", type=_positive_int, help=f"Rows per write call (env: BATCH_SIZE, default: {DEFAULT_BATCH_SIZE})"
    )

    _ = parser.add_argument(
        "--dry-run", action="store_true", help="Extract projects and plan the task outline without writing anything"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def build_policy(args: argparse.Namespace) -> RetryPolicy:
    """Retry policy from arguments, falling back to environment variables and defaults."""
    defaults = RetryPolicy()
    max_attempts: int = (
        args.max_retries if args.max_retries is not None else env_int("MAX_RETRIES", defaults.max_attempts, minimum=1)
    )
    initial_delay: float = (
        args.retry_delay if args.retry_delay is not None else env_float("RETRY_DELAY", defaults.initial_delay)
    )
    max_delay: float = (
        args.retry_ceiling if args.retry_ceiling is not None else env_float("RETRY_CEILING", defaults.max_delay)
    )
    return RetryPolicy(max_attempts=max_attempts, initial_delay=initial_delay, max_delay=max(max_delay, initial_delay))


def _print_result(result: MigrationResult) -> None:
    stats = result.stats
    status = "OK" if result.success else "FAILED"
    workspace = f" -> workspace '{result.workspace.name}' (ID: {result.workspace.id})" if result.workspace else ""
    print(f"[{status}] {result.project_id}{workspace}")
    print(
        f"    resources created: {stats.resources_created}, reused: {stats.resources_reused}, "
        f"rows written: {stats.rows_written}, skipped: {stats.rows_skipped}, retries: {stats.retries}, "
        f"structural warnings: {stats.structural_warnings}"
    )
    for error in stats.errors:
        print(f"    error: {error}")


def _dry_run(args: argparse.Namespace) -> bool:
    source = pou.get_client(pou.get_site_url(args.project_online_url), pou.get_token(args.project_online_pass_token))
    for project_id in args.project_ids:
        data = source.extract_project_data(project_id)
        plan = build_plan(task_nodes(data.tasks))
        print(
            f"[PLAN] {project_id} '{data.project.name}': {len(plan)} tasks in {len(plan.levels)} levels, "
            f"{len(data.resources)} resources, {len(data.assignments)} assignments, "
            f"{len(plan.warnings)} structural warnings"
        )
    return True


def run(args: argparse.Namespace) -> bool:
    """Migrate every project given on the command line. Returns True if all succeeded."""
    if args.dry_run:
        return _dry_run(args)

    policy = build_policy(args)
    batch_size: int = (
        args.batch_size if args.batch_size is not None else env_int("BATCH_SIZE", DEFAULT_BATCH_SIZE, minimum=1)
    )
    cancellation = Cancellation.after(args.deadline) if args.deadline is not None else Cancellation()

    source = pou.get_client(pou.get_site_url(args.project_online_url), pou.get_token(args.project_online_pass_token))
    target = ssu.get_client(ssu.get_token(args.smartsheet_pass_token))

    orchestrator = MigrationOrchestrator(
        target,
        source,
        policy=policy,
        cancellation=cancellation,
        batch_size=batch_size,
        pmo_workspace_id=ssu.get_pmo_workspace_id(args.pmo_workspace_id),
    )

    success = True
    for project_id in args.project_ids:
        result = orchestrator.migrate(project_id)
        _print_result(result)
        success = success and result.success
    return success


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    try:
        success = run(args)
    except OperationCancelledError as e:
        logger.error(f"Migration cancelled: {e}")
        sys.exit(1)
    except Exception:
        logger.exception("Migration failed")
        sys.exit(1)

    sys.exit(0 if success else 1)
