"""Command-line argument parsing for the GitHub DORA metrics generator."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from typing import Optional, Sequence

from .timeutils import parse_datetime


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def _repository(value: str) -> str:
    """Validate an ``owner/repo`` argument."""
    owner, _, repo = value.strip().partition("/")
    if not owner or not repo or "/" in repo:
        raise argparse.ArgumentTypeError("must be in the form OWNER/REPO")
    return f"{owner}/{repo}"


def _timestamp(value: str) -> datetime:
    """Parse an ISO8601 date or datetime; naive values are taken as UTC."""
    try:
        parsed = parse_datetime(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an ISO8601 date or datetime") from exc
    if parsed is None:
        raise argparse.ArgumentTypeError("must not be empty")
    return parsed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for metrics generation.

    Returns:
        Parsed CLI arguments. ``days`` is ``None`` when an explicit
        ``--since``/``--until`` window is given.
    """
    parser = argparse.ArgumentParser(
        prog="github-dora-metrics",
        description=(
            "Generate DORA delivery metrics for a GitHub repository "
            "(deployment frequency, lead time, change failure rate, MTTR)."
        ),
    )

    parser.add_argument(
        "--repo",
        type=_repository,
        default=None,
        help="Repository to analyze, as OWNER/REPO. Required unless --list-repos or --health.",
    )
    parser.add_argument(
        "--environment",
        default=None,
        help="Only count deployments to this environment.",
    )

    window = parser.add_mutually_exclusive_group()
    window.add_argument(
        "--days",
        type=_positive_int,
        default=None,
        help="Number of days of history to analyze (default: 30).",
    )
    window.add_argument(
        "--since",
        type=_timestamp,
        default=None,
        help="Inclusive window start (ISO8601).",
    )
    parser.add_argument(
        "--until",
        type=_timestamp,
        default=None,
        help="Exclusive window end (ISO8601); only used with --since.",
    )

    parser.add_argument(
        "--pr",
        type=_positive_int,
        default=None,
        help="Report lead time for a single pull request number instead.",
    )
    parser.add_argument(
        "--details",
        action="store_true",
        help="Fetch every pull request individually for real size and reviewer counts.",
    )
    parser.add_argument(
        "--security",
        action="store_true",
        help="Include open Dependabot, code scanning and secret scanning alerts.",
    )
    parser.add_argument(
        "--contributors",
        action="store_true",
        help="List the repository's top contributors instead of metrics.",
    )
    parser.add_argument(
        "--list-repos",
        action="store_true",
        help="List repositories of --org (or GITHUB_ORGANIZATION, or the authenticated user).",
    )
    parser.add_argument(
        "--org",
        default=None,
        help="Organization whose repositories --list-repos lists; overrides GITHUB_ORGANIZATION.",
    )
    parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text).",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Only check GitHub API connectivity and exit.",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default="WARNING",
        help="Logging verbosity (default: WARNING).",
    )

    args = parser.parse_args(argv)

    if args.repo is None and not (args.list_repos or args.health):
        parser.error("--repo is required")
    if args.until is not None and args.since is None:
        parser.error("--until requires --since")
    if args.since is None and args.days is None:
        args.days = 30

    args.log_level = getattr(logging, args.log_level)
    return args
