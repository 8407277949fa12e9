"""Tests for command-line argument parsing."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dorametrics.cli import parse_args


def test_parse_args_with_valid_arguments():
    """Verify CLI parsing succeeds when repository, environment and days are provided."""
    args = parse_args(["--repo", "acme/api", "--environment", "production", "--days", "14"])

    assert args.repo == "acme/api"
    assert args.environment == "production"
    assert args.days == 14
    assert args.since is None
    assert args.format == "text"
    assert args.log_level == logging.WARNING


def test_parse_args_defaults_to_thirty_days():
    """Verify a missing window defaults to the last 30 days."""
    args = parse_args(["--repo", "acme/api"])

    assert args.days == 30
    assert args.pr is None
    assert args.details is False


def test_parse_args_with_explicit_window_leaves_days_unset():
    """Verify --since/--until are parsed as UTC datetimes and disable --days."""
    args = parse_args(["--repo", "acme/api", "--since", "2026-01-01", "--until", "2026-01-11T00:00:00Z"])

    assert args.days is None
    assert args.since == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert args.until == datetime(2026, 1, 11, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["--repo", "acme"],
        ["--repo", "acme/api", "--days", "-1"],
        ["--repo", "acme/api", "--days", "7", "--since", "2026-01-01"],
        ["--repo", "acme/api", "--until", "2026-01-01"],
        ["--repo", "acme/api", "--since", "yesterday"],
    ],
)
def test_parse_args_invalid_combinations_fail_validation(argv):
    """Verify malformed repositories, days and window combinations exit with an error."""
    with pytest.raises(SystemExit):
        parse_args(argv)


def test_parse_args_list_repos_does_not_require_repo():
    """Verify repository listing runs without --repo and accepts an organization."""
    args = parse_args(["--list-repos", "--org", "acme"])

    assert args.repo is None
    assert args.list_repos is True
    assert args.org == "acme"
    assert args.security is False
