"""Composition root: wires configuration, client and services into a report."""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .cli import parse_args
from .client import GitHubClient
from .config import load_config, update_config
from .deployments import DeploymentService
from .errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    DataValidationError,
    NotFoundError,
)
from .kpi import change_failure_records, compute_deployment_metrics, compute_dora_metrics
from .pull_requests import PullRequestService
from .models import Contributor, Repository
from .repositories import RepositoryService
from .security import SecurityService
from .stats import format_duration, generate_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_NOT_FOUND = 5


def resolve_window(
    days: Optional[int],
    since: Optional[datetime],
    until: Optional[datetime],
    now: Optional[datetime] = None,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Turn CLI window options into ``(since, until)`` bounds.

    Raises:
        ConfigurationError: If the explicit window is empty or inverted.
    """
    if days is not None:
        end = now or datetime.now(timezone.utc)
        return end - timedelta(days=days), end

    if since is not None and until is not None and since >= until:
        raise ConfigurationError("Invalid window: --since must be earlier than --until.")
    return since, until


def _to_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, default=str)


def _print_repositories(repositories: List[Repository], output_format: str) -> None:
    if output_format == "json":
        print(_to_json({"repositories": [dataclasses.asdict(repo) for repo in repositories]}))
        return
    for repo in repositories:
        visibility = "private" if repo.is_private else "public"
        print(f"{repo.full_name} ({visibility}, {repo.language or 'unknown language'})")


def _print_contributors(contributors: List[Contributor], output_format: str) -> None:
    if output_format == "json":
        print(_to_json({"contributors": [dataclasses.asdict(item) for item in contributors]}))
        return
    for contributor in contributors:
        print(f"{contributor.login}: {contributor.contributions} commits")


def orchestrate_dora_report(argv: Optional[Sequence[str]] = None) -> int:
    """Run the metrics generator and return a process exit code."""
    try:
        args = parse_args(argv)
        logging.basicConfig(
            level=args.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        config = load_config()
        if args.org:
            config = update_config(config, organization=args.org)
        client = GitHubClient(config=config)
        try:
            if not client.is_configured():
                print(
                    "ERROR: GitHub credentials are not configured. Set GITHUB_APP_ID and "
                    "GITHUB_PRIVATE_KEY, or GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET.",
                    file=sys.stderr,
                )
                return EXIT_CONFIGURATION

            if args.health:
                healthy = client.health_check()
                print(f"GitHub API: {'healthy' if healthy else 'unavailable'}")
                return EXIT_OK if healthy else EXIT_API

            repository_service = RepositoryService(client)
            if args.list_repos:
                _print_repositories(repository_service.fetch_repositories(), args.format)
                return EXIT_OK

            owner, repo = args.repo.split("/", 1)
            repository_service.get_repository(owner, repo)

            if args.contributors:
                contributors = repository_service.list_contributors(owner, repo, per_page=100)
                _print_contributors(contributors, args.format)
                return EXIT_OK

            pr_service = PullRequestService(client)

            if args.pr is not None:
                lead_time = pr_service.calculate_lead_time(owner, repo, args.pr)
                if args.format == "json":
                    print(_to_json({"lead_time": dataclasses.asdict(lead_time) if lead_time else None}))
                elif lead_time is None:
                    print(f"PR #{args.pr}: lead time undefined (not merged or no commits)")
                else:
                    print(f"PR #{args.pr}: lead time {format_duration(lead_time.lead_time_hours)}")
                return EXIT_OK

            since, until = resolve_window(args.days, args.since, args.until)
            print(f"Fetching delivery data for repository '{args.repo}'...", file=sys.stderr)

            pr_metrics = pr_service.calculate_metrics(
                owner, repo, since, until, include_details=args.details
            )
            deployments = DeploymentService(client).fetch_deployments_with_status(
                owner, repo, args.environment, since, until
            )
            deployment_metrics = compute_deployment_metrics(deployments, since, until)
            dora = compute_dora_metrics(
                pr_metrics, deployment_metrics, change_failure_records(deployments)
            )
            security = (
                SecurityService(client).calculate_security_metrics(owner, repo)
                if args.security
                else None
            )

            if args.format == "json":
                print(
                    _to_json(
                        {
                            "repository": args.repo,
                            "environment": args.environment,
                            "since": since,
                            "until": until,
                            "dora": dataclasses.asdict(dora),
                            "pull_requests": dataclasses.asdict(pr_metrics),
                            "deployments": dataclasses.asdict(deployment_metrics),
                            "security": (
                                dataclasses.asdict(security) if security is not None else None
                            ),
                        }
                    )
                )
            else:
                print(
                    generate_report(
                        repository=args.repo,
                        pull_requests=pr_metrics,
                        deployments=deployment_metrics,
                        dora=dora,
                        environment=args.environment,
                        since=since,
                        until=until,
                        security=security,
                    )
                )
            return EXIT_OK
        finally:
            client.close()
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except NotFoundError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except (ApiError, DataValidationError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_API
    except Exception:
        logger.exception("Unexpected error while generating delivery metrics")
        return EXIT_UNEXPECTED


def main() -> None:
    """Console-script entry point."""
    sys.exit(orchestrate_dora_report())


if __name__ == "__main__":
    main()
