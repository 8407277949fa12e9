"""Metric arithmetic for pull request and deployment records.

Every function here is pure: it works on already fetched records and returns
``0`` (or ``None`` for per-PR lead time) when a metric is undefined.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .models import (
    SEVERITY_LEVELS,
    SUCCESS_STATUSES,
    ChangeFailureRecord,
    CommitRecord,
    DeploymentMetrics,
    DeploymentRecord,
    DoraMetrics,
    LeadTimeRecord,
    PullRequestMetrics,
    PullRequestRecord,
    SecurityMetrics,
)
from .stats import average, percentage
from .timeutils import days_between, hours_between, minutes_between

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30.0
POINTS_PER_ALERT = 5.0


def compute_lead_time(
    pr: PullRequestRecord,
    commits: Sequence[CommitRecord],
) -> Optional[LeadTimeRecord]:
    """Compute lead time for changes from first commit to merge.

    Business logic:
    - Only merged pull requests are eligible.
    - Pull requests without commits yield ``None`` rather than zero.
    - The first commit's author date is used, falling back to its committer
      date and finally to the pull request creation time.
    """
    if pr.merged_at is None:
        return None

    if not commits:
        logger.debug("Skipping lead time for PR without commits", extra={"pr_number": pr.number})
        return None

    first_commit = commits[0]
    first_commit_time = first_commit.authored_at or first_commit.committed_at or pr.created_at

    return LeadTimeRecord(
        pr_number=pr.number,
        first_commit_time=first_commit_time,
        merge_time=pr.merged_at,
        lead_time_hours=hours_between(first_commit_time, pr.merged_at),
        repository=pr.repository,
        author=pr.author,
    )


def compute_pull_request_metrics(
    prs: Sequence[PullRequestRecord],
    lead_times: Sequence[LeadTimeRecord],
) -> PullRequestMetrics:
    """Aggregate pull request metrics for one window.

    - ``merge_rate``: share of PRs that are closed with a merge time.
    - ``lead_time``: mean of the defined lead times, in hours.
    - ``review_time``: mean of ``merged_at - created_at`` over merged PRs, in hours.
    - ``average_size``: mean of ``additions + deletions`` over all PRs.
    - ``reviewer_count``: mean number of distinct reviewers per PR.
    """
    if not prs:
        return PullRequestMetrics()

    merged = [pr for pr in prs if pr.is_merged]

    return PullRequestMetrics(
        lead_time=average(record.lead_time_hours for record in lead_times),
        review_time=average(hours_between(pr.created_at, pr.merged_at) for pr in merged),
        merge_rate=percentage(len(merged), len(prs)),
        average_size=average(float(pr.size) for pr in prs),
        reviewer_count=average(float(len(pr.reviewers)) for pr in prs),
    )


def window_days(since: Optional[datetime], until: Optional[datetime]) -> float:
    """Return the window length in days, or 30 when either bound is missing."""
    if since is None or until is None:
        return DEFAULT_WINDOW_DAYS
    return days_between(since, until)


def compute_deployment_metrics(
    deployments: Sequence[DeploymentRecord],
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> DeploymentMetrics:
    """Aggregate deployment frequency, success rate, duration and rollback rate.

    ``duration`` approximates deployment time with ``updated_at - created_at``
    in minutes, where ``updated_at`` is the last observed status timestamp.
    """
    if not deployments:
        return DeploymentMetrics()

    total = len(deployments)
    days = window_days(since, until)
    successful = sum(1 for deployment in deployments if deployment.status in SUCCESS_STATUSES)
    failed = sum(1 for deployment in deployments if deployment.is_failure)

    return DeploymentMetrics(
        frequency=total / days if days > 0 else 0.0,
        success_rate=percentage(successful, total),
        duration=average(
            minutes_between(deployment.created_at, deployment.updated_at)
            for deployment in deployments
        ),
        rollback_rate=percentage(failed, total),
    )


def change_failure_records(deployments: Sequence[DeploymentRecord]) -> List[ChangeFailureRecord]:
    """Project deployments onto failure records; recovery time is set only for failures."""
    return [
        ChangeFailureRecord(
            deployment_id=deployment.id,
            deployment_time=deployment.created_at,
            is_failure=deployment.is_failure,
            recovery_time=deployment.updated_at if deployment.is_failure else None,
            repository=deployment.repository,
            environment=deployment.environment,
        )
        for deployment in deployments
    ]


def change_failure_rate(records: Sequence[ChangeFailureRecord]) -> float:
    """Return the percentage of failing deployments (0-100)."""
    failures = sum(1 for record in records if record.is_failure)
    return percentage(failures, len(records))


def mean_time_to_recovery(records: Sequence[ChangeFailureRecord]) -> float:
    """Return the mean failure-to-recovery time in hours, or 0 without failures."""
    return average(
        hours_between(record.deployment_time, record.recovery_time)
        for record in records
        if record.is_failure and record.recovery_time is not None
    )


def compute_dora_metrics(
    pull_requests: PullRequestMetrics,
    deployments: DeploymentMetrics,
    change_failures: Sequence[ChangeFailureRecord],
) -> DoraMetrics:
    """Combine engine outputs into the four DORA indicators."""
    return DoraMetrics(
        deployment_frequency=deployments.frequency,
        lead_time_for_changes=pull_requests.lead_time,
        change_failure_rate=change_failure_rate(change_failures),
        mean_time_to_recovery=mean_time_to_recovery(change_failures),
    )


def compute_security_metrics(severities: Iterable[str], secrets_detected: int) -> SecurityMetrics:
    """Count alert severities and derive the code quality score.

    Severities outside ``critical/high/medium/low`` are not counted and do not
    lower the score.
    """
    counts = {level: 0 for level in SEVERITY_LEVELS}
    for severity in severities:
        if severity in counts:
            counts[severity] += 1

    total_alerts = sum(counts.values())
    return SecurityMetrics(
        critical=counts["critical"],
        high=counts["high"],
        medium=counts["medium"],
        low=counts["low"],
        secrets_detected=secrets_detected,
        code_quality_score=max(0.0, 100.0 - total_alerts * POINTS_PER_ALERT),
    )
