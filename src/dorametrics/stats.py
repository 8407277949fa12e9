"""Averaging helpers and report formatting for delivery metrics.

This module provides utilities for:
- Averages and percentages that fall back to ``0`` on empty input.
- Formatting hour-based durations as ``HH:MM:SS``.
- Building a human-readable report of pull request, deployment and DORA metrics.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Optional

from .models import DeploymentMetrics, DoraMetrics, PullRequestMetrics, SecurityMetrics
from .timeutils import SECONDS_PER_HOUR, format_datetime


def average(values: Iterable[float]) -> float:
    """Return the arithmetic mean of ``values``, or ``0.0`` when empty.

    ``None`` and NaN entries are ignored.
    """
    clean_values = [
        value for value in values if value is not None and not math.isnan(value)
    ]
    if not clean_values:
        return 0.0
    return sum(clean_values) / len(clean_values)


def percentage(part: int, total: int) -> float:
    """Return ``part / total * 100``, or ``0.0`` when ``total`` is zero."""
    if total <= 0:
        return 0.0
    return part / total * 100.0


def format_duration(hours: Optional[float]) -> str:
    """Format hours as ``HH:MM:SS``.

    Args:
        hours: Duration in hours.

    Returns:
        ``"n/a"`` when ``hours`` is ``None``; otherwise a rounded
        ``HH:MM:SS`` string.
    """
    if hours is None:
        return "n/a"

    total_seconds = max(0, int(round(hours * SECONDS_PER_HOUR)))
    whole_hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    remaining_seconds = total_seconds % 60
    return f"{whole_hours:02d}:{minutes:02d}:{remaining_seconds:02d}"


def _format_window(since: Optional[datetime], until: Optional[datetime]) -> str:
    start = format_datetime(since) if since is not None else "beginning"
    end = format_datetime(until) if until is not None else "now"
    return f"{start} .. {end}"


def generate_report(
    repository: str,
    pull_requests: PullRequestMetrics,
    deployments: DeploymentMetrics,
    dora: DoraMetrics,
    environment: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    security: Optional[SecurityMetrics] = None,
) -> str:
    """Generate a human-readable delivery metrics report for a repository.

    Args:
        repository: ``owner/repo`` display name.
        pull_requests: Pull request throughput metrics.
        deployments: Deployment metrics.
        dora: The four DORA indicators.
        environment: Deployment environment filter, if any.
        since: Window start, if any.
        until: Window end, if any.
        security: Open security alert counts; the section is omitted when ``None``.

    Returns:
        Formatted multi-line text report.
    """
    lines = [
        f"Repository: {repository}",
        f"Environment: {environment or 'all'}",
        f"Window: {_format_window(since, until)}",
        "Delivery Metrics Report",
        "",
        "1) DORA Metrics",
        f"   Deployment frequency: {dora.deployment_frequency:.2f}/day",
        f"   Lead time for changes: {format_duration(dora.lead_time_for_changes)}",
        f"   Change failure rate: {dora.change_failure_rate:.1f}%",
        f"   Mean time to recovery: {format_duration(dora.mean_time_to_recovery)}",
        "",
        "2) Pull Requests",
        f"   Average lead time: {format_duration(pull_requests.lead_time)}",
        f"   Average review time: {format_duration(pull_requests.review_time)}",
        f"   Merge rate: {pull_requests.merge_rate:.1f}%",
        f"   Average size: {pull_requests.average_size:.1f} lines",
        f"   Average reviewers: {pull_requests.reviewer_count:.2f}",
        "",
        "3) Deployments",
        f"   Frequency: {deployments.frequency:.2f}/day",
        f"   Success rate: {deployments.success_rate:.1f}%",
        f"   Average duration: {deployments.duration:.1f} min",
        f"   Rollback rate: {deployments.rollback_rate:.1f}%",
    ]

    if security is not None:
        lines.extend(
            [
                "",
                "4) Security",
                f"   Open alerts: {security.critical} critical, {security.high} high, "
                f"{security.medium} medium, {security.low} low",
                f"   Secrets detected: {security.secrets_detected}",
                f"   Code quality score: {security.code_quality_score:.0f}/100",
            ]
        )

    return "\n".join(lines)
