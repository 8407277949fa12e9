"""Tests for averaging helpers and report rendering."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dorametrics.models import DeploymentMetrics, DoraMetrics, PullRequestMetrics, SecurityMetrics
from dorametrics.stats import average, format_duration, generate_report, percentage


def test_average_empty_returns_zero():
    """Verify averaging an empty sample returns 0 instead of raising."""
    assert average([]) == 0.0


def test_average_ignores_none_and_nan():
    """Verify invalid samples are skipped."""
    assert average([1.0, None, float("nan"), 3.0]) == pytest.approx(2.0)


def test_percentage_handles_zero_total():
    """Verify percentages of an empty total are 0."""
    assert percentage(3, 0) == 0.0
    assert percentage(3, 4) == pytest.approx(75.0)


def test_format_duration_handles_none_zero_typical_and_large_values():
    """Verify hour-based duration formatter handles missing, small, and large values."""
    assert format_duration(None) == "n/a"
    assert format_duration(0) == "00:00:00"
    assert format_duration(1.5) == "01:30:00"
    assert format_duration(27 + 5 / 60 + 9 / 3600) == "27:05:09"


def test_generate_report_output_format_contains_expected_sections_and_values():
    """Verify report output includes header, window, sections and formatted values."""
    report = generate_report(
        repository="acme/api",
        pull_requests=PullRequestMetrics(
            lead_time=4.0, review_time=2.5, merge_rate=75.0, average_size=120.0, reviewer_count=1.5
        ),
        deployments=DeploymentMetrics(frequency=1.0, success_rate=80.0, duration=12.0, rollback_rate=20.0),
        dora=DoraMetrics(
            deployment_frequency=1.0,
            lead_time_for_changes=4.0,
            change_failure_rate=20.0,
            mean_time_to_recovery=0.5,
        ),
        environment="production",
        since=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )

    assert "Repository: acme/api" in report
    assert "Environment: production" in report
    assert "Window: 2026-01-01T00:00:00Z .. now" in report
    assert "1) DORA Metrics" in report
    assert "Deployment frequency: 1.00/day" in report
    assert "Lead time for changes: 04:00:00" in report
    assert "Change failure rate: 20.0%" in report
    assert "Mean time to recovery: 00:30:00" in report
    assert "Merge rate: 75.0%" in report
    assert "Average duration: 12.0 min" in report
    assert "4) Security" not in report


def test_generate_report_includes_security_section_when_given():
    """Verify the security section lists severity counts, secrets and score."""
    report = generate_report(
        repository="acme/api",
        pull_requests=PullRequestMetrics(),
        deployments=DeploymentMetrics(),
        dora=DoraMetrics(),
        security=SecurityMetrics(critical=1, low=2, secrets_detected=3, code_quality_score=85.0),
    )

    assert "Window: beginning .. now" in report
    assert "Open alerts: 1 critical, 0 high, 0 medium, 2 low" in report
    assert "Secrets detected: 3" in report
    assert "Code quality score: 85/100" in report
