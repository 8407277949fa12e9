"""Tests for pull request and deployment metric arithmetic."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dorametrics.kpi import (
    change_failure_rate,
    change_failure_records,
    compute_deployment_metrics,
    compute_dora_metrics,
    compute_lead_time,
    compute_pull_request_metrics,
    mean_time_to_recovery,
    window_days,
)
from dorametrics.models import (
    CommitRecord,
    DeploymentMetrics,
    DeploymentRecord,
    DoraMetrics,
    PullRequestMetrics,
    PullRequestRecord,
)

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _at(hours: float) -> datetime:
    return BASE + timedelta(hours=hours)


def _make_pr(
    number: int = 1,
    state: str = "closed",
    created: datetime | None = None,
    merged: datetime | None = None,
    additions: int = 0,
    deletions: int = 0,
    reviewers: frozenset = frozenset(),
) -> PullRequestRecord:
    created_at = created or _at(0)
    return PullRequestRecord(
        id=number * 10,
        number=number,
        title=f"PR {number}",
        state=state,
        created_at=created_at,
        updated_at=merged or created_at,
        merged_at=merged,
        closed_at=merged,
        author="author",
        repository="acme/api",
        additions=additions,
        deletions=deletions,
        reviewers=reviewers,
    )


def _make_deployment(
    deployment_id: int,
    status: str = "success",
    created: datetime | None = None,
    updated: datetime | None = None,
) -> DeploymentRecord:
    created_at = created or _at(0)
    return DeploymentRecord(
        id=deployment_id,
        sha="abc",
        ref="main",
        environment="production",
        created_at=created_at,
        updated_at=updated or created_at,
        repository="acme/api",
        status=status,
    )


def _commit(authored: datetime | None, committed: datetime | None = None) -> CommitRecord:
    return CommitRecord(sha="c1", authored_at=authored, committed_at=committed)


def test_compute_lead_time_uses_first_commit_author_date():
    """Verify lead time runs from the first commit's author date to merge."""
    pr = _make_pr(created=_at(1), merged=_at(10))

    record = compute_lead_time(pr, [_commit(_at(0)), _commit(_at(5))])

    assert record is not None
    assert record.lead_time_hours == pytest.approx(10.0)
    assert record.first_commit_time == _at(0)
    assert record.merge_time == _at(10)


def test_compute_lead_time_falls_back_to_committer_then_creation_time():
    """Verify missing commit timestamps fall back to committer date, then PR creation."""
    pr = _make_pr(created=_at(4), merged=_at(10))

    assert compute_lead_time(pr, [_commit(None, _at(2))]).lead_time_hours == pytest.approx(8.0)
    assert compute_lead_time(pr, [_commit(None, None)]).lead_time_hours == pytest.approx(6.0)


def test_compute_lead_time_undefined_for_unmerged_or_commitless_prs():
    """Verify lead time is None rather than zero when it cannot be defined."""
    assert compute_lead_time(_make_pr(state="open"), [_commit(_at(0))]) is None
    assert compute_lead_time(_make_pr(merged=_at(3)), []) is None


def test_pull_request_metrics_scenario_three_merged_one_open():
    """Verify lead times 2h/4h/6h with one open PR give 4h average and 75% merge rate."""
    prs = [
        _make_pr(1, merged=_at(2)),
        _make_pr(2, merged=_at(4)),
        _make_pr(3, merged=_at(6)),
        _make_pr(4, state="open"),
    ]
    lead_times = [compute_lead_time(pr, [_commit(_at(0))]) for pr in prs[:3]]

    metrics = compute_pull_request_metrics(prs, lead_times)

    assert metrics.lead_time == pytest.approx(4.0)
    assert metrics.merge_rate == pytest.approx(75.0)
    assert metrics.review_time == pytest.approx(4.0)


def test_pull_request_metrics_size_and_reviewers_average_over_all_prs():
    """Verify size and reviewer count are averaged across every fetched PR."""
    prs = [
        _make_pr(1, merged=_at(1), additions=10, deletions=5, reviewers=frozenset({"a", "b"})),
        _make_pr(2, state="open", additions=5, deletions=0),
    ]

    metrics = compute_pull_request_metrics(prs, [])

    assert metrics.average_size == pytest.approx(10.0)
    assert metrics.reviewer_count == pytest.approx(1.0)
    assert metrics.lead_time == 0.0


def test_merge_rate_is_monotonic_in_merged_count():
    """Verify merge rate never decreases as more PRs of a fixed sample are merged."""
    rates = []
    for merged_count in range(5):
        prs = [
            _make_pr(i, merged=_at(1)) if i < merged_count else _make_pr(i, state="closed")
            for i in range(4)
        ]
        rates.append(compute_pull_request_metrics(prs, []).merge_rate)

    assert rates == sorted(rates)
    assert rates[0] == 0.0
    assert rates[-1] == 100.0


def test_empty_inputs_yield_all_zero_results():
    """Verify empty windows never divide by zero."""
    assert compute_pull_request_metrics([], []) == PullRequestMetrics()
    assert compute_deployment_metrics([]) == DeploymentMetrics()
    assert change_failure_rate([]) == 0.0
    assert mean_time_to_recovery([]) == 0.0


def test_deployment_scenario_ten_deployments_over_ten_days_two_failures():
    """Verify 10 deployments in 10 days with 2 failures give 1/day and 20% CFR."""
    since = BASE
    until = BASE + timedelta(days=10)
    deployments = [
        _make_deployment(i, status="failure" if i == 0 else "error" if i == 1 else "success",
                         created=_at(i * 24), updated=_at(i * 24 + 1))
        for i in range(10)
    ]

    metrics = compute_deployment_metrics(deployments, since, until)
    records = change_failure_records(deployments)

    assert metrics.frequency == pytest.approx(1.0)
    assert metrics.success_rate == pytest.approx(80.0)
    assert metrics.rollback_rate == pytest.approx(20.0)
    assert metrics.duration == pytest.approx(60.0)
    assert change_failure_rate(records) == pytest.approx(20.0)
    assert change_failure_rate(records) + (100 - change_failure_rate(records)) == pytest.approx(100.0)


def test_in_progress_counts_as_success_and_default_window_is_thirty_days():
    """Verify in_progress is a success and a missing bound uses a 30-day window."""
    deployments = [_make_deployment(1, status="in_progress"), _make_deployment(2, status="pending")]

    metrics = compute_deployment_metrics(deployments, since=BASE, until=None)

    assert window_days(BASE, None) == 30.0
    assert metrics.frequency == pytest.approx(2 / 30)
    assert metrics.success_rate == pytest.approx(50.0)
    assert metrics.rollback_rate == 0.0


def test_change_failure_records_and_mean_time_to_recovery():
    """Verify recovery time is only set for failures and MTTR averages in hours."""
    deployments = [
        _make_deployment(1, status="failure", created=_at(0), updated=_at(2)),
        _make_deployment(2, status="error", created=_at(10), updated=_at(14)),
        _make_deployment(3, status="success", created=_at(20), updated=_at(21)),
    ]

    records = change_failure_records(deployments)

    assert [record.is_failure for record in records] == [True, True, False]
    assert records[2].recovery_time is None
    assert records[0].recovery_time == _at(2)
    assert mean_time_to_recovery(records) == pytest.approx(3.0)


def test_compute_dora_metrics_combines_engine_outputs():
    """Verify the DORA summary uses real CFR and MTTR, not rollback rate or duration."""
    deployments = [
        _make_deployment(1, status="failure", created=_at(0), updated=_at(5)),
        _make_deployment(2, status="success"),
    ]

    dora = compute_dora_metrics(
        PullRequestMetrics(lead_time=12.0),
        DeploymentMetrics(frequency=0.5, duration=99.0, rollback_rate=1.0),
        change_failure_records(deployments),
    )

    assert dora == DoraMetrics(
        deployment_frequency=0.5,
        lead_time_for_changes=12.0,
        change_failure_rate=50.0,
        mean_time_to_recovery=5.0,
    )
