"""Domain models for GitHub delivery-metrics processing.

Record dataclasses model only the subset of API payload fields that the metric
calculations consume. Result dataclasses are frozen aggregates recomputed on
every request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional

PR_STATE_OPEN = "open"
PR_STATE_CLOSED = "closed"
PR_STATE_MERGED = "merged"

DEPLOYMENT_PENDING = "pending"
SUCCESS_STATUSES = frozenset({"success", "in_progress"})
FAILURE_STATUSES = frozenset({"failure", "error"})

SEVERITY_LEVELS = ("critical", "high", "medium", "low")
DEFAULT_SEVERITY = "medium"


@dataclass(slots=True)
class Repository:
    """Represents a repository returned by the GitHub repos API."""

    id: int
    name: str
    full_name: str
    default_branch: str
    is_private: bool
    created_at: datetime
    pushed_at: Optional[datetime]
    description: Optional[str] = None
    language: Optional[str] = None


@dataclass(slots=True, frozen=True)
class Contributor:
    """A repository contributor and their commit count."""

    login: str
    contributions: int


@dataclass(slots=True)
class PullRequestRecord:
    """Represents the pull request data required for throughput metrics.

    ``additions``/``deletions`` are 0 for items from the list endpoint; only
    the per-PR detail fetch reports the real diff size.
    """

    id: int
    number: int
    title: str
    state: str
    created_at: datetime
    updated_at: datetime
    merged_at: Optional[datetime]
    closed_at: Optional[datetime]
    author: str
    repository: str
    additions: int = 0
    deletions: int = 0
    reviewers: FrozenSet[str] = field(default_factory=frozenset)
    review_comments: int = 0

    @property
    def is_merged(self) -> bool:
        if self.state == PR_STATE_MERGED:
            return True
        return self.state == PR_STATE_CLOSED and self.merged_at is not None

    @property
    def size(self) -> int:
        return self.additions + self.deletions


@dataclass(slots=True)
class CommitRecord:
    """Represents a commit on a pull request with its author/committer times."""

    sha: str
    authored_at: Optional[datetime]
    committed_at: Optional[datetime]


@dataclass(slots=True)
class DeploymentRecord:
    """Represents a deployment; ``status`` stays ``pending`` until enriched."""

    id: int
    sha: str
    ref: str
    environment: str
    created_at: datetime
    updated_at: datetime
    repository: str
    status: str = DEPLOYMENT_PENDING

    @property
    def is_failure(self) -> bool:
        return self.status in FAILURE_STATUSES


@dataclass(slots=True)
class DeploymentStatus:
    """Latest observed state of a deployment."""

    state: str
    updated_at: Optional[datetime]


@dataclass(slots=True, frozen=True)
class LeadTimeRecord:
    """Lead time for changes of one merged pull request."""

    pr_number: int
    first_commit_time: datetime
    merge_time: datetime
    lead_time_hours: float
    repository: str
    author: str


@dataclass(slots=True, frozen=True)
class ChangeFailureRecord:
    """Per-deployment failure projection used for CFR and MTTR."""

    deployment_id: int
    deployment_time: datetime
    is_failure: bool
    recovery_time: Optional[datetime]
    repository: str
    environment: str


@dataclass(slots=True, frozen=True)
class PullRequestMetrics:
    """Aggregated pull request metrics over a window (times in hours)."""

    lead_time: float = 0.0
    review_time: float = 0.0
    merge_rate: float = 0.0
    average_size: float = 0.0
    reviewer_count: float = 0.0


@dataclass(slots=True, frozen=True)
class DeploymentMetrics:
    """Aggregated deployment metrics (frequency per day, duration in minutes)."""

    frequency: float = 0.0
    success_rate: float = 0.0
    duration: float = 0.0
    rollback_rate: float = 0.0


@dataclass(slots=True, frozen=True)
class DoraMetrics:
    """The four DORA indicators for one repository and window."""

    deployment_frequency: float = 0.0
    lead_time_for_changes: float = 0.0
    change_failure_rate: float = 0.0
    mean_time_to_recovery: float = 0.0


@dataclass(slots=True, frozen=True)
class SecurityMetrics:
    """Open security alert counts for one repository.

    Severity counts cover Dependabot and code scanning alerts; secret scanning
    alerts carry no severity and are counted separately. ``code_quality_score``
    starts at 100 and drops 5 points per severity-counted alert, floored at 0.
    """

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    secrets_detected: int = 0
    code_quality_score: float = 100.0

    @property
    def total_alerts(self) -> int:
        return self.critical + self.high + self.medium + self.low
