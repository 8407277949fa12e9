"""Deployment retrieval, status enrichment and DORA deployment metrics."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from operator import attrgetter
from typing import Any, Dict, List, Optional

from .client import GitHubClient
from .errors import ApiError, DataValidationError
from .kpi import (
    change_failure_rate,
    change_failure_records,
    compute_deployment_metrics,
    mean_time_to_recovery,
)
from .models import (
    DEPLOYMENT_PENDING,
    ChangeFailureRecord,
    DeploymentMetrics,
    DeploymentRecord,
    DeploymentStatus,
)
from .pagination import fetch_window
from .timeutils import parse_datetime

logger = logging.getLogger(__name__)


def _parse_deployment(item: Dict[str, Any], repository: str) -> DeploymentRecord:
    """Translate one GitHub deployment payload into a pending ``DeploymentRecord``.

    Raises:
        DataValidationError: If id or creation time is missing.
    """
    deployment_id = item.get("id")
    created_at = parse_datetime(item.get("created_at"))

    if deployment_id is None or created_at is None:
        raise DataValidationError(
            "GitHub deployment payload is missing required fields: "
            f"repository={repository}, payload={item}"
        )

    return DeploymentRecord(
        id=int(deployment_id),
        sha=str(item.get("sha") or ""),
        ref=str(item.get("ref") or ""),
        environment=str(item.get("environment") or ""),
        created_at=created_at,
        updated_at=parse_datetime(item.get("updated_at")) or created_at,
        repository=repository,
    )


class DeploymentService:
    """Fetches deployments with their latest status and derives deployment metrics."""

    def __init__(self, client: GitHubClient, max_workers: Optional[int] = None) -> None:
        """Initialize the service.

        Args:
            client: Configured GitHub client.
            max_workers: Upper bound on concurrent status lookups per page;
                defaults to the client's ``status_workers`` setting.
        """
        self._client = client
        self._max_workers = max_workers or client.config.status_workers

    def list_deployments(
        self,
        owner: str,
        repo: str,
        environment: Optional[str] = None,
        page: int = 1,
        per_page: int = 30,
    ) -> List[DeploymentRecord]:
        """List one page of deployments, newest first."""
        path = f"repos/{owner}/{repo}/deployments"
        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        if environment:
            params["environment"] = environment

        payload = self._client.execute(lambda: self._client.rest_get(path, params=params))
        if not isinstance(payload, list):
            raise ApiError(f"GitHub API returned unexpected payload shape: GET {path}")

        repository = f"{owner}/{repo}"
        return [_parse_deployment(item, repository) for item in payload]

    def get_deployment_status(self, owner: str, repo: str, deployment_id: int) -> DeploymentStatus:
        """Return the most recent status of a deployment, ``pending`` when it has none."""
        path = f"repos/{owner}/{repo}/deployments/{deployment_id}/statuses"
        payload = self._client.execute(
            lambda: self._client.rest_get(path, params={"per_page": 1})
        )
        if not isinstance(payload, list) or not payload:
            return DeploymentStatus(state=DEPLOYMENT_PENDING, updated_at=None)

        latest = payload[0]
        return DeploymentStatus(
            state=str(latest.get("state") or DEPLOYMENT_PENDING),
            updated_at=parse_datetime(latest.get("updated_at") or latest.get("created_at")),
        )

    def _with_statuses(
        self, owner: str, repo: str, deployments: List[DeploymentRecord]
    ) -> List[DeploymentRecord]:
        """Attach the latest status to each deployment, fanning out the lookups.

        Results keep the input order. The deployment's ``updated_at`` becomes the
        status timestamp when one is available.
        """
        workers = max(1, min(self._max_workers, len(deployments)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            statuses = list(
                executor.map(
                    lambda deployment: self.get_deployment_status(owner, repo, deployment.id),
                    deployments,
                )
            )

        for deployment, status in zip(deployments, statuses):
            deployment.status = status.state
            if status.updated_at is not None:
                deployment.updated_at = status.updated_at
        return deployments

    def fetch_deployments_with_status(
        self,
        owner: str,
        repo: str,
        environment: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[DeploymentRecord]:
        """Fetch every deployment created in ``[since, until)`` with its latest status."""
        deployments = fetch_window(
            lambda page, per_page: self.list_deployments(owner, repo, environment, page, per_page),
            created_at=attrgetter("created_at"),
            since=since,
            until=until,
            enrich=lambda page_items: self._with_statuses(owner, repo, page_items),
        )
        logger.info(
            "Collected deployment samples",
            extra={
                "repository": f"{owner}/{repo}",
                "environment": environment,
                "deployments_total": len(deployments),
            },
        )
        return deployments

    def calculate_metrics(
        self,
        owner: str,
        repo: str,
        environment: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> DeploymentMetrics:
        """Compute frequency, success rate, duration and rollback rate for a window."""
        deployments = self.fetch_deployments_with_status(owner, repo, environment, since, until)
        return compute_deployment_metrics(deployments, since, until)

    def get_change_failure_data(
        self,
        owner: str,
        repo: str,
        environment: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[ChangeFailureRecord]:
        """Return the per-deployment failure projection for a window."""
        deployments = self.fetch_deployments_with_status(owner, repo, environment, since, until)
        return change_failure_records(deployments)

    def calculate_change_failure_rate(
        self,
        owner: str,
        repo: str,
        environment: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> float:
        """Return the change failure rate (0-100) for a window."""
        return change_failure_rate(
            self.get_change_failure_data(owner, repo, environment, since, until)
        )

    def calculate_mean_time_to_recovery(
        self,
        owner: str,
        repo: str,
        environment: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> float:
        """Return the mean time to recovery in hours for a window."""
        return mean_time_to_recovery(
            self.get_change_failure_data(owner, repo, environment, since, until)
        )
