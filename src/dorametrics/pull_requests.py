"""Pull request retrieval and throughput metrics."""

from __future__ import annotations

import logging
from datetime import datetime
from operator import attrgetter
from typing import Any, Dict, List, Optional

from .client import GitHubClient
from .errors import ApiError, DataValidationError
from .kpi import compute_lead_time, compute_pull_request_metrics
from .models import (
    PR_STATE_CLOSED,
    PR_STATE_MERGED,
    PR_STATE_OPEN,
    CommitRecord,
    LeadTimeRecord,
    PullRequestMetrics,
    PullRequestRecord,
)
from .pagination import PAGE_SIZE, fetch_window
from .timeutils import parse_datetime

logger = logging.getLogger(__name__)


def _parse_pull_request(item: Dict[str, Any], repository: str) -> PullRequestRecord:
    """Translate one GitHub pull request payload into a ``PullRequestRecord``.

    Raises:
        DataValidationError: If id, number or creation time is missing.
    """
    pr_id = item.get("id")
    number = item.get("number")
    created_at = parse_datetime(item.get("created_at"))

    if pr_id is None or number is None or created_at is None:
        raise DataValidationError(
            "GitHub pull request payload is missing required fields: "
            f"repository={repository}, payload={item}"
        )

    merged_at = parse_datetime(item.get("merged_at"))
    state = str(item.get("state") or PR_STATE_OPEN)
    if state == PR_STATE_CLOSED and merged_at is not None:
        state = PR_STATE_MERGED

    user = item.get("user") or {}
    return PullRequestRecord(
        id=int(pr_id),
        number=int(number),
        title=str(item.get("title") or ""),
        state=state,
        created_at=created_at,
        updated_at=parse_datetime(item.get("updated_at")) or created_at,
        merged_at=merged_at,
        closed_at=parse_datetime(item.get("closed_at")),
        author=str(user.get("login") or "unknown"),
        repository=repository,
        additions=int(item.get("additions") or 0),
        deletions=int(item.get("deletions") or 0),
    )


def _parse_commit(item: Dict[str, Any]) -> CommitRecord:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    committer = commit.get("committer") or {}
    return CommitRecord(
        sha=str(item.get("sha") or ""),
        authored_at=parse_datetime(author.get("date")),
        committed_at=parse_datetime(committer.get("date")),
    )


def _expect_list(payload: Any, path: str) -> List[Dict[str, Any]]:
    if not isinstance(payload, list):
        raise ApiError(f"GitHub API returned unexpected payload shape: GET {path}")
    return payload


class PullRequestService:
    """Fetches pull requests for a repository and derives throughput metrics."""

    def __init__(self, client: GitHubClient) -> None:
        self._client = client

    def list_pull_requests(
        self,
        owner: str,
        repo: str,
        state: str = "all",
        page: int = 1,
        per_page: int = 30,
    ) -> List[PullRequestRecord]:
        """List one page of pull requests, newest first by creation time."""
        path = f"repos/{owner}/{repo}/pulls"
        params = {
            "state": state,
            "sort": "created",
            "direction": "desc",
            "page": page,
            "per_page": per_page,
        }
        payload = self._client.execute(lambda: self._client.rest_get(path, params=params))
        repository = f"{owner}/{repo}"
        return [_parse_pull_request(item, repository) for item in _expect_list(payload, path)]

    def get_pull_request_details(self, owner: str, repo: str, number: int) -> PullRequestRecord:
        """Fetch one pull request with its diff size, reviewers and review comment count.

        Only the first 100 reviews and review comments are considered.

        Raises:
            NotFoundError: If the repository or pull request does not exist.
        """
        base_path = f"repos/{owner}/{repo}/pulls/{number}"
        params = {"per_page": PAGE_SIZE}

        pr_payload = self._client.execute(lambda: self._client.rest_get(base_path))
        reviews = self._client.execute(
            lambda: self._client.rest_get(f"{base_path}/reviews", params=params)
        )
        comments = self._client.execute(
            lambda: self._client.rest_get(f"{base_path}/comments", params=params)
        )

        record = _parse_pull_request(pr_payload, f"{owner}/{repo}")
        record.reviewers = frozenset(
            login
            for login in (
                (review.get("user") or {}).get("login")
                for review in _expect_list(reviews, f"{base_path}/reviews")
            )
            if login
        )
        record.review_comments = len(_expect_list(comments, f"{base_path}/comments"))
        return record

    def list_commits(self, owner: str, repo: str, number: int) -> List[CommitRecord]:
        """List the commits of a pull request in chronological order."""
        path = f"repos/{owner}/{repo}/pulls/{number}/commits"
        payload = self._client.execute(
            lambda: self._client.rest_get(path, params={"per_page": PAGE_SIZE})
        )
        return [_parse_commit(item) for item in _expect_list(payload, path)]

    def calculate_lead_time(self, owner: str, repo: str, number: int) -> Optional[LeadTimeRecord]:
        """Compute lead time for changes of one pull request.

        Returns ``None`` for unmerged pull requests and pull requests without commits.
        """
        pr = self.get_pull_request_details(owner, repo, number)
        if pr.merged_at is None:
            return None
        return compute_lead_time(pr, self.list_commits(owner, repo, number))

    def fetch_pull_requests(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[PullRequestRecord]:
        """Fetch every pull request created in ``[since, until)``."""
        return fetch_window(
            lambda page, per_page: self.list_pull_requests(owner, repo, "all", page, per_page),
            created_at=attrgetter("created_at"),
            since=since,
            until=until,
        )

    def calculate_metrics(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        include_details: bool = False,
    ) -> PullRequestMetrics:
        """Compute pull request metrics for ``[since, until)``.

        Args:
            owner: Repository owner.
            repo: Repository name.
            since: Inclusive window start.
            until: Exclusive window end.
            include_details: Re-fetch every pull request individually so that
                average size and reviewer count reflect real values. List items
                report zero for both.
        """
        prs = self.fetch_pull_requests(owner, repo, since, until)
        if include_details:
            prs = [self.get_pull_request_details(owner, repo, pr.number) for pr in prs]

        lead_times: List[LeadTimeRecord] = []
        for pr in prs:
            if not pr.is_merged:
                continue
            lead_time = compute_lead_time(pr, self.list_commits(owner, repo, pr.number))
            if lead_time is not None:
                lead_times.append(lead_time)

        logger.info(
            "Collected pull request samples",
            extra={
                "repository": f"{owner}/{repo}",
                "prs_total": len(prs),
                "lead_time_samples": len(lead_times),
            },
        )

        return compute_pull_request_metrics(prs, lead_times)
