"""Repository lookup, listing and contributors."""

from __future__ import annotations

from datetime import datetime, timezone
from operator import attrgetter
from typing import Any, Dict, List, Optional

from .client import GitHubClient
from .errors import ApiError, DataValidationError
from .models import Contributor, Repository
from .pagination import fetch_window
from .timeutils import parse_datetime

REPOSITORY_TYPE_ALL = "all"


def _parse_repository(payload: Any, fallback_owner: str) -> Repository:
    """Translate one GitHub repository payload into a ``Repository``.

    Creation time falls back to the last update, then to the current time.

    Raises:
        DataValidationError: If the payload lacks an id or name.
    """
    repo_id = payload.get("id") if isinstance(payload, dict) else None
    name = payload.get("name") if isinstance(payload, dict) else None
    if repo_id is None or not name:
        raise DataValidationError(
            f"GitHub repository payload is missing required fields: owner={fallback_owner}"
        )

    created_at = (
        parse_datetime(payload.get("created_at"))
        or parse_datetime(payload.get("updated_at"))
        or datetime.now(timezone.utc)
    )
    return Repository(
        id=int(repo_id),
        name=str(name),
        full_name=str(payload.get("full_name") or f"{fallback_owner}/{name}"),
        default_branch=str(payload.get("default_branch") or "main"),
        is_private=bool(payload.get("private", False)),
        created_at=created_at,
        pushed_at=parse_datetime(payload.get("pushed_at")),
        description=payload.get("description") or None,
        language=payload.get("language") or None,
    )


def _expect_list(payload: Any, path: str) -> List[Dict[str, Any]]:
    if not isinstance(payload, list):
        raise ApiError(f"GitHub API returned unexpected payload shape: GET {path}")
    return payload


class RepositoryService:
    """Resolves ``owner/repo`` pairs to repository metadata and lists repositories."""

    def __init__(self, client: GitHubClient) -> None:
        self._client = client

    def get_repository(self, owner: str, repo: str) -> Repository:
        """Fetch repository metadata.

        Raises:
            NotFoundError: If the repository does not exist or is not visible.
            DataValidationError: If the payload lacks an id or name.
        """
        payload = self._client.execute(lambda: self._client.rest_get(f"repos/{owner}/{repo}"))
        return _parse_repository(payload, owner)

    def list_repositories(
        self,
        owner: Optional[str] = None,
        repo_type: str = REPOSITORY_TYPE_ALL,
        page: int = 1,
        per_page: int = 30,
    ) -> List[Repository]:
        """List one page of repositories, newest first.

        ``owner`` defaults to the configured organization. Without either, the
        repositories of the authenticated user are listed.
        """
        owner = owner or self._client.config.organization
        if owner:
            return self.list_organization_repositories(owner, repo_type, page, per_page)

        path = "user/repos"
        params = {
            "type": repo_type,
            "sort": "created",
            "direction": "desc",
            "page": page,
            "per_page": per_page,
        }
        payload = self._client.execute(lambda: self._client.rest_get(path, params=params))
        return [_parse_repository(item, "") for item in _expect_list(payload, path)]

    def list_organization_repositories(
        self,
        org: str,
        repo_type: str = REPOSITORY_TYPE_ALL,
        page: int = 1,
        per_page: int = 30,
    ) -> List[Repository]:
        """List one page of an organization's repositories, newest first.

        Raises:
            NotFoundError: If the organization does not exist.
        """
        path = f"orgs/{org}/repos"
        params = {
            "type": repo_type,
            "sort": "created",
            "direction": "desc",
            "page": page,
            "per_page": per_page,
        }
        payload = self._client.execute(lambda: self._client.rest_get(path, params=params))
        return [_parse_repository(item, org) for item in _expect_list(payload, path)]

    def fetch_repositories(
        self,
        owner: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Repository]:
        """Fetch every repository created in ``[since, until)`` for ``owner``."""
        return fetch_window(
            lambda page, per_page: self.list_repositories(
                owner, REPOSITORY_TYPE_ALL, page, per_page
            ),
            created_at=attrgetter("created_at"),
            since=since,
            until=until,
        )

    def list_contributors(
        self, owner: str, repo: str, page: int = 1, per_page: int = 30
    ) -> List[Contributor]:
        """List one page of contributors, most commits first."""
        path = f"repos/{owner}/{repo}/contributors"
        params = {"page": page, "per_page": per_page}
        payload = self._client.execute(lambda: self._client.rest_get(path, params=params))
        return [
            Contributor(
                login=str(item.get("login") or "unknown"),
                contributions=int(item.get("contributions") or 0),
            )
            for item in _expect_list(payload, path)
        ]
