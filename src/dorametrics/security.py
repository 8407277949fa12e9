"""Open security alert retrieval: Dependabot, code scanning and secret scanning."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List

from .client import GitHubClient
from .errors import ApiError, DataValidationError, ForbiddenError, NotFoundError
from .kpi import compute_security_metrics
from .models import DEFAULT_SEVERITY, SecurityMetrics
from .pagination import fetch_window
from .timeutils import parse_datetime

logger = logging.getLogger(__name__)

ALERT_STATE_OPEN = "open"


def alert_severity(alert: Dict[str, Any]) -> str:
    """Return the lower-cased severity of a Dependabot or code scanning alert.

    Dependabot alerts carry it on the advisory or vulnerability, code scanning
    alerts on the rule. Alerts without any severity count as ``medium``.
    """
    rule = alert.get("rule") or {}
    candidates = (
        alert.get("severity"),
        (alert.get("security_advisory") or {}).get("severity"),
        (alert.get("security_vulnerability") or {}).get("severity"),
        rule.get("security_severity_level"),
        rule.get("severity"),
    )
    for candidate in candidates:
        if candidate:
            return str(candidate).lower()
    return DEFAULT_SEVERITY


def _alert_created_at(alert: Dict[str, Any]) -> datetime:
    created_at = parse_datetime(alert.get("created_at"))
    if created_at is None:
        raise DataValidationError(
            f"GitHub alert payload is missing created_at: number={alert.get('number')}"
        )
    return created_at


class SecurityService:
    """Collects open alerts for a repository and summarizes them."""

    def __init__(self, client: GitHubClient) -> None:
        self._client = client

    def _list_alerts(self, owner: str, repo: str, kind: str, state: str) -> List[Dict[str, Any]]:
        """Fetch every alert of one scanner, newest first.

        A scanner that is disabled, not licensed or not visible to the
        credentials answers 403 or 404; that yields an empty list.
        """
        path = f"repos/{owner}/{repo}/{kind}/alerts"

        def fetch_page(page: int, per_page: int) -> List[Dict[str, Any]]:
            params = {
                "state": state,
                "sort": "created",
                "direction": "desc",
                "page": page,
                "per_page": per_page,
            }
            payload = self._client.execute(lambda: self._client.rest_get(path, params=params))
            if not isinstance(payload, list):
                raise ApiError(f"GitHub API returned unexpected payload shape: GET {path}")
            return payload

        try:
            return fetch_window(fetch_page, created_at=_alert_created_at)
        except (ForbiddenError, NotFoundError) as exc:
            logger.warning(
                "Security alerts not available",
                extra={"repository": f"{owner}/{repo}", "scanner": kind, "error": str(exc)},
            )
            return []

    def get_dependabot_alerts(
        self, owner: str, repo: str, state: str = ALERT_STATE_OPEN
    ) -> List[Dict[str, Any]]:
        return self._list_alerts(owner, repo, "dependabot", state)

    def get_code_scanning_alerts(
        self, owner: str, repo: str, state: str = ALERT_STATE_OPEN
    ) -> List[Dict[str, Any]]:
        return self._list_alerts(owner, repo, "code-scanning", state)

    def get_secret_scanning_alerts(
        self, owner: str, repo: str, state: str = ALERT_STATE_OPEN
    ) -> List[Dict[str, Any]]:
        return self._list_alerts(owner, repo, "secret-scanning", state)

    def calculate_security_metrics(self, owner: str, repo: str) -> SecurityMetrics:
        """Summarize open alerts by severity plus the number of exposed secrets."""
        severity_alerts = self.get_dependabot_alerts(owner, repo)
        severity_alerts += self.get_code_scanning_alerts(owner, repo)
        secrets = self.get_secret_scanning_alerts(owner, repo)

        logger.info(
            "Collected security alerts",
            extra={
                "repository": f"{owner}/{repo}",
                "severity_alerts": len(severity_alerts),
                "secret_alerts": len(secrets),
            },
        )
        return compute_security_metrics(
            (alert_severity(alert) for alert in severity_alerts), len(secrets)
        )
