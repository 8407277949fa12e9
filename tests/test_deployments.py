"""Tests for deployment retrieval, status enrichment and deployment metrics."""

import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dorametrics.config import ClientConfig
from dorametrics.deployments import DeploymentService

BASE = datetime(2026, 4, 1, tzinfo=timezone.utc)
SINCE = BASE
UNTIL = BASE + timedelta(days=10)


def _iso(hours: float) -> str:
    return (BASE + timedelta(hours=hours)).isoformat().replace("+00:00", "Z")


def _deployment_item(deployment_id: int, created: float) -> dict:
    return {
        "id": deployment_id,
        "sha": f"sha{deployment_id}",
        "ref": "main",
        "environment": "production",
        "created_at": _iso(created),
        "updated_at": _iso(created),
    }


def _status_item(state: str, updated: float) -> dict:
    return {"state": state, "created_at": _iso(updated), "updated_at": _iso(updated)}


def _client(deployments, statuses: dict) -> Mock:
    """Stub client serving one deployment page and per-deployment status lists."""
    client = Mock()
    client.config = ClientConfig(status_workers=4)
    client.execute.side_effect = lambda operation, **kwargs: operation()
    lock = threading.Lock()
    status_calls = []

    def _rest_get(path, params=None):
        if path.endswith("/deployments"):
            return deployments
        deployment_id = int(path.split("/")[-2])
        with lock:
            status_calls.append(deployment_id)
        return statuses.get(deployment_id, [])

    client.rest_get.side_effect = _rest_get
    client.status_calls = status_calls
    return client


def _ten_day_fixture():
    """Ten deployments, one per day, newest first; ids 0 and 1 fail and recover after 2h."""
    deployments = [_deployment_item(i, created=(9 - i) * 24) for i in range(10)]
    statuses = {
        i: [_status_item("failure" if i == 0 else "error" if i == 1 else "success", (9 - i) * 24 + 2)]
        for i in range(10)
    }
    return deployments, statuses


def test_list_deployments_passes_environment_filter():
    """Verify the environment filter and paging are sent upstream."""
    client = _client([_deployment_item(1, created=0)], {})

    records = DeploymentService(client).list_deployments("acme", "api", "production", page=3, per_page=100)

    params = client.rest_get.call_args.kwargs["params"]
    assert params == {"page": 3, "per_page": 100, "environment": "production"}
    assert records[0].status == "pending"
    assert records[0].repository == "acme/api"


def test_get_deployment_status_defaults_to_pending():
    """Verify a deployment without statuses is reported as pending."""
    client = _client([], {})

    status = DeploymentService(client).get_deployment_status("acme", "api", 5)

    assert status.state == "pending"
    assert status.updated_at is None


def test_fetch_deployments_with_status_enriches_in_window_records_in_order():
    """Verify statuses are looked up only for in-window deployments and keep order."""
    deployments = [
        _deployment_item(3, created=300),
        _deployment_item(2, created=20),
        _deployment_item(1, created=10),
        _deployment_item(0, created=-5),
    ]
    statuses = {
        2: [_status_item("success", 21), _status_item("in_progress", 20.5)],
        1: [_status_item("failure", 13)],
    }
    client = _client(deployments, statuses)

    records = DeploymentService(client).fetch_deployments_with_status(
        "acme", "api", since=SINCE, until=UNTIL
    )

    assert [record.id for record in records] == [2, 1]
    assert [record.status for record in records] == ["success", "failure"]
    assert records[1].updated_at == BASE + timedelta(hours=13)
    assert sorted(client.status_calls) == [1, 2]


def test_calculate_metrics_ten_deployments_over_ten_days():
    """Verify 10 deployments over 10 days with 2 failures give 1/day and 20% rollback rate."""
    client = _client(*_ten_day_fixture())

    metrics = DeploymentService(client).calculate_metrics("acme", "api", since=SINCE, until=UNTIL)

    assert metrics.frequency == pytest.approx(1.0)
    assert metrics.success_rate == pytest.approx(80.0)
    assert metrics.rollback_rate == pytest.approx(20.0)
    assert metrics.duration == pytest.approx(120.0)


def test_change_failure_rate_and_mean_time_to_recovery():
    """Verify CFR and MTTR derived from status-enriched deployments."""
    service = DeploymentService(_client(*_ten_day_fixture()))

    assert service.calculate_change_failure_rate("acme", "api", since=SINCE, until=UNTIL) == pytest.approx(20.0)
    assert service.calculate_mean_time_to_recovery("acme", "api", since=SINCE, until=UNTIL) == pytest.approx(2.0)

    data = service.get_change_failure_data("acme", "api", since=SINCE, until=UNTIL)
    assert sum(1 for record in data if record.is_failure) == 2
    assert all(record.recovery_time is None for record in data if not record.is_failure)


def test_empty_window_yields_zero_metrics_without_status_lookups():
    """Verify an empty deployment list yields zeros and no status calls."""
    client = _client([], {})
    service = DeploymentService(client)

    metrics = service.calculate_metrics("acme", "api", since=SINCE, until=UNTIL)

    assert metrics.frequency == 0.0
    assert metrics.success_rate == 0.0
    assert service.calculate_mean_time_to_recovery("acme", "api") == 0.0
    assert client.status_calls == []
