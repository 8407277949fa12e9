"""Configuration parsing, validation and auth-strategy resolution."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .errors import ConfigurationError

DEFAULT_REST_API_URL = "https://api.github.com"
DEFAULT_GRAPHQL_API_URL = "https://api.github.com/graphql"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Retry and back-off settings applied by ``GitHubClient.execute``."""

    max_retries: int = 3
    retry_delay_ms: int = 1000
    backoff_base_ms: int = 1000
    max_backoff_ms: int = 30000
    max_rate_limit_wait_seconds: float = 3600.0


@dataclass(frozen=True)
class OAuthAppCredentials:
    """OAuth application credentials (client id / client secret)."""

    client_id: str
    client_secret: str

    def is_complete(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class AppCredentials:
    """GitHub App credentials (app id, PEM private key, optional installation)."""

    app_id: str
    private_key: str
    installation_id: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.app_id and self.private_key)


AuthProfile = Union[AppCredentials, OAuthAppCredentials]


@dataclass(frozen=True)
class ClientConfig:
    """Validated runtime settings used to build the GitHub client."""

    rest_api_url: str = DEFAULT_REST_API_URL
    graphql_api_url: str = DEFAULT_GRAPHQL_API_URL
    rate_limit: RateLimitPolicy = field(default_factory=RateLimitPolicy)
    oauth: Optional[OAuthAppCredentials] = None
    app: Optional[AppCredentials] = None
    organization: Optional[str] = None
    timeout_seconds: int = 30
    status_workers: int = 8


def resolve_auth_profile(config: ClientConfig) -> Optional[AuthProfile]:
    """Select the credentials the client should authenticate with.

    GitHub App credentials win whenever both ``app_id`` and ``private_key`` are
    non-empty, without checking that the key actually signs. OAuth app
    credentials are used otherwise, when both halves are present. ``None``
    means the client cannot be configured.
    """
    if config.app is not None and config.app.is_complete():
        return config.app
    if config.oauth is not None and config.oauth.is_complete():
        return config.oauth
    return None


def update_config(config: ClientConfig, **changes: Any) -> ClientConfig:
    """Return a copy of ``config`` with ``changes`` applied.

    Raises:
        ConfigurationError: If a change names an unknown setting.
    """
    known = {f.name for f in dataclasses.fields(ClientConfig)}
    unknown = sorted(set(changes) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration setting(s): {', '.join(unknown)}")
    return dataclasses.replace(config, **changes)


def _env_str(name: str) -> str:
    return os.getenv(name, "").strip()


def _env_positive_int(name: str, default: int, allow_zero: bool = False) -> int:
    raw = _env_str(name)
    if not raw:
        return default

    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid value for '{name}': expected an integer, got {raw!r}."
        ) from exc

    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(f"Invalid value for '{name}': expected an integer greater than 0.")
    return value


def load_config() -> ClientConfig:
    """Build and validate client configuration from ``GITHUB_*`` environment variables.

    Missing credentials are not an error here: the client reports itself as
    unconfigured instead, so callers can degrade gracefully.

    Returns:
        A validated ``ClientConfig`` instance.

    Raises:
        ConfigurationError: If a numeric setting is not a valid positive integer.
    """
    rate_limit = RateLimitPolicy(
        max_retries=_env_positive_int("GITHUB_MAX_RETRIES", 3),
        retry_delay_ms=_env_positive_int("GITHUB_RETRY_DELAY", 1000, allow_zero=True),
        max_rate_limit_wait_seconds=float(
            _env_positive_int("GITHUB_MAX_RATE_LIMIT_WAIT", 3600, allow_zero=True)
        ),
    )

    oauth = OAuthAppCredentials(
        client_id=_env_str("GITHUB_CLIENT_ID"),
        client_secret=_env_str("GITHUB_CLIENT_SECRET"),
    )

    # PEM keys are commonly exported on one line with literal "\n" separators.
    private_key = _env_str("GITHUB_PRIVATE_KEY").replace("\\n", "\n")
    app = AppCredentials(
        app_id=_env_str("GITHUB_APP_ID"),
        private_key=private_key,
        installation_id=_env_str("GITHUB_INSTALLATION_ID") or None,
    )

    return ClientConfig(
        rest_api_url=_env_str("GITHUB_API_URL") or DEFAULT_REST_API_URL,
        graphql_api_url=_env_str("GITHUB_GRAPHQL_URL") or DEFAULT_GRAPHQL_API_URL,
        rate_limit=rate_limit,
        oauth=oauth,
        app=app,
        organization=_env_str("GITHUB_ORGANIZATION") or None,
        timeout_seconds=_env_positive_int("GITHUB_TIMEOUT", 30),
        status_workers=_env_positive_int("GITHUB_STATUS_WORKERS", 8),
    )
