"""GitHub REST/GraphQL client with rate-limit aware retries."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

import requests

from .auth import build_auth
from .config import AuthProfile, ClientConfig, RateLimitPolicy, resolve_auth_profile
from .errors import (
    ApiError,
    AuthenticationError,
    ClientNotConfiguredError,
    ConfigurationError,
    DataValidationError,
    ForbiddenError,
    MetricsError,
    NotFoundError,
    RateLimitError,
    RateLimitExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that retrying cannot fix.
_NON_RETRYABLE = (
    NotFoundError,
    ForbiddenError,
    ClientNotConfiguredError,
    RateLimitExhaustedError,
    ConfigurationError,
    DataValidationError,
)


class GitHubClient:
    """Owns one authenticated connection profile to the GitHub API.

    The client is built once by the composition root and handed to the
    services that need it. ``configure`` rebuilds the transport in place when
    settings change; without usable credentials the client stays unconfigured
    and every data call fails fast with ``ClientNotConfiguredError``.
    """

    _ACCEPT = "application/vnd.github+json"
    _API_VERSION = "2022-11-28"
    _USER_AGENT = "github-dora-metrics"
    _MIN_RATE_LIMIT_WAIT_SECONDS = 1.0

    def __init__(
        self,
        config: ClientConfig,
        timeout_seconds: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the client and build its transport from ``config``.

        Args:
            config: Client configuration including credentials and retry policy.
            timeout_seconds: Per-request timeout; defaults to ``config.timeout_seconds``.
            sleep: Blocking sleep used for back-off waits.
            clock: Source of the current UNIX time, used for rate-limit resets.
        """
        self._lock = threading.Lock()
        self._sleep = sleep
        self._clock = clock
        self._timeout_override = timeout_seconds
        self._config = config
        self._profile: Optional[AuthProfile] = None
        self._session: Optional[requests.Session] = None
        self.configure(config)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def auth_profile(self) -> Optional[AuthProfile]:
        return self._profile

    @property
    def _timeout_seconds(self) -> int:
        return self._timeout_override or self._config.timeout_seconds

    def _build_session(self, profile: AuthProfile, config: ClientConfig) -> requests.Session:
        session = requests.Session()
        session.auth = build_auth(
            profile,
            config.rest_api_url,
            timeout_seconds=self._timeout_override or config.timeout_seconds,
        )
        session.headers.update(
            {
                "Accept": self._ACCEPT,
                "X-GitHub-Api-Version": self._API_VERSION,
                "User-Agent": self._USER_AGENT,
            }
        )
        return session

    def configure(self, config: Optional[ClientConfig] = None) -> bool:
        """(Re)build the transport from ``config`` or the current configuration.

        The new session is built first and swapped in atomically; the previous
        one is closed afterwards.

        Returns:
            ``True`` when a usable transport now exists.
        """
        config = config or self._config
        profile = resolve_auth_profile(config)
        session: Optional[requests.Session] = None

        if profile is None:
            logger.warning("GitHub client not configured - missing authentication credentials")
        else:
            session = self._build_session(profile, config)
            logger.info(
                "Configured GitHub client",
                extra={"auth": type(profile).__name__, "rest_api_url": config.rest_api_url},
            )

        with self._lock:
            previous = self._session
            self._config = config
            self._profile = profile
            self._session = session

        if previous is not None:
            previous.close()

        return session is not None

    def is_configured(self) -> bool:
        """Return ``True`` when an auth profile was resolved from the configuration."""
        return self._profile is not None

    def is_initialized(self) -> bool:
        """Return ``True`` when a transport session exists."""
        return self._session is not None

    def _current_session(self) -> requests.Session:
        with self._lock:
            session = self._session
        if session is None:
            raise ClientNotConfiguredError(
                "GitHub client is not configured. Set GITHUB_APP_ID/GITHUB_PRIVATE_KEY "
                "or GITHUB_CLIENT_ID/GITHUB_CLIENT_SECRET."
            )
        return session

    def _build_url(self, path: str) -> str:
        """Build a fully qualified REST URL from a path below the API root."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._config.rest_api_url.rstrip('/')}/{path.lstrip('/')}"

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or ""
        if isinstance(payload, dict):
            return str(payload.get("message", ""))
        return ""

    def _rate_limit_error(
        self, method: str, url: str, response: requests.Response
    ) -> Optional[RateLimitError]:
        """Classify a 403/429 response as a primary or secondary rate limit.

        A reset header marks a primary limit when the remaining quota is zero,
        or when the message reports a rate limit that is not a secondary one.
        """
        headers = response.headers
        status_code = response.status_code
        message = self._error_message(response)
        lowered = message.lower()
        is_secondary_message = "secondary rate limit" in lowered

        reset_header = headers.get("X-RateLimit-Reset")
        quota_exhausted = headers.get("X-RateLimit-Remaining") == "0" or (
            "rate limit" in lowered and not is_secondary_message
        )
        if quota_exhausted and reset_header:
            try:
                reset_at = datetime.fromtimestamp(float(reset_header), tz=timezone.utc)
            except ValueError:
                logger.warning("Non-numeric X-RateLimit-Reset header: %r", reset_header)
            else:
                return RateLimitError(
                    f"GitHub primary rate limit exceeded: {method} {url}",
                    kind=RateLimitError.PRIMARY,
                    status_code=status_code,
                    reset_at=reset_at,
                )

        retry_after_header = headers.get("Retry-After")
        if retry_after_header or is_secondary_message or status_code == 429:
            retry_after: Optional[float] = None
            if retry_after_header:
                try:
                    retry_after = max(0.0, float(retry_after_header))
                except ValueError:
                    logger.warning("Non-numeric Retry-After header: %r", retry_after_header)
            return RateLimitError(
                f"GitHub secondary rate limit exceeded: {method} {url}",
                kind=RateLimitError.SECONDARY,
                status_code=status_code,
                retry_after=retry_after,
            )

        return None

    def _raise_for_status(self, method: str, url: str, response: requests.Response) -> None:
        status_code = response.status_code
        if status_code < 400:
            return

        if status_code in (403, 429):
            rate_limit_error = self._rate_limit_error(method, url, response)
            if rate_limit_error is not None:
                raise rate_limit_error

        if status_code == 401:
            raise AuthenticationError(f"GitHub rejected the credentials: {method} {url} returned 401")

        if status_code == 403:
            raise ForbiddenError(
                "GitHub refused access: "
                f"{method} {url} returned 403 - {self._error_message(response)}",
                status_code=403,
            )

        if status_code == 404:
            raise NotFoundError(f"GitHub resource not found: {method} {url}", status_code=404)

        raise ApiError(
            "GitHub API request failed: "
            f"{method} {url} returned {status_code} - {self._error_message(response)}",
            status_code=status_code,
        )

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send one request and return its decoded JSON body.

        Raises:
            ClientNotConfiguredError: If no transport exists.
            RateLimitError: If GitHub throttled the request.
            NotFoundError: On HTTP 404.
            ForbiddenError: On HTTP 403 that is not a rate limit.
            AuthenticationError: On HTTP 401.
            ApiError: On transport failures, other HTTP >= 400 or invalid JSON.
        """
        session = self._current_session()
        try:
            response = session.request(
                method, url, params=params, json=json, timeout=self._timeout_seconds
            )
        except requests.RequestException as exc:
            raise ApiError(f"GitHub request failed: {method} {url}") from exc

        self._raise_for_status(method, url, response)

        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"GitHub API returned invalid JSON: {method} {url}") from exc

    def rest_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Execute a single GET against the REST API (no retries)."""
        return self._request("GET", self._build_url(path), params=params)

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a single GraphQL query and return its ``data`` object.

        Raises:
            RateLimitError: If GitHub reports a GraphQL rate-limit error.
            ApiError: If the response carries any other GraphQL errors.
        """
        url = self._config.graphql_api_url
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        body = self._request("POST", url, json=payload)
        if not isinstance(body, dict):
            raise ApiError(f"GitHub GraphQL API returned unexpected payload shape: POST {url}")

        errors = body.get("errors")
        if errors:
            message = "; ".join(str(error.get("message", error)) for error in errors)
            if "rate limit" in message.lower():
                raise RateLimitError(
                    f"GitHub GraphQL rate limit exceeded: {message}",
                    kind=RateLimitError.SECONDARY,
                )
            raise ApiError(f"GitHub GraphQL query failed: {message}")

        return body.get("data") or {}

    def _rate_limit_wait_seconds(self, error: RateLimitError, policy: RateLimitPolicy) -> float:
        if error.kind == RateLimitError.PRIMARY and error.reset_at is not None:
            wait = error.reset_at.timestamp() - self._clock()
            return max(wait, self._MIN_RATE_LIMIT_WAIT_SECONDS)
        if error.retry_after is not None:
            return error.retry_after
        return policy.retry_delay_ms / 1000.0

    @staticmethod
    def _backoff_seconds(attempt: int, policy: RateLimitPolicy) -> float:
        """Exponential back-off ``min(base * 2^(attempt-1), max)`` in seconds."""
        delay_ms = min(policy.backoff_base_ms * 2 ** (attempt - 1), policy.max_backoff_ms)
        return delay_ms / 1000.0

    def execute(
        self,
        operation: Callable[[], T],
        max_retries: Optional[int] = None,
        max_rate_limit_wait_seconds: Optional[float] = None,
    ) -> T:
        """Run ``operation`` under the retry policy and return its result.

        Rate-limit responses are waited out without consuming a retry attempt,
        as long as the accumulated wait stays within
        ``max_rate_limit_wait_seconds``. Other failures are retried up to
        ``max_retries`` total attempts with exponential back-off, then the last
        error is re-raised. Both limits can be overridden per call.

        Raises:
            RateLimitExhaustedError: If the next rate-limit wait would exceed the budget.
            NotFoundError: Immediately, without retrying.
            ClientNotConfiguredError: Immediately, without retrying.
        """
        policy = self._config.rate_limit
        attempts_allowed = max(1, max_retries if max_retries is not None else policy.max_retries)
        wait_budget = (
            max_rate_limit_wait_seconds
            if max_rate_limit_wait_seconds is not None
            else policy.max_rate_limit_wait_seconds
        )
        attempt = 0
        waited_seconds = 0.0

        while True:
            try:
                return operation()
            except _NON_RETRYABLE:
                raise
            except RateLimitError as exc:
                wait_seconds = self._rate_limit_wait_seconds(exc, policy)
                if waited_seconds + wait_seconds > wait_budget:
                    raise RateLimitExhaustedError(
                        f"GitHub {exc.kind} rate limit wait of {wait_seconds:.0f}s exceeds the "
                        f"remaining budget ({wait_budget - waited_seconds:.0f}s).",
                        status_code=exc.status_code,
                    ) from exc

                waited_seconds += wait_seconds
                logger.warning(
                    "GitHub rate limit hit, waiting before retry",
                    extra={"kind": exc.kind, "wait_seconds": wait_seconds},
                )
                self._sleep(wait_seconds)
            except (MetricsError, requests.RequestException) as exc:
                attempt += 1
                if attempt >= attempts_allowed:
                    raise

                delay_seconds = self._backoff_seconds(attempt, policy)
                logger.warning(
                    "GitHub request failed, retrying",
                    extra={
                        "attempt": attempt,
                        "max_retries": attempts_allowed,
                        "delay_seconds": delay_seconds,
                        "error": str(exc),
                    },
                )
                self._sleep(delay_seconds)

    def health_check(self) -> bool:
        """Attempt a trivial authenticated call; never raises.

        A rate-limited probe reports unhealthy instead of waiting for the reset.
        """
        if not self.is_initialized():
            return False

        try:
            self.execute(lambda: self.rest_get("meta"), max_rate_limit_wait_seconds=0.0)
        except (MetricsError, requests.RequestException) as exc:
            logger.error("GitHub API health check failed", extra={"error": str(exc)})
            return False
        return True

    def close(self) -> None:
        """Close the underlying HTTP session."""
        with self._lock:
            session = self._session
            self._session = None
        if session is not None:
            session.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
