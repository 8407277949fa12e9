"""Authentication contexts for outbound GitHub requests."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
import requests
from requests.auth import AuthBase, HTTPBasicAuth

from .config import AppCredentials, AuthProfile, OAuthAppCredentials
from .errors import AuthenticationError
from .timeutils import parse_datetime

logger = logging.getLogger(__name__)

# GitHub rejects app JWTs that live longer than ten minutes.
_JWT_LIFETIME_SECONDS = 540
_JWT_CLOCK_SKEW_SECONDS = 60
_TOKEN_REFRESH_MARGIN = timedelta(seconds=60)


class GitHubAppAuth(AuthBase):
    """Sign requests as a GitHub App, or as one of its installations.

    Without an installation id every request carries a freshly signed app JWT.
    With one, the JWT is exchanged for an installation access token which is
    reused until shortly before it expires.
    """

    def __init__(
        self,
        credentials: AppCredentials,
        rest_api_url: str,
        timeout_seconds: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._rest_api_url = rest_api_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    def create_app_jwt(self) -> str:
        """Return an RS256 JWT identifying the app.

        Raises:
            AuthenticationError: If the private key cannot sign the token.
        """
        now = int(self._clock())
        payload = {
            "iat": now - _JWT_CLOCK_SKEW_SECONDS,
            "exp": now + _JWT_LIFETIME_SECONDS,
            "iss": self._credentials.app_id,
        }
        try:
            return jwt.encode(payload, self._credentials.private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthenticationError(
                f"Unable to sign GitHub App JWT for app '{self._credentials.app_id}'."
            ) from exc

    def _installation_token(self) -> str:
        with self._lock:
            now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
            if (
                self._token is not None
                and self._token_expires_at is not None
                and now < self._token_expires_at - _TOKEN_REFRESH_MARGIN
            ):
                return self._token

            url = (
                f"{self._rest_api_url}/app/installations/"
                f"{self._credentials.installation_id}/access_tokens"
            )
            try:
                response = requests.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.create_app_jwt()}",
                        "Accept": "application/vnd.github+json",
                    },
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                raise AuthenticationError(
                    f"Installation token request failed: POST {url}"
                ) from exc

            if response.status_code >= 400:
                raise AuthenticationError(
                    "GitHub refused to mint an installation token: "
                    f"POST {url} returned {response.status_code} - {response.text}"
                )

            try:
                payload = response.json()
            except ValueError as exc:
                raise AuthenticationError(
                    f"Installation token response was not valid JSON: POST {url}"
                ) from exc

            token = payload.get("token")
            if not token:
                raise AuthenticationError(f"Installation token response had no token: POST {url}")

            self._token = str(token)
            self._token_expires_at = parse_datetime(payload.get("expires_at"))
            logger.debug(
                "Minted GitHub App installation token",
                extra={
                    "installation_id": self._credentials.installation_id,
                    "expires_at": self._token_expires_at,
                },
            )
            return self._token

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        if self._credentials.installation_id:
            token = self._installation_token()
        else:
            token = self.create_app_jwt()
        request.headers["Authorization"] = f"Bearer {token}"
        return request


def build_auth(
    profile: AuthProfile,
    rest_api_url: str,
    timeout_seconds: int = 30,
) -> AuthBase:
    """Build the ``requests`` auth hook for a resolved auth profile.

    OAuth apps authenticate with HTTP basic auth using the client id and
    secret. GitHub Apps sign each request lazily, so an invalid private key
    only surfaces when a request is made.
    """
    if isinstance(profile, AppCredentials):
        return GitHubAppAuth(profile, rest_api_url, timeout_seconds=timeout_seconds)
    if isinstance(profile, OAuthAppCredentials):
        return HTTPBasicAuth(profile.client_id, profile.client_secret)
    raise TypeError(f"Unsupported auth profile type: {type(profile).__name__}")
