"""Pantheon platform API client with machine-token authentication."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from siteclone.config import Config
from siteclone.logging import logger
from siteclone.models import Element, NotFoundError, SiteCloneError

CLIENT_NAME = "siteclone"
# Backups created by a clone are kept for a week
BACKUP_TTL_SECONDS = 7 * 86400


class ErrorCategory(Enum):
    """Categories for API errors to determine handling strategy."""

    AUTH_FAILED = auto()  # 401 - bad or expired machine token
    PERMISSION_DENIED = auto()  # 403 - no access to site
    NOT_FOUND = auto()  # 404 - site/env/workflow missing
    INVALID_REQUEST = auto()  # 400/409/422 - platform refused the call
    RATE_LIMITED = auto()  # 429 - retry with backoff
    SERVER_ERROR = auto()  # 5xx - retry with backoff
    NETWORK_ERROR = auto()  # Connection errors - retry with backoff
    UNKNOWN = auto()


@dataclass
class APIError:
    """Structured API error with handling guidance."""

    category: ErrorCategory
    message: str
    retryable: bool
    user_action: str
    status_code: int | None = None

    def __str__(self) -> str:
        return f"{self.category.name}: {self.message}"


class RemoteAPIError(SiteCloneError):
    """Raised when the platform API fails in a way the caller cannot recover from."""

    def __init__(self, error: APIError) -> None:
        self.error = error
        super().__init__(f"{error.message}. {error.user_action}")


def _response_detail(response: httpx.Response) -> str:
    """Best-effort extraction of the platform's error text."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


def classify_error(exc: BaseException) -> APIError:
    """Classify an exception into an APIError with handling guidance.

    Args:
        exc: The exception to classify

    Returns:
        APIError with category, retryability, and user action guidance
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        detail = _response_detail(exc.response)

        if status == 401:
            return APIError(
                category=ErrorCategory.AUTH_FAILED,
                message=f"Authentication failed: {detail}",
                retryable=False,
                user_action="Check machine_token in ~/.siteclone/config.toml.",
                status_code=status,
            )
        if status == 403:
            return APIError(
                category=ErrorCategory.PERMISSION_DENIED,
                message=f"Permission denied: {detail}",
                retryable=False,
                user_action="Make sure your account is a team member of both sites.",
                status_code=status,
            )
        if status == 404:
            return APIError(
                category=ErrorCategory.NOT_FOUND,
                message=f"Resource not found: {detail}",
                retryable=False,
                user_action="Check the site and environment names.",
                status_code=status,
            )
        if status == 429:
            return APIError(
                category=ErrorCategory.RATE_LIMITED,
                message="Rate limit exceeded. Slowing down requests.",
                retryable=True,
                user_action="Wait a moment. Requests will automatically retry.",
                status_code=status,
            )
        if status in (400, 409, 422):
            return APIError(
                category=ErrorCategory.INVALID_REQUEST,
                message=f"Request rejected ({status}): {detail}",
                retryable=False,
                user_action="Check the environment state on the dashboard.",
                status_code=status,
            )
        if status >= 500:
            return APIError(
                category=ErrorCategory.SERVER_ERROR,
                message=f"Platform server error ({status}): {detail}",
                retryable=True,
                user_action="Server issue. Requests will automatically retry.",
                status_code=status,
            )
        return APIError(
            category=ErrorCategory.UNKNOWN,
            message=f"HTTP error {status}: {detail}",
            retryable=False,
            user_action="Unexpected error. Run with --verbose for details.",
            status_code=status,
        )

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return APIError(
            category=ErrorCategory.NETWORK_ERROR,
            message=f"Network error: {exc}",
            retryable=True,
            user_action="Check internet connection. Requests will retry.",
        )

    return APIError(
        category=ErrorCategory.UNKNOWN,
        message=str(exc),
        retryable=False,
        user_action="Unexpected error. Run with --verbose for details.",
    )


def _is_retryable_error(exc: BaseException) -> bool:
    """Check if an error is retryable using classify_error."""
    api_error = classify_error(exc)
    if api_error.retryable:
        logger.warning("{} (will retry)", api_error.message)
    return api_error.retryable


# Retry decorator for API calls: 5 attempts, exponential backoff 1-30s with jitter
api_retry = retry(
    retry=retry_if_exception(_is_retryable_error),
    stop=stop_after_attempt(5),
    wait=wait_exponential_jitter(initial=1, max=30, jitter=1),
    reraise=True,
)


def _looks_like_uuid(value: str) -> bool:
    """Site UUIDs are 36 chars with dashes at fixed positions."""
    return len(value) == 36 and [i for i, c in enumerate(value) if c == "-"] == [8, 13, 18, 23]


class PantheonClient:
    """Minimal consumer of the platform REST API.

    The session is obtained lazily from the machine token on the first call.
    Use as a context manager so the underlying connection pool is closed.

    Usage:
        with PantheonClient(api_url, machine_token) as client:
            site = client.get_site("my-site")
    """

    def __init__(
        self,
        api_url: str,
        machine_token: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._machine_token = machine_token
        self._session: str | None = None
        self._http = httpx.Client(
            base_url=api_url.rstrip("/") + "/",
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": CLIENT_NAME, "Accept": "application/json"},
            transport=transport,
        )

    def __enter__(self) -> "PantheonClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP connection pool."""
        self._http.close()

    # --- transport ---

    @api_retry  # type: ignore[untyped-decorator]
    def _send(
        self, method: str, path: str, headers: dict[str, str] | None = None, **kwargs: Any
    ) -> Any:
        """Send one request. Never authenticates, so retries do not nest."""
        logger.debug("{} {}", method, path)
        response = self._http.request(method, path.lstrip("/"), headers=headers or {}, **kwargs)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send an authenticated request and translate HTTP failures into siteclone errors."""
        try:
            headers = {"Authorization": f"Bearer {self._authenticate()}"}
            return self._send(method, path, headers=headers, **kwargs)
        except (httpx.HTTPStatusError, httpx.TransportError) as e:
            api_error = classify_error(e)
            if api_error.category == ErrorCategory.NOT_FOUND:
                raise NotFoundError(f"Not found: {path}") from e
            raise RemoteAPIError(api_error) from e

    def _authenticate(self) -> str:
        if self._session is None:
            logger.debug("Exchanging machine token for a session")
            data = self._send(
                "POST",
                "authorize/machine-token",
                json={"machine_token": self._machine_token, "client": CLIENT_NAME},
            )
            self._session = data["session"]
        return self._session

    # --- sites and environments ---

    def get_site(self, site: str) -> dict[str, Any]:
        """Get site attributes by machine name or UUID.

        Raises:
            NotFoundError: If no such site is visible to the session
        """
        site_id = site
        if not _looks_like_uuid(site):
            try:
                site_id = self._request("GET", f"site-names/{site}")["id"]
            except NotFoundError:
                msg = f"Could not locate a site your user may access identified by {site}"
                raise NotFoundError(msg) from None
        data: dict[str, Any] = self._request("GET", f"sites/{site_id}")
        data.setdefault("id", site_id)
        return data

    def get_environment(self, site_id: str, env: str) -> dict[str, Any]:
        """Get environment attributes.

        Raises:
            NotFoundError: If the site has no such environment
        """
        environments: dict[str, Any] = self._request("GET", f"sites/{site_id}/environments") or {}
        if env not in environments:
            available = ", ".join(sorted(environments))
            raise NotFoundError(f"Environment '{env}' not found. Available: {available}")
        data: dict[str, Any] = dict(environments[env])
        data.setdefault("id", env)
        return data

    # --- workflows ---

    def start_backup(
        self, site_id: str, env: str, elements: Iterable[Element], ttl: int = BACKUP_TTL_SECONDS
    ) -> str:
        """Queue a backup workflow and return its ID."""
        chosen = set(elements)
        params = {
            "code": Element.CODE in chosen,
            "database": Element.DATABASE in chosen,
            "files": Element.FILES in chosen,
            "entry_type": "backup",
            "ttl": ttl,
        }
        data = self._request(
            "POST",
            f"sites/{site_id}/environments/{env}/workflows",
            json={"type": "do_export", "params": params},
        )
        workflow_id: str = data["id"]
        return workflow_id

    def get_workflow(self, site_id: str, workflow_id: str) -> dict[str, Any]:
        """Get workflow status attributes."""
        data: dict[str, Any] = self._request("GET", f"sites/{site_id}/workflows/{workflow_id}")
        return data

    # --- backups ---

    def list_backups(self, site_id: str, env: str) -> list[dict[str, Any]]:
        """List backup catalog entries, newest first."""
        catalog = self._request("GET", f"sites/{site_id}/environments/{env}/backups/catalog") or {}
        entries = [dict(attrs, id=name) for name, attrs in catalog.items()]
        entries.sort(key=lambda e: float(e.get("timestamp") or 0), reverse=True)
        return entries

    def get_backup_url(self, site_id: str, env: str, folder: str, element: Element) -> str:
        """Get a signed download URL for one backup archive."""
        data = self._request(
            "POST",
            f"sites/{site_id}/environments/{env}/backups/catalog/{folder}/{element.value}/s3token",
            json={"method": "get"},
        )
        url: str = data["url"]
        return url

    def download(self, url: str, target: Path) -> Path:
        """Stream a signed URL to a local file.

        The platform session is not sent; signed URLs carry their own auth.
        """
        logger.debug("Downloading {} to {}", url.split("?")[0], target)
        try:
            with self._http.stream("GET", url) as response:
                response.raise_for_status()
                with open(target, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except (httpx.HTTPStatusError, httpx.TransportError) as e:
            target.unlink(missing_ok=True)
            raise RemoteAPIError(classify_error(e)) from e
        return target


def get_client(config: Config) -> PantheonClient:
    """Get an API client for the configured account."""
    return PantheonClient(config.api_url, config.machine_token, timeout=config.request_timeout)
