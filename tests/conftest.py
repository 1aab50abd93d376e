"""Shared pytest fixtures for siteclone tests."""

from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from siteclone.api import PantheonClient
from siteclone.config import PollingConfig
from siteclone.logging import logger
from siteclone.models import EnvironmentDescriptor, NotFoundError

# --- HTTP Error Fixtures ---


def make_http_error(status: int, message: str = "unknown") -> httpx.HTTPStatusError:
    """Create an HTTPStatusError with the given status and JSON message.

    Args:
        status: HTTP status code (e.g., 401, 404, 429, 500)
        message: Error text returned by the platform

    Returns:
        HTTPStatusError with a real request/response pair
    """
    request = httpx.Request("GET", "https://terminus.pantheon.io/api/test")
    response = httpx.Response(status, json={"message": message}, request=request)
    return httpx.HTTPStatusError(f"Error {status}", request=request, response=response)


# --- Model Fixtures ---


def make_env(**overrides: Any) -> EnvironmentDescriptor:
    """Create an EnvironmentDescriptor with sensible defaults."""
    data: dict[str, Any] = {
        "label": "Site One",
        "site_name": "site1",
        "site_id": "11111111-1111-1111-1111-111111111111",
        "environment_name": "live",
        "runtime_version": "7.4",
        "framework": "drupal",
        "frozen": False,
    }
    data.update(overrides)
    return EnvironmentDescriptor(**data)


@pytest.fixture
def fast_polling() -> PollingConfig:
    """Polling policy that never sleeps."""
    return PollingConfig(initial_interval=0, max_interval=0, max_wait=5)


# --- Mock Client Fixtures ---


def catalog_entry(
    element: str, timestamp: int, folder: str | None = None, size: int = 1024, finished: bool = True
) -> dict[str, Any]:
    """Create a backup catalog entry as returned by PantheonClient.list_backups."""
    folder = folder or f"{timestamp}_backup"
    ext = "sql.gz" if element == "database" else "tar.gz"
    entry: dict[str, Any] = {
        "id": f"{folder}_{element}",
        "archive_type": element,
        "folder": folder,
        "filename": f"site1_live_{folder}_{element}.{ext}",
        "size": size,
        "timestamp": timestamp,
    }
    if finished:
        entry["finish_time"] = timestamp + 30
    return entry


@pytest.fixture
def mock_client() -> MagicMock:
    """Create a mock API client with an empty platform."""
    client = MagicMock(spec=PantheonClient)
    client.start_backup.return_value = "wf-1"
    client.get_workflow.return_value = {"result": "succeeded", "finished_at": 1700000000}
    client.list_backups.return_value = []
    client.get_backup_url.return_value = "https://backups.example.com/archive?sig=abc"
    return client


@pytest.fixture
def platform_client(mock_client: MagicMock) -> MagicMock:
    """Mock client serving two sites, site1 (drupal) and site2 (wordpress).

    site1 live runs PHP 7.3, site1 test runs PHP 7.4. Sites and environments
    can be changed per test through `client.sites` and `client.environments`.
    """
    sites: dict[str, dict[str, Any]] = {
        "site1": {
            "id": "11111111-1111-1111-1111-111111111111",
            "name": "site1",
            "label": "Site One",
            "framework": "drupal",
            "php_version": "74",
            "frozen": "false",
        },
        "site2": {
            "id": "22222222-2222-2222-2222-222222222222",
            "name": "site2",
            "label": "Site Two",
            "framework": "wordpress",
            "php_version": "74",
            "frozen": False,
        },
    }
    environments: dict[tuple[str, str], dict[str, Any]] = {
        ("site1", "live"): {"id": "live", "php_version": "73"},
        ("site1", "test"): {"id": "test", "php_version": "74"},
        ("site2", "live"): {"id": "live"},
    }
    by_id = {site["id"]: name for name, site in sites.items()}

    def get_site(name: str) -> dict[str, Any]:
        if name not in sites:
            raise NotFoundError(f"Could not locate a site your user may access identified by {name}")
        return dict(sites[name])

    def get_environment(site_id: str, env: str) -> dict[str, Any]:
        key = (by_id[site_id], env)
        if key not in environments:
            raise NotFoundError(f"Environment '{env}' not found.")
        return dict(environments[key])

    mock_client.get_site.side_effect = get_site
    mock_client.get_environment.side_effect = get_environment
    mock_client.list_backups.return_value = [
        catalog_entry("files", 1700000200),
        catalog_entry("code", 1700000200),
        catalog_entry("database", 1700000200),
        catalog_entry("database", 1700000100),
    ]
    mock_client.sites = sites
    mock_client.environments = environments
    return mock_client


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(str(m)), format="{level} {message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)
