"""Resolve `<site>.<environment>` identifiers into environment descriptors."""

from typing import Any

from siteclone.api import PantheonClient
from siteclone.logging import logger
from siteclone.models import EnvironmentDescriptor, parse_site_env

_TRUE_STRINGS = {"1", "true", "on", "yes"}


def to_bool(value: Any) -> bool:
    """Coerce the API's loose boolean representations into a strict bool.

    "true"/"on"/"yes"/"1" (any case, surrounding whitespace ignored) and
    non-zero numbers are True; everything else, including None, is False.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def format_runtime_version(value: Any) -> str:
    """Normalize PHP versions: the API may report 7.3 as "73" or 73."""
    if value is None:
        return ""
    version = str(value).strip()
    if version.isdigit() and len(version) >= 2:
        return f"{version[0]}.{version[1:]}"
    return version


def resolve(client: PantheonClient, identifier: str) -> EnvironmentDescriptor:
    """Resolve an identifier to an EnvironmentDescriptor.

    Args:
        client: API client for the current session
        identifier: `<site>.<environment>`, site given by machine name or UUID

    Returns:
        Descriptor with label, versions and a strict `frozen` flag

    Raises:
        MalformedIdentifierError: If identifier is not `<site>.<environment>`
        NotFoundError: If the site or environment does not exist
    """
    site_name, env_name = parse_site_env(identifier)
    site = client.get_site(site_name)
    env = client.get_environment(site["id"], env_name)

    # Environment-level PHP version wins over the site default
    runtime = env.get("php_version") or site.get("php_version")

    descriptor = EnvironmentDescriptor(
        label=str(site.get("label") or site.get("name") or site_name),
        site_name=str(site.get("name") or site_name),
        site_id=str(site["id"]),
        environment_name=env_name,
        runtime_version=format_runtime_version(runtime),
        framework=str(site.get("framework") or ""),
        frozen=to_bool(site.get("frozen")),
    )
    logger.debug("Resolved {} -> {}", identifier, descriptor)
    return descriptor
