"""Data models and errors for siteclone."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Element(str, Enum):
    """A cloneable artifact of an environment.

    Values match the platform's backup archive types.
    """

    DATABASE = "database"
    CODE = "code"
    FILES = "files"


# Canonical order for selection and operator messages
ELEMENT_ORDER = (Element.DATABASE, Element.CODE, Element.FILES)


class BackupState(str, Enum):
    """State of a backup creation job."""

    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


# --- Errors ---


class SiteCloneError(Exception):
    """Base class for all siteclone errors."""


class MalformedIdentifierError(SiteCloneError, ValueError):
    """Raised when an identifier is not of the form <site>.<environment>."""


class EmptySelectionError(SiteCloneError, ValueError):
    """Raised when every element has been skipped."""


class NotFoundError(SiteCloneError, LookupError):
    """Raised when a site, environment or backup does not exist."""


class IncompatibleFrameworkError(SiteCloneError):
    """Raised when source and destination run different frameworks."""


class FrozenEnvironmentError(SiteCloneError):
    """Raised when either side of a clone is frozen."""


class NoBackupFoundError(NotFoundError):
    """Raised when an environment has no finished backup of an element."""

    def __init__(self, element: Element, identifier: str) -> None:
        self.element = element
        self.identifier = identifier
        super().__init__(
            f"No {element.value} backups available for {identifier}. "
            f"Create one with `terminus backup:create {identifier} --element={element.value}`"
        )


class BackupError(SiteCloneError):
    """Base for failures while creating or awaiting a backup.

    Attributes:
        side: "source" or "destination" once the orchestrator knows it.
    """

    side: str | None = None


class BackupCreationError(BackupError):
    """Raised when the platform rejects or fails a backup job."""


class BackupTimeoutError(BackupError, TimeoutError):
    """Raised when a backup does not finish within the polling budget."""


class BackupCancelledError(BackupError):
    """Raised when the operator interrupts backup polling."""


# --- Identifiers ---

_VALID_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_")


def parse_site_env(identifier: str) -> tuple[str, str]:
    """Split a `<site>.<environment>` identifier.

    Args:
        identifier: Site machine name or UUID, a dot, and an environment name

    Returns:
        (site, environment) tuple

    Raises:
        MalformedIdentifierError: If the identifier does not have exactly two
            non-empty dot-separated parts of valid characters
    """
    identifier = identifier.strip()
    parts = identifier.split(".")
    if len(parts) != 2 or not all(parts):
        raise MalformedIdentifierError(
            f"Expected <site>.<environment>, got: {identifier!r}"
        )
    for part in parts:
        if not all(c in _VALID_CHARS for c in part):
            raise MalformedIdentifierError(f"Invalid characters in identifier: {identifier!r}")
    site, env = parts
    return site, env


# --- Data ---


@dataclass(frozen=True)
class EnvironmentDescriptor:
    """Resolved metadata for one environment of a site.

    `site_id` and `environment_name` together are the handle used to address
    the environment on the remote API.
    """

    label: str
    site_name: str
    site_id: str
    environment_name: str
    runtime_version: str
    framework: str
    frozen: bool

    @property
    def identifier(self) -> str:
        """`<site>.<environment>` form of this environment."""
        return f"{self.site_name}.{self.environment_name}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "label": self.label,
            "site": self.site_name,
            "site_id": self.site_id,
            "environment": self.environment_name,
            "runtime_version": self.runtime_version,
            "framework": self.framework,
            "frozen": self.frozen,
        }


@dataclass(frozen=True)
class CloneRequest:
    """Operator input for a single clone run."""

    source: str
    destination: str
    skip_database: bool = False
    skip_files: bool = False
    skip_code: bool = False
    skip_backup: bool = False

    def __post_init__(self) -> None:
        for name in ("skip_database", "skip_files", "skip_code", "skip_backup"):
            if not isinstance(getattr(self, name), bool):
                raise TypeError(f"{name} must be a bool, got {getattr(self, name)!r}")


class ElementSet:
    """Non-empty, ordered set of elements.

    Iteration always follows ELEMENT_ORDER regardless of input order.
    """

    __slots__ = ("_elements",)

    def __init__(self, elements: Iterable[Element]) -> None:
        chosen = set(elements)
        if not chosen:
            raise EmptySelectionError("You cannot skip cloning all elements.")
        self._elements = tuple(e for e in ELEMENT_ORDER if e in chosen)

    def __iter__(self) -> Iterator[Element]:
        return iter(self._elements)

    def __len__(self) -> int:
        return len(self._elements)

    def __contains__(self, item: object) -> bool:
        return item in self._elements

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ElementSet):
            return self._elements == other._elements
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._elements)

    def __repr__(self) -> str:
        return f"ElementSet({', '.join(e.value for e in self._elements)})"

    @property
    def is_complete(self) -> bool:
        """True when every element is selected."""
        return len(self._elements) == len(ELEMENT_ORDER)


@dataclass
class BackupJob:
    """A backup creation in flight. Not persisted."""

    target: EnvironmentDescriptor
    workflow_id: str
    elements: tuple[Element, ...] = ELEMENT_ORDER
    state: BackupState = BackupState.PENDING


@dataclass(frozen=True)
class BackupRecord:
    """A finished backup of one element, ready to download."""

    element: Element
    created_at: datetime
    download_url: str
    filename: str = ""
    folder: str = ""
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "element": self.element.value,
            "created_at": self.created_at.isoformat(),
            "download_url": self.download_url,
            "filename": self.filename,
            "folder": self.folder,
            "size": self.size,
        }
