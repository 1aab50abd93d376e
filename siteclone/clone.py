"""Clone orchestration: resolve, gate, back up, locate."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from siteclone.api import PantheonClient
from siteclone.backups import backup_environment, find_latest
from siteclone.compatibility import Confirm, Verdict, check
from siteclone.config import PollingConfig
from siteclone.elements import select_elements
from siteclone.environments import resolve
from siteclone.logging import logger
from siteclone.models import (
    ELEMENT_ORDER,
    BackupError,
    BackupRecord,
    CloneRequest,
    Element,
    EnvironmentDescriptor,
)


@dataclass
class ClonePlanResult:
    """Outcome of a clone run up to the (not yet supported) restore step.

    Attributes:
        source: Resolved source environment
        destination: Resolved destination environment
        aborted: True if the operator declined the version mismatch prompt
        elements: Selected elements, empty when backups were skipped
        backups_created: True if fresh backups were made on both sides
        source_backups: Latest source backup per selected element
    """

    source: EnvironmentDescriptor
    destination: EnvironmentDescriptor
    aborted: bool = False
    elements: tuple[Element, ...] = ()
    backups_created: bool = False
    source_backups: dict[Element, BackupRecord] = field(default_factory=dict)

    @property
    def destination_ready(self) -> bool:
        """Destination is ready for restore once the run was not aborted."""
        return not self.aborted

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "aborted": self.aborted,
            "elements": [e.value for e in self.elements],
            "backups_created": self.backups_created,
            "destination_ready": self.destination_ready,
            "source_backups": {e.value: r.to_dict() for e, r in self.source_backups.items()},
        }


Apply = Callable[[ClonePlanResult], None]


def _backup_side(
    client: PantheonClient,
    side: str,
    environment: EnvironmentDescriptor,
    elements: tuple[Element, ...],
    polling: PollingConfig | None,
) -> None:
    try:
        backup_environment(client, environment, elements, polling)
    except BackupError as e:
        e.side = side
        logger.error("Backup of the {} environment ({}) failed", side, environment.identifier)
        raise


def clone(
    client: PantheonClient,
    request: CloneRequest,
    confirm: Confirm,
    polling: PollingConfig | None = None,
    scope_backups: bool = False,
    apply: Apply | None = None,
) -> ClonePlanResult:
    """Clone one environment onto another.

    Both identifiers are resolved before anything is written. Unless
    `request.skip_backup` is set, a fresh backup is made of the source and
    of the destination (whole environment unless `scope_backups`), then the
    latest source backup of each selected element is located.

    Args:
        client: API client for the current session
        request: What to clone and which steps to skip
        confirm: Blocking yes/no prompt for soft risks
        polling: Backup polling policy
        scope_backups: Back up only the selected elements
        apply: Restore step, called with the result when the run was not aborted

    Returns:
        ClonePlanResult; `aborted` is set if the operator declined

    Raises:
        SiteCloneError: Any resolution, compatibility, selection or backup failure
    """
    source = resolve(client, request.source)
    destination = resolve(client, request.destination)

    if check(source, destination, confirm) is Verdict.ABORT:
        return ClonePlanResult(source=source, destination=destination, aborted=True)

    logger.info(
        "Cloning from the {} environment of {} to the {} environment of {}...",
        source.environment_name,
        source.label,
        destination.environment_name,
        destination.label,
    )
    result = ClonePlanResult(source=source, destination=destination)

    if not request.skip_backup:
        element_set = select_elements(
            skip_database=request.skip_database,
            skip_code=request.skip_code,
            skip_files=request.skip_files,
        )
        result.elements = tuple(element_set)
        scope = result.elements if scope_backups else ELEMENT_ORDER

        _backup_side(client, "source", source, scope, polling)
        _backup_side(client, "destination", destination, scope, polling)
        result.backups_created = True

        for element in element_set:
            result.source_backups[element] = find_latest(client, source, element)
    else:
        logger.info("Skipping backups, using existing ones")

    if apply is not None:
        apply(result)
    return result
