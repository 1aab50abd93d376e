"""Backup creation, completion polling and lookup."""

import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_delay,
    wait_exponential,
)

from siteclone.api import PantheonClient, RemoteAPIError
from siteclone.config import PollingConfig
from siteclone.logging import logger
from siteclone.models import (
    ELEMENT_ORDER,
    BackupCancelledError,
    BackupCreationError,
    BackupJob,
    BackupRecord,
    BackupState,
    BackupTimeoutError,
    Element,
    EnvironmentDescriptor,
    NoBackupFoundError,
)

console = Console(stderr=True)


def workflow_state(workflow: dict[str, Any]) -> BackupState:
    """Map platform workflow attributes onto a BackupState.

    A workflow is complete when its result is "succeeded", failed when it has
    finished with any other result, and pending otherwise.
    """
    result = workflow.get("result")
    if result == "succeeded":
        return BackupState.COMPLETE
    if result or workflow.get("finished_at"):
        return BackupState.FAILED
    return BackupState.PENDING


def create_backup(
    client: PantheonClient,
    environment: EnvironmentDescriptor,
    elements: Iterable[Element] = ELEMENT_ORDER,
) -> BackupJob:
    """Queue a backup of an environment.

    Raises:
        BackupCreationError: If the platform refuses the backup
    """
    chosen = tuple(e for e in ELEMENT_ORDER if e in set(elements))
    logger.info(
        "Creating a backup of the {} environment for the {} site...",
        environment.environment_name,
        environment.label,
    )
    try:
        workflow_id = client.start_backup(environment.site_id, environment.environment_name, chosen)
    except RemoteAPIError as e:
        raise BackupCreationError(
            f"Could not start a backup of {environment.identifier}: {e}"
        ) from e
    logger.debug("Backup workflow {} queued for {}", workflow_id, environment.identifier)
    return BackupJob(target=environment, workflow_id=workflow_id, elements=chosen)


def _log_wait(retry_state: RetryCallState) -> None:
    job: BackupJob = retry_state.args[1]
    next_in = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.debug(
        "Backup of {} still running after {:.0f}s, next check in {:.1f}s",
        job.target.identifier,
        retry_state.seconds_since_start or 0,
        next_in,
    )


def _poll(client: PantheonClient, job: BackupJob) -> BackupState:
    workflow = client.get_workflow(job.target.site_id, job.workflow_id)
    job.state = workflow_state(workflow)
    return job.state


def _bounded_wait(polling: PollingConfig) -> Callable[[RetryCallState], float]:
    """Exponential backoff that never sleeps past the max_wait deadline."""
    backoff = wait_exponential(
        multiplier=polling.initial_interval,
        min=polling.initial_interval,
        max=polling.max_interval,
    )

    def wait(retry_state: RetryCallState) -> float:
        remaining = polling.max_wait - (retry_state.seconds_since_start or 0)
        return max(0.0, min(backoff(retry_state), remaining))

    return wait


def await_completion(
    client: PantheonClient,
    job: BackupJob,
    polling: PollingConfig | None = None,
    on_wait: Callable[[float], None] | None = None,
) -> BackupJob:
    """Block until a backup job finishes.

    Polls with exponential backoff between `polling.initial_interval` and
    `polling.max_interval`, giving up after `polling.max_wait` seconds. The
    last sleep is shortened so the final check lands on the deadline.

    Args:
        client: API client
        job: Job returned by create_backup
        polling: Backoff bounds, defaults to PollingConfig()
        on_wait: Called with the elapsed seconds before each sleep

    Raises:
        BackupCreationError: If the job fails or its status cannot be read
        BackupTimeoutError: If the job is still pending after max_wait
        BackupCancelledError: If interrupted (Ctrl+C) while waiting
    """
    polling = polling or PollingConfig()
    target = job.target.identifier

    def before_sleep(retry_state: RetryCallState) -> None:
        _log_wait(retry_state)
        if on_wait is not None:
            on_wait(retry_state.seconds_since_start or 0)

    retrying = Retrying(
        retry=retry_if_result(lambda state: state is BackupState.PENDING),
        wait=_bounded_wait(polling),
        stop=stop_after_delay(polling.max_wait),
        before_sleep=before_sleep,
        sleep=time.sleep,
    )
    try:
        state = retrying(_poll, client, job)
    except RetryError:
        raise BackupTimeoutError(
            f"Backup of {target} did not finish within {polling.max_wait:.0f}s "
            f"(workflow {job.workflow_id} may still be running on the platform)"
        ) from None
    except KeyboardInterrupt:
        raise BackupCancelledError(
            f"Cancelled while waiting for the backup of {target} "
            f"(workflow {job.workflow_id} keeps running on the platform)"
        ) from None
    except RemoteAPIError as e:
        raise BackupCreationError(f"Could not check backup status for {target}: {e}") from e

    if state is BackupState.FAILED:
        raise BackupCreationError(f"Backup of {target} failed (workflow {job.workflow_id})")
    return job


def backup_environment(
    client: PantheonClient,
    environment: EnvironmentDescriptor,
    elements: Iterable[Element] = ELEMENT_ORDER,
    polling: PollingConfig | None = None,
) -> BackupJob:
    """Create a backup and wait for it, showing a spinner with elapsed time."""
    job = create_backup(client, environment, elements)
    text = f"Backing up {environment.label} ({environment.environment_name})..."
    with console.status(text, spinner="dots") as status:
        await_completion(
            client, job, polling, on_wait=lambda elapsed: status.update(f"{text} {elapsed:.0f}s")
        )
    logger.info(
        "Finished creating a backup of the {} environment for the {} site",
        environment.environment_name,
        environment.label,
    )
    return job


def _is_finished(entry: dict[str, Any]) -> bool:
    """Catalog entries are finished once they have a non-empty archive."""
    if not entry.get("filename"):
        return False
    if not int(entry.get("size") or 0):
        return False
    return bool(entry.get("finish_time") or entry.get("timestamp"))


def _created_at(entry: dict[str, Any]) -> datetime:
    stamp = entry.get("timestamp") or entry.get("finish_time") or 0
    return datetime.fromtimestamp(float(stamp), tz=UTC)


def find_latest(
    client: PantheonClient, environment: EnvironmentDescriptor, element: Element
) -> BackupRecord:
    """Find the newest finished backup of one element.

    The API lists backups newest first; the first finished match wins.

    Raises:
        NoBackupFoundError: If the environment has no finished backup of element
    """
    entries = client.list_backups(environment.site_id, environment.environment_name)
    finished = [
        e for e in entries if e.get("archive_type") == element.value and _is_finished(e)
    ]
    if not finished:
        raise NoBackupFoundError(element, environment.identifier)

    latest = finished[0]
    folder = str(latest.get("folder") or str(latest.get("id", "")).rsplit("_", 1)[0])
    url = client.get_backup_url(
        environment.site_id, environment.environment_name, folder, element
    )
    size = latest.get("size")
    record = BackupRecord(
        element=element,
        created_at=_created_at(latest),
        download_url=url,
        filename=str(latest.get("filename", "")),
        folder=folder,
        size=int(size) if size is not None else None,
    )
    logger.debug("Latest {} backup for {}: {}", element.value, environment.identifier, record.filename)
    return record


def download_backup(client: PantheonClient, record: BackupRecord, directory: Path) -> Path:
    """Download a located backup into a local directory.

    Returns:
        Path of the written archive
    """
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / (record.filename or f"{record.folder or 'backup'}_{record.element.value}")
    client.download(record.download_url, target)
    logger.info("Saved {} backup to {}", record.element.value, target)
    return target
