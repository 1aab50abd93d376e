"""Tests for siteclone.backups."""

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from siteclone.api import APIError, ErrorCategory, RemoteAPIError
from siteclone.backups import (
    await_completion,
    backup_environment,
    create_backup,
    download_backup,
    find_latest,
    workflow_state,
)
from siteclone.config import PollingConfig
from siteclone.models import (
    BackupCancelledError,
    BackupCreationError,
    BackupJob,
    BackupRecord,
    BackupState,
    BackupTimeoutError,
    Element,
    NoBackupFoundError,
)

from .conftest import catalog_entry, make_env


def _rejected() -> RemoteAPIError:
    return RemoteAPIError(
        APIError(
            category=ErrorCategory.INVALID_REQUEST,
            message="Request rejected (409): environment is locked",
            retryable=False,
            user_action="Check the environment state on the dashboard.",
            status_code=409,
        )
    )


class TestWorkflowState:
    """Tests for workflow_state mapping."""

    def test_succeeded(self) -> None:
        """Succeeded workflows are complete."""
        assert workflow_state({"result": "succeeded", "finished_at": 1}) is BackupState.COMPLETE

    def test_failed(self) -> None:
        """Finished workflows with another result failed."""
        assert workflow_state({"result": "failed", "finished_at": 1}) is BackupState.FAILED

    def test_finished_without_result(self) -> None:
        """A finish time without success means failure."""
        assert workflow_state({"finished_at": 1}) is BackupState.FAILED

    def test_running(self) -> None:
        """No result and no finish time means pending."""
        assert workflow_state({"active_description": "Exporting"}) is BackupState.PENDING


class TestCreateBackup:
    """Tests for create_backup."""

    def test_starts_whole_environment_backup(self, mock_client: MagicMock) -> None:
        """Defaults to backing up every element."""
        env = make_env()
        job = create_backup(mock_client, env)

        assert job.workflow_id == "wf-1"
        assert job.state is BackupState.PENDING
        assert job.target is env
        mock_client.start_backup.assert_called_once_with(
            env.site_id, "live", (Element.DATABASE, Element.CODE, Element.FILES)
        )

    def test_scoped_backup_in_canonical_order(self, mock_client: MagicMock) -> None:
        """Scoped backups pass only the chosen elements, canonically ordered."""
        job = create_backup(mock_client, make_env(), [Element.FILES, Element.DATABASE])
        assert job.elements == (Element.DATABASE, Element.FILES)

    def test_emits_progress_notice(self, mock_client: MagicMock, log_messages: list[str]) -> None:
        """Announces the environment and site label."""
        create_backup(mock_client, make_env(label="Shop", environment_name="test"))
        assert any("Creating a backup of the test environment for the Shop site" in m for m in log_messages)

    def test_creation_failure(self, mock_client: MagicMock) -> None:
        """Platform refusal becomes BackupCreationError naming the environment."""
        mock_client.start_backup.side_effect = _rejected()
        with pytest.raises(BackupCreationError, match="site1.live"):
            create_backup(mock_client, make_env())


class TestAwaitCompletion:
    """Tests for await_completion."""

    def test_returns_once_complete(self, mock_client: MagicMock, fast_polling: PollingConfig) -> None:
        """Polls until the workflow succeeds."""
        mock_client.get_workflow.side_effect = [
            {},
            {"active_description": "Exporting"},
            {"result": "succeeded", "finished_at": 1},
        ]
        job = BackupJob(target=make_env(), workflow_id="wf-9")

        result = await_completion(mock_client, job, fast_polling)

        assert result.state is BackupState.COMPLETE
        assert mock_client.get_workflow.call_count == 3
        mock_client.get_workflow.assert_called_with(job.target.site_id, "wf-9")

    def test_failed_workflow(self, mock_client: MagicMock, fast_polling: PollingConfig) -> None:
        """A failed workflow raises BackupCreationError."""
        mock_client.get_workflow.return_value = {"result": "failed", "finished_at": 1}
        job = BackupJob(target=make_env(), workflow_id="wf-9")

        with pytest.raises(BackupCreationError, match="wf-9"):
            await_completion(mock_client, job, fast_polling)
        assert job.state is BackupState.FAILED

    def test_times_out(self, mock_client: MagicMock) -> None:
        """A job that never finishes raises BackupTimeoutError."""
        mock_client.get_workflow.return_value = {}
        polling = PollingConfig(initial_interval=0, max_interval=0, max_wait=0.05)
        job = BackupJob(target=make_env(), workflow_id="wf-9")

        with pytest.raises(BackupTimeoutError, match="site1.live"):
            await_completion(mock_client, job, polling)

    def test_backoff_grows_and_is_capped(self, mock_client: MagicMock) -> None:
        """Sleep intervals grow exponentially up to max_interval."""
        mock_client.get_workflow.side_effect = [{}] * 5 + [{"result": "succeeded"}]
        polling = PollingConfig(initial_interval=1, max_interval=4, max_wait=3600)
        job = BackupJob(target=make_env(), workflow_id="wf-9")

        with patch("time.sleep") as sleep:
            await_completion(mock_client, job, polling)

        waits = [c.args[0] for c in sleep.call_args_list]
        assert waits == [1, 2, 4, 4, 4]

    def test_last_wait_capped_to_deadline(self, mock_client: MagicMock) -> None:
        """No sleep runs past max_wait; the final check lands on the deadline."""
        mock_client.get_workflow.return_value = {}
        polling = PollingConfig(initial_interval=1, max_interval=4, max_wait=6)
        job = BackupJob(target=make_env(), workflow_id="wf-9")
        clock = [100.0]

        def advance(seconds: float) -> None:
            clock[0] += seconds

        with (
            patch("time.monotonic", side_effect=lambda: clock[0]),
            patch("time.sleep", side_effect=advance) as sleep,
            pytest.raises(BackupTimeoutError),
        ):
            await_completion(mock_client, job, polling)

        waits = [c.args[0] for c in sleep.call_args_list]
        assert waits == [1, 2, 3]
        assert clock[0] - 100.0 == 6

    def test_on_wait_reports_elapsed(self, mock_client: MagicMock) -> None:
        """on_wait receives the elapsed seconds before every sleep."""
        mock_client.get_workflow.side_effect = [{}, {}, {"result": "succeeded"}]
        polling = PollingConfig(initial_interval=1, max_interval=4, max_wait=60)
        job = BackupJob(target=make_env(), workflow_id="wf-9")
        clock = [0.0]
        elapsed: list[float] = []

        with (
            patch("time.monotonic", side_effect=lambda: clock[0]),
            patch("time.sleep", side_effect=lambda s: clock.__setitem__(0, clock[0] + s)),
        ):
            await_completion(mock_client, job, polling, on_wait=elapsed.append)

        assert elapsed == [0, 1]

    def test_interrupt_cancels(self, mock_client: MagicMock, fast_polling: PollingConfig) -> None:
        """Ctrl+C while polling raises BackupCancelledError."""
        mock_client.get_workflow.side_effect = KeyboardInterrupt
        job = BackupJob(target=make_env(), workflow_id="wf-9")

        with pytest.raises(BackupCancelledError, match="wf-9"):
            await_completion(mock_client, job, fast_polling)

    def test_status_error(self, mock_client: MagicMock, fast_polling: PollingConfig) -> None:
        """Errors reading status are fatal."""
        mock_client.get_workflow.side_effect = _rejected()
        job = BackupJob(target=make_env(), workflow_id="wf-9")

        with pytest.raises(BackupCreationError, match="status"):
            await_completion(mock_client, job, fast_polling)


class TestBackupEnvironment:
    """Tests for backup_environment."""

    def test_creates_and_waits(
        self, mock_client: MagicMock, fast_polling: PollingConfig, log_messages: list[str]
    ) -> None:
        """Creates, awaits and reports completion."""
        job = backup_environment(mock_client, make_env(), polling=fast_polling)

        assert job.state is BackupState.COMPLETE
        assert any("Finished creating a backup of the live environment" in m for m in log_messages)

    def test_spinner_shows_elapsed_seconds(self, mock_client: MagicMock, fast_polling: PollingConfig) -> None:
        """The spinner text names the environment and counts elapsed seconds."""
        mock_client.get_workflow.side_effect = [{}, {"result": "succeeded"}]

        with patch("siteclone.backups.console") as console:
            backup_environment(mock_client, make_env(), polling=fast_polling)

        assert console.status.call_args.args[0] == "Backing up Site One (live)..."
        status = console.status.return_value.__enter__.return_value
        status.update.assert_called_once()
        assert status.update.call_args.args[0].startswith("Backing up Site One (live)... ")
        assert status.update.call_args.args[0].endswith("s")


class TestFindLatest:
    """Tests for find_latest."""

    def test_picks_first_finished_entry(self, mock_client: MagicMock) -> None:
        """The first finished entry for the element wins."""
        mock_client.list_backups.return_value = [
            catalog_entry("database", 1700000300, finished=False, size=0),
            catalog_entry("code", 1700000200),
            catalog_entry("database", 1700000200),
            catalog_entry("database", 1700000100),
        ]
        env = make_env()

        record = find_latest(mock_client, env, Element.DATABASE)

        assert record.element is Element.DATABASE
        assert record.folder == "1700000200_backup"
        assert record.created_at == datetime.fromtimestamp(1700000200, tz=UTC)
        assert record.download_url == "https://backups.example.com/archive?sig=abc"
        assert record.size == 1024
        mock_client.get_backup_url.assert_called_once_with(
            env.site_id, "live", "1700000200_backup", Element.DATABASE
        )

    def test_no_finished_backups(self, mock_client: MagicMock) -> None:
        """No finished backup of the element raises NoBackupFoundError naming it."""
        mock_client.list_backups.return_value = [
            catalog_entry("code", 1700000200),
            catalog_entry("files", 1700000300, finished=False, size=0),
        ]
        with pytest.raises(NoBackupFoundError, match="files") as exc_info:
            find_latest(mock_client, make_env(), Element.FILES)
        assert "site1.live" in str(exc_info.value)
        mock_client.get_backup_url.assert_not_called()

    def test_empty_catalog(self, mock_client: MagicMock) -> None:
        """An empty catalog raises NoBackupFoundError."""
        with pytest.raises(NoBackupFoundError, match="database"):
            find_latest(mock_client, make_env(), Element.DATABASE)

    def test_folder_derived_from_id(self, mock_client: MagicMock) -> None:
        """Entries without folder fall back to the catalog key."""
        entry = catalog_entry("code", 1700000200)
        del entry["folder"]
        mock_client.list_backups.return_value = [entry]

        record = find_latest(mock_client, make_env(), Element.CODE)

        assert record.folder == "1700000200_backup"


class TestDownloadBackup:
    """Tests for download_backup."""

    def test_downloads_into_directory(self, mock_client: MagicMock, tmp_path: Path) -> None:
        """Creates the directory and names the file after the archive."""
        record = BackupRecord(
            element=Element.CODE,
            created_at=datetime(2024, 1, 1, tzinfo=UTC),
            download_url="https://backups.example.com/code",
            filename="code.tar.gz",
        )
        target_dir = tmp_path / "out"

        path = download_backup(mock_client, record, target_dir)

        assert path == target_dir / "code.tar.gz"
        assert target_dir.is_dir()
        mock_client.download.assert_called_once_with("https://backups.example.com/code", path)
