"""siteclone CLI - clone code, database and files between site environments."""

import json
from pathlib import Path
from typing import Any

import fire
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from siteclone import __version__, api
from siteclone.backups import download_backup
from siteclone.clone import ClonePlanResult, clone
from siteclone.config import TOKEN_ENV_VAR, get_config_path, load_config
from siteclone.logging import configure_logging, logger
from siteclone.models import BackupCancelledError, BackupError, CloneRequest, SiteCloneError

console = Console()


class SiteCloneCLI:
    """Clone code, database and files from one site environment to another.

    Examples:
        siteclone clone my-site.live my-site.test
        siteclone clone my-site.live other-site.dev --no-files
        siteclone --yes clone my-site.live my-site.test --download-dir ./backups
        siteclone --json-output clone my-site.live my-site.test --no-backup
        siteclone --quiet clone my-site.live my-site.test
    """

    def __init__(
        self, verbose: bool = False, quiet: bool = False, json_output: bool = False, yes: bool = False
    ) -> None:
        """Initialize CLI with options.

        Args:
            verbose: Enable debug logging
            quiet: Only log warnings and errors
            json_output: Output results as JSON instead of human-readable text
            yes: Answer yes to confirmation prompts (never skips hard checks)
        """
        configure_logging(verbose, quiet)
        self._json = json_output
        self._yes = yes
        logger.debug("siteclone initialized with verbose={}, json={}, yes={}", verbose, json_output, yes)

    def _output(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Output result as JSON or print nothing (human output already printed)."""
        if self._json:
            print(json.dumps(data, indent=2))
        return data if self._json else None

    def _confirm(self, question: str) -> bool:
        if self._yes:
            logger.info("{} yes (--yes)", question)
            return True
        return bool(Confirm.ask(question, console=console, default=False))

    def version(self) -> None:
        """Show siteclone version."""
        if self._json:
            self._output({"version": __version__})
        else:
            console.print(f"siteclone {__version__}")

    def config(self) -> dict[str, Any] | None:
        """Show configuration path and content (machine token hidden).

        Example:
            siteclone config
        """
        config_path = get_config_path()

        if self._json:
            result: dict[str, Any] = {
                "config_path": str(config_path),
                "config_exists": config_path.exists(),
            }
            return self._output(result)

        console.print(f"[bold]Config path:[/bold] {config_path}")
        console.print()
        if config_path.exists():
            console.print("[green]Config file exists[/green]")
            console.print()
            for line in config_path.read_text().strip().split("\n"):
                if "token" in line.lower() and "=" in line:
                    key = line.split("=")[0]
                    console.print(f"  {key}= [dim]<hidden>[/dim]")
                else:
                    console.print(f"  {line}")
        else:
            console.print("[red]Config file not found[/red]")
            console.print()
            console.print("Create it with:")
            console.print("  machine_token = 'your-machine-token'")
            console.print(f"Or export {TOKEN_ENV_VAR}.")
        return None

    def clone(
        self,
        source: str,
        destination: str,
        no_db: bool = False,
        no_files: bool = False,
        no_code: bool = False,
        no_backup: bool = False,
        download_dir: str | None = None,
    ) -> dict[str, Any] | None:
        """Copy the code, db and files from a source environment to a destination.

        Args:
            source: Source as <site>.<env> (site machine name or UUID)
            destination: Destination as <site>.<env>
            no_db: Skip cloning the database
            no_files: Skip cloning the (media) files
            no_code: Skip cloning the code
            no_backup: Skip making fresh backups on both source and destination
            download_dir: Download the located source backups into this directory

        Example:
            siteclone clone my-site.live my-site.test
            siteclone clone my-site.live my-site.test --no-db --no-files
        """
        request = CloneRequest(
            source=source,
            destination=destination,
            skip_database=bool(no_db),
            skip_files=bool(no_files),
            skip_code=bool(no_code),
            skip_backup=bool(no_backup),
        )

        try:
            config = load_config()
        except FileNotFoundError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1) from None

        try:
            with api.get_client(config) as client:
                result = clone(
                    client,
                    request,
                    confirm=self._confirm,
                    polling=config.polling,
                    scope_backups=config.scope_backups,
                )
                if download_dir and not result.aborted:
                    if not result.source_backups:
                        logger.info("Nothing to download: no backups were located")
                    for record in result.source_backups.values():
                        download_backup(client, record, Path(download_dir))
        except BackupCancelledError as e:
            console.print(f"[yellow]{e}[/yellow]")
            raise SystemExit(130) from None
        except SiteCloneError as e:
            if isinstance(e, BackupError) and e.side:
                console.print(f"[red]The {e.side} backup failed: {e}[/red]")
            else:
                console.print(f"[red]Error: {e}[/red]")
            raise SystemExit(1) from None

        if self._json:
            return self._output(result.to_dict())

        self._print_result(result)
        return None

    def copy(
        self,
        source: str,
        destination: str,
        no_db: bool = False,
        no_files: bool = False,
        no_code: bool = False,
        no_backup: bool = False,
        download_dir: str | None = None,
    ) -> dict[str, Any] | None:
        """Alias for clone.

        Example:
            siteclone copy my-site.live my-site.test
        """
        return self.clone(
            source,
            destination,
            no_db=no_db,
            no_files=no_files,
            no_code=no_code,
            no_backup=no_backup,
            download_dir=download_dir,
        )

    def _print_result(self, result: ClonePlanResult) -> None:
        if result.aborted:
            return
        if result.source_backups:
            table = Table(title=f"Latest backups of {result.source.identifier}")
            table.add_column("Element")
            table.add_column("Created")
            table.add_column("File")
            for element, record in result.source_backups.items():
                table.add_row(
                    element.value,
                    record.created_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
                    record.filename,
                )
            console.print(table)
            console.print("[bold]Download URLs:[/bold]")
            for element, record in result.source_backups.items():
                # Signed URLs must stay on one line to remain usable.
                console.print(
                    f"  {element.value}: {record.download_url}", soft_wrap=True, markup=False, highlight=False
                )
        console.print(
            f"[yellow]Restoring onto {result.destination.identifier} is not performed "
            "by siteclone; use the backups above.[/yellow]"
        )


def main() -> None:
    """CLI entry point."""
    fire.Fire(SiteCloneCLI)


if __name__ == "__main__":
    main()
