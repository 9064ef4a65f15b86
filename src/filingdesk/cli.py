"""Command line interface for FilingDesk."""

from __future__ import annotations

import asyncio
import difflib
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from filingdesk.config import (
    ConfigError,
    ConfigManager,
    FilingDeskConfig,
    redact,
    resolve_with_precedence,
)
from filingdesk.events import Notice
from filingdesk.jobs import JobOutcome, UploadFile
from filingdesk.linking import LinkResult, ManualSelection
from filingdesk.logs import configure_logging
from filingdesk.registry import filter_documents, unified_items
from filingdesk.state import RecentDirectoryRepository, StateError
from filingdesk.state.models import Document
from filingdesk.workspace import Workspace

console = Console()

T = TypeVar("T")

_NOTICE_STYLES = {"info": "cyan", "success": "green", "warning": "yellow", "error": "red"}


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """
    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool) -> None:
    """Print ``message`` unless quiet mode hides it.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (``detail``, ``warning``, or ``error``).
        quiet: Whether quiet mode is active.
    """
    if quiet and mode != "error":
        return
    console.print(message)


def _load_config() -> FilingDeskConfig:
    manager = ConfigManager()
    try:
        config = manager.load()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(config.logging)
    return config


def _recent_repository(config: FilingDeskConfig) -> RecentDirectoryRepository:
    return RecentDirectoryRepository(
        Path(config.recent.path),
        workspace_id=config.api.workspace_id,
        max_entries=config.recent.max_entries,
    )


def _open_workspace(config: FilingDeskConfig) -> Workspace:
    """Create the workspace used by commands; tests replace this factory."""
    return Workspace.from_config(config, recent=_recent_repository(config))


def _run(
    config: FilingDeskConfig,
    action: Callable[[Workspace], Awaitable[T]],
    *,
    quiet: bool,
) -> T:
    """Run ``action`` against a fresh workspace, printing its notices."""

    def _print_notice(notice: Notice) -> None:
        style = _NOTICE_STYLES.get(notice.level, "white")
        mode = "error" if notice.level == "error" else "detail"
        _emit_message(f"[{style}]{notice.message}[/{style}]", mode=mode, quiet=quiet)

    async def _session() -> T:
        workspace = _open_workspace(config)
        workspace.bus.subscribe(Notice, _print_notice)
        async with workspace:
            return await action(workspace)

    return asyncio.run(_session())


def _format_time(value: Any) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M") if value else "-"


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"


def _document_row(document: Document) -> dict[str, Any]:
    return document.model_dump(mode="json", by_alias=True)


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """
    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="filingdesk")
def cli() -> None:
    """FilingDesk organizes DRHP/RHP filings into company directories."""


@cli.command()
@click.option(
    "--sort",
    type=click.Choice(["alphabetical", "lastModified"]),
    help="Sort order (defaults to catalog.default_sort).",
)
@click.option("--search", type=str, help="Case-insensitive name filter.")
@click.option(
    "--bucket",
    type=click.Choice(["today", "last7", "last15", "last30", "last60"]),
    help="Only show directories active within this window.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit directories as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
def dirs(
    sort: Optional[str], search: Optional[str], bucket: Optional[str], json_output: bool, quiet: bool
) -> None:
    """List root directories with their document and comparison status."""
    config = _load_config()
    quiet = quiet or config.cli.quiet_default or json_output

    async def _action(workspace: Workspace) -> Any:
        snapshot = await workspace.refresh()
        if snapshot is None:
            return None
        return [
            (directory, workspace.directory_aggregate(directory.id))
            for directory in workspace.list_directories(
                sort=sort, search=search, bucket=bucket  # type: ignore[arg-type]
            )
        ]

    rows = _run(config, _action, quiet=quiet)
    if rows is None:
        _handle_cli_error("Failed to load directories.", code="remote_error", json_output=json_output)
        return

    if json_output:
        payload = []
        for directory, aggregate in rows:
            entry = directory.model_dump(mode="json", by_alias=True)
            entry["aggregate"] = aggregate.model_dump(mode="json") if aggregate else None
            payload.append(entry)
        console.print_json(data={"directories": payload})
        return

    table = Table(title="Directories")
    table.add_column("Name", style="bold")
    table.add_column("ID", style="dim")
    table.add_column("DRHP")
    table.add_column("RHP")
    table.add_column("Linked")
    table.add_column("Reports", justify="right")
    table.add_column("Summaries", justify="right")
    table.add_column("Last activity")
    for directory, aggregate in rows:
        table.add_row(
            directory.name + (" [dim](shared)[/dim]" if directory.is_shared else ""),
            directory.id,
            _flag(bool(aggregate and aggregate.has_drhp)),
            _flag(bool(aggregate and aggregate.has_rhp)),
            _flag(bool(aggregate and aggregate.is_linked)),
            str(aggregate.report_count if aggregate else 0),
            str(aggregate.summary_count if aggregate else 0),
            _format_time(aggregate.most_recent_activity if aggregate else None),
        )
    _emit_message(table, mode="detail", quiet=quiet)


@cli.command()
@click.argument("directory_id")
@click.option("--search", type=str, help="Case-insensitive document name filter.")
@click.option(
    "--bucket",
    type=click.Choice(["today", "last7", "last15", "last30"]),
    help="Only show documents uploaded within this window.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit directory contents as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
def docs(
    directory_id: str, search: Optional[str], bucket: Optional[str], json_output: bool, quiet: bool
) -> None:
    """Show documents, summaries and reports of DIRECTORY_ID, newest first."""
    config = _load_config()
    quiet = quiet or config.cli.quiet_default

    contents = _run(
        config, lambda workspace: workspace.open_directory(directory_id), quiet=quiet or json_output
    )
    if contents is None:
        _handle_cli_error(
            f"Could not open directory {directory_id}.", code="not_found", json_output=json_output
        )
        return

    documents = filter_documents(contents.documents, search=search, bucket=bucket)  # type: ignore[arg-type]
    if json_output:
        console.print_json(
            data={
                "directoryId": directory_id,
                "documents": [_document_row(document) for document in documents],
                "summaries": [s.model_dump(mode="json", by_alias=True) for s in contents.summaries],
                "reports": [r.model_dump(mode="json", by_alias=True) for r in contents.reports],
            }
        )
        return

    table = Table(title=f"Directory {directory_id}")
    table.add_column("Kind")
    table.add_column("Title", style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Updated")
    for entry in unified_items(documents, contents.summaries, contents.reports):
        item = entry.item
        doc_type = (item.type or "-") if isinstance(item, Document) else "-"
        status = item.status if isinstance(item, Document) else "-"
        table.add_row(
            entry.item_type, entry.title, entry.id, doc_type, status, _format_time(entry.timestamp)
        )
    _emit_message(table, mode="detail", quiet=quiet)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--directory", "directory_id", type=str, help="Target directory id.")
@click.option(
    "--type",
    "doc_type",
    type=click.Choice(["DRHP", "RHP"], case_sensitive=False),
    help="Document type; inferred from the directory when omitted.",
)
@click.option(
    "--drhp",
    "drhp_id",
    type=str,
    help="Upload PATH as the RHP of this DRHP, in the DRHP's directory.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit the upload outcome as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
def upload(
    path: Path,
    directory_id: Optional[str],
    doc_type: Optional[str],
    drhp_id: Optional[str],
    json_output: bool,
    quiet: bool,
) -> None:
    """Upload PATH into a directory and wait until processing finishes."""
    config = _load_config()
    quiet = quiet or config.cli.quiet_default or json_output
    if drhp_id and (directory_id or (doc_type and doc_type.upper() != "RHP")):
        raise click.UsageError("--drhp cannot be combined with --directory or --type DRHP.")

    try:
        file = UploadFile.from_path(path)
    except OSError as exc:
        _handle_cli_error(
            f"Could not read {path}: {exc}", code="io_error", json_output=json_output, original=exc
        )
        return

    def _start(workspace: Workspace) -> Awaitable[JobOutcome]:
        if drhp_id:
            return workspace.upload_rhp_for(drhp_id, file)
        return workspace.upload(file, directory_id, doc_type)

    outcome = _run(config, _start, quiet=quiet)

    if json_output:
        console.print_json(
            data={
                "outcome": outcome.kind,
                "reason": outcome.reason,
                "phase": outcome.job.phase if outcome.job else None,
                "pollCount": outcome.job.poll_count if outcome.job else 0,
                "document": _document_row(outcome.document) if outcome.document else None,
            }
        )
    if outcome.kind in ("failed", "rejected", "needs_directory"):
        if json_output:
            raise SystemExit(1)
        raise click.ClickException(outcome.reason or f"Upload {outcome.kind}.")
    if outcome.kind == "duplicate" and outcome.document is not None and not json_output:
        _emit_message(
            f"Existing document: {outcome.document.name} ({outcome.document.id})",
            mode="warning",
            quiet=quiet,
        )


def _print_link_outcome(result: Any, *, quiet: bool) -> None:
    if isinstance(result, LinkResult):
        _emit_message(
            f"[green]Comparison ready:[/green] DRHP {result.drhp_id} / RHP {result.rhp_id}",
            mode="detail",
            quiet=quiet,
        )
        return
    if isinstance(result, ManualSelection):
        _emit_message(
            f"No automatic match in {result.directory_name}. Pick a document with "
            f"`filingdesk compare {result.document.id} --with ID`.",
            mode="warning",
            quiet=quiet,
        )
        if result.candidates:
            table = Table(title="Available for comparison")
            table.add_column("Name", style="bold")
            table.add_column("ID", style="dim")
            table.add_column("Type")
            for candidate in result.candidates:
                table.add_row(candidate.name, candidate.id, candidate.type or "-")
            _emit_message(table, mode="detail", quiet=quiet)


@cli.command()
@click.argument("document_id")
@click.option("--with", "target_id", type=str, help="Link with this document instead of searching.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
def compare(document_id: str, target_id: Optional[str], quiet: bool) -> None:
    """Link DOCUMENT_ID with its DRHP/RHP counterpart for comparison."""
    config = _load_config()
    quiet = quiet or config.cli.quiet_default

    if target_id:
        result: Any = _run(
            config,
            lambda workspace: workspace.select_for_compare(document_id, target_id),
            quiet=quiet,
        )
    else:
        result = _run(config, lambda workspace: workspace.compare_document(document_id), quiet=quiet)
    if result is None:
        raise click.ClickException("Comparison could not be prepared.")
    _print_link_outcome(result, quiet=quiet)


@cli.command("compare-dir")
@click.argument("directory_id")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
def compare_dir(directory_id: str, quiet: bool) -> None:
    """Compare the DRHP and RHP documents of DIRECTORY_ID."""
    config = _load_config()
    quiet = quiet or config.cli.quiet_default

    outcome = _run(config, lambda workspace: workspace.compare_directory(directory_id), quiet=quiet)
    if outcome is None:
        raise click.ClickException(f"Could not compare directory {directory_id}.")
    if outcome.kind in ("navigate", "linked"):
        _emit_message(
            f"[green]Comparison ready:[/green] DRHP {outcome.drhp_id} / RHP {outcome.rhp_id}",
            mode="detail",
            quiet=quiet,
        )
    elif outcome.kind == "prompt_upload":
        if outcome.drhp_id:
            command = f"filingdesk upload FILE --drhp {outcome.drhp_id}"
        else:
            command = (
                f"filingdesk upload FILE --directory {directory_id} --type {outcome.missing_type}"
            )
        _emit_message(
            f"Upload a {outcome.missing_type} document with `{command}`.",
            mode="warning",
            quiet=quiet,
        )
    elif outcome.kind == "manual" and outcome.manual is not None:
        _print_link_outcome(outcome.manual, quiet=quiet)


@cli.command()
@click.option("--clear", is_flag=True, help="Forget today's recent directories.")
@click.option("--json", "json_output", is_flag=True, help="Emit recent directories as JSON.")
def recent(clear: bool, json_output: bool) -> None:
    """Show directories opened today."""
    config = _load_config()
    repository = _recent_repository(config)
    try:
        if clear:
            repository.clear()
            console.print("[green]Recent directories cleared.[/green]")
            return
        entries = repository.list_recent()
    except StateError as exc:
        _handle_cli_error(str(exc), code="state_error", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data={"recent": [entry.model_dump(mode="json") for entry in entries]})
        return
    if not entries:
        console.print("[yellow]No directories opened today.[/yellow]")
        return
    table = Table(title="Recent directories")
    table.add_column("Name", style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Opened")
    for entry in entries:
        table.add_row(entry.name, entry.id, _format_time(entry.last_accessed))
    console.print(table)


@cli.group()
def config() -> None:
    """Manage FilingDesk configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(redact(effective), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


def _apply_overrides(manager: ConfigManager, overrides: dict[str, Any], *, label: str) -> None:
    """Validate ``overrides``, write them and print the resulting file diff.

    Args:
        manager: Manager owning the configuration file.
        overrides: Complete mapping to persist as the file contents.
        label: What changed, used in the confirmation message.

    Raises:
        click.ClickException: If the overrides do not form a valid configuration.
    """
    try:
        resolve_with_precedence(defaults=FilingDeskConfig(), file_overrides=overrides)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    before = manager.read_text().splitlines()
    manager.save(overrides)
    after = manager.read_text().splitlines()

    diff = [
        line
        for line in difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
        if not line.lstrip("+-").startswith("# Last updated:")
    ]
    if not any(line.startswith(("+", "-")) and not line.startswith(("+++", "---")) for line in diff):
        console.print("[yellow]No changes applied; configuration already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {label}.[/green]")


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'polling.interval_seconds'.")
    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    manager = ConfigManager()
    manager.ensure_exists()
    try:
        overrides = manager.load_file_overrides()
        _assign_nested(overrides, segments, parsed_value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    _apply_overrides(manager, overrides, label=".".join(segments))


@config.command("edit")
def config_edit() -> None:
    """Edit the configuration file in ``$EDITOR`` and save it once it validates."""
    manager = ConfigManager()
    manager.ensure_exists()

    edited = click.edit(manager.read_text(), extension=".yaml")
    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    try:
        overrides = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc
    if not isinstance(overrides, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")
    _apply_overrides(manager, overrides, label="configuration")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
