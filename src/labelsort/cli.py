"""Command line interface for the labelsort project."""

from __future__ import annotations

import difflib
import logging
from pathlib import Path
from typing import Any, Iterable

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from labelsort.codes import describe_patterns, enabled_patterns
from labelsort.config import ConfigError, ConfigManager, LabelsortConfig, resolve_with_precedence
from labelsort.config.resolver import assign_path
from labelsort.grouping.matcher import available_strategies
from labelsort.naming import AllocationError, ResequenceReport
from labelsort.pool import GroupingService, SweepResult
from labelsort.state import (
    ItemRecord,
    MissingStateError,
    StateError,
    StateRepository,
    UnknownItemError,
)

console = Console()
LOGGER = logging.getLogger(__name__)


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

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _dispatch_error(exc: Exception, *, action: str, json_output: bool) -> None:
    """Map an exception raised by a command body onto ``_handle_cli_error``."""
    if isinstance(exc, ConfigError):
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    if isinstance(exc, (StateError, UnknownItemError)):
        _handle_cli_error(str(exc), code="state_error", json_output=json_output, original=exc)
    if isinstance(exc, AllocationError):
        _handle_cli_error(str(exc), code="allocation_error", json_output=json_output, original=exc)
    if isinstance(exc, click.ClickException):
        _handle_cli_error(str(exc), code="cli_error", json_output=json_output, original=exc)
    _handle_cli_error(
        f"Unexpected error while {action}: {exc}",
        code="internal_error",
        json_output=json_output,
        details={"exception": type(exc).__name__},
        original=exc,
    )


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands.

    Args:
        command: Command name to include in the summary.
        root: Target root path relevant to the command.
        metrics: Ordered mapping of metric names to values.

    Returns:
        str: Rich-formatted summary string.
    """

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {root}: {parts}.[/green]"


def _resolve_output_modes(
    ctx: click.Context,
    config: LabelsortConfig,
    *,
    json_output: bool,
    quiet: bool,
    summary_mode: bool,
) -> tuple[bool, bool]:
    """Combine CLI flags with configured defaults.

    Returns:
        tuple[bool, bool]: Effective ``(quiet, summary_only)`` flags.

    Raises:
        click.ClickException: If the requested modes conflict.
    """
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


def _configure_logging(config: LabelsortConfig, verbose: bool) -> None:
    """Route library logging through rich at the configured level."""
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level.upper(), None)
    if not isinstance(level, int):
        raise ConfigError(f"Unknown logging level: {config.logging.level!r}")
    root_logger = logging.getLogger("labelsort")
    root_logger.setLevel(level)
    if not any(isinstance(handler, RichHandler) for handler in root_logger.handlers):
        root_logger.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
        )


def _load_config(verbose: bool = False) -> LabelsortConfig:
    manager = ConfigManager()
    manager.ensure_exists()
    config = manager.load()
    _configure_logging(config, verbose)
    return config


def _open_pool(
    path: str, config: LabelsortConfig, *, create: bool = False
) -> tuple[Path, StateRepository, GroupingService]:
    """Load the pool rooted at ``path`` and wrap it in a grouping service."""
    root = Path(path).expanduser().resolve()
    repository = StateRepository()
    if create:
        state = repository.load_or_create(root)
    else:
        try:
            state = repository.load(root)
        except MissingStateError as exc:
            raise click.ClickException(
                f"No labelsort state found for {root}. Run `labelsort add {root} FILE...` first."
            ) from exc
    return root, repository, GroupingService(state, config)


def _find_item(service: GroupingService, reference: str) -> ItemRecord:
    """Resolve ``reference`` as an item id or a unique original file name."""
    try:
        return service.get(reference)
    except UnknownItemError:
        pass
    matches = [item for item in service.items() if item.origin == reference]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise click.ClickException(
            f"{reference} matches {len(matches)} items; use an item id instead."
        )
    raise click.ClickException(f"No item matches {reference}.")


def _parse_color_option(value: str) -> dict[str, str]:
    """Parse ``HEX[:NAME]`` into a raw color sample mapping."""
    color_value, _, color_name = value.partition(":")
    if not color_value.strip():
        raise click.BadParameter(f"Color must look like HEX[:NAME], got {value!r}.")
    return {"color_value": color_value.strip(), "color_name": color_name.strip()}


def _item_payload(item: ItemRecord) -> dict[str, Any]:
    return item.model_dump(mode="json")


def _report_payload(report: ResequenceReport) -> dict[str, Any]:
    return report.model_dump(mode="json") | {"partial": report.partial}


def _emit_reports(
    reports: Iterable[ResequenceReport], *, quiet: bool, summary_only: bool
) -> None:
    for report in reports:
        for change in report.changes:
            _emit_message(
                f"[cyan]{report.group}[/cyan]: {change.previous or '-'} -> {change.current}",
                mode="detail",
                quiet=quiet,
                summary_only=summary_only,
            )
        for failure in report.failures:
            _emit_message(
                f"[yellow]Could not persist {failure.name} for {failure.item_id}: "
                f"{failure.error}[/yellow]",
                mode="warning",
                quiet=quiet,
                summary_only=summary_only,
            )


def _describe_item(item: ItemRecord) -> str:
    name = item.assigned_name or "-"
    group = item.group or "-"
    line = f"{item.origin} [{item.status}] group={group} name={name}"
    if item.group_confidence:
        line += f" confidence={item.group_confidence:.2f}"
    if item.match_reason:
        line += f" ({item.match_reason})"
    return line


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="labelsort")
def cli() -> None:
    """Labelsort groups photographed samples by code and names them consistently."""


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing new items.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def add(
    ctx: click.Context,
    path: str,
    files: tuple[str, ...],
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Register FILES as new items of the pool rooted at PATH.

    Capture times are taken from file modification times.
    """
    try:
        config = _load_config(verbose)
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        root, repository, service = _open_pool(path, config, create=True)
        added = [service.register_file(Path(file).resolve()) for file in files]
        repository.save(root, service.state)

        if json_output:
            console.print_json(data={"items": [_item_payload(item) for item in added]})
            return

        for item in added:
            _emit_message(
                f"[green]Added {item.origin} as {item.id}[/green]",
                mode="detail",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        _emit_message(
            _format_summary_line(
                "Add", root, {"added": len(added), "items": len(service.state.items)}
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="adding items", json_output=json_output)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.argument("item")
@click.option("--code", type=str, help="Code read from the sample label.")
@click.option("--description", type=str, help="Short description of the photographed object.")
@click.option(
    "--color",
    "colors",
    multiple=True,
    help="Dominant color as HEX[:NAME]; repeat for up to three colors.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the result.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def extract(
    ctx: click.Context,
    path: str,
    item: str,
    code: str | None,
    description: str | None,
    colors: tuple[str, ...],
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Record an extraction result for ITEM and group it.

    ITEM may be an item id or the original file name.
    """
    try:
        config = _load_config(verbose)
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        root, repository, service = _open_pool(path, config)
        record = _find_item(service, item)
        parsed_colors = [_parse_color_option(value) for value in colors]

        service.mark_extracting(record.id)
        outcome = service.on_extraction_result(record.id, code, description, parsed_colors)
        repository.save(root, service.state)

        if json_output:
            console.print_json(
                data={
                    "item": _item_payload(outcome.item),
                    "match": outcome.match.model_dump(mode="json") if outcome.match else None,
                    "resequenced": [_report_payload(report) for report in outcome.reports],
                }
            )
            return

        if outcome.item.status == "invalid-group":
            _emit_message(
                f"[yellow]Code {outcome.item.code} does not match a known format.[/yellow]",
                mode="warning",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        _emit_message(
            _describe_item(outcome.item),
            mode="detail",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
        _emit_reports(outcome.reports, quiet=quiet_enabled, summary_only=summary_only)
        _emit_message(
            _format_summary_line(
                "Extract",
                root,
                {
                    "status": outcome.item.status,
                    "group": outcome.item.group or "-",
                    "renamed": sum(len(report.changes) for report in outcome.reports),
                },
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="recording the extraction", json_output=json_output)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.argument("item")
@click.argument("group", required=False, default="")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the result.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def group(
    ctx: click.Context,
    path: str,
    item: str,
    group: str,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Set the group of ITEM by hand; omit GROUP to clear it."""
    try:
        config = _load_config(verbose)
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        root, repository, service = _open_pool(path, config)
        record = _find_item(service, item)
        outcome = service.on_manual_group_edit(record.id, group)
        repository.save(root, service.state)

        if json_output:
            console.print_json(
                data={
                    "item": _item_payload(outcome.item),
                    "resequenced": [_report_payload(report) for report in outcome.reports],
                }
            )
            return

        _emit_message(
            _describe_item(outcome.item),
            mode="detail",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
        _emit_reports(outcome.reports, quiet=quiet_enabled, summary_only=summary_only)
        _emit_message(
            _format_summary_line(
                "Group",
                root,
                {
                    "status": outcome.item.status,
                    "renamed": sum(len(report.changes) for report in outcome.reports),
                },
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="editing the group", json_output=json_output)


@cli.command("rename-group")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.argument("old")
@click.argument("new")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the result.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def rename_group(
    ctx: click.Context,
    path: str,
    old: str,
    new: str,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Move every member of group OLD into group NEW."""
    try:
        config = _load_config(verbose)
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        root, repository, service = _open_pool(path, config)
        outcomes = service.rename_group(old, new)
        if not outcomes:
            raise click.ClickException(f"Group {old} has no members.")
        repository.save(root, service.state)

        if json_output:
            console.print_json(data={"items": [_item_payload(o.item) for o in outcomes]})
            return

        for outcome in outcomes:
            _emit_message(
                _describe_item(outcome.item),
                mode="detail",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        _emit_message(
            _format_summary_line("Rename", root, {"from": old, "to": new, "items": len(outcomes)}),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="renaming the group", json_output=json_output)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option(
    "--strategy",
    type=click.Choice(list(available_strategies())),
    help="Matching strategy; defaults to matching.inference_strategy.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing inferred groups.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def infer(
    ctx: click.Context,
    path: str,
    strategy: str | None,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Infer groups for ungrouped items from nearby grouped items.

    The strict strategy sweeps every ungrouped item and leaves misses
    untouched. The weighted strategy sweeps items awaiting a group and marks
    misses as unmatched.
    """
    try:
        config = _load_config(verbose)
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        root, repository, service = _open_pool(path, config)
        chosen = strategy or config.matching.inference_strategy
        result: SweepResult
        if chosen == "weighted":
            result = service.run_auto_grouping(strategy=chosen)
        else:
            result = service.run_inference(strategy=chosen)
        repository.save(root, service.state)

        if json_output:
            console.print_json(
                data={
                    "strategy": result.strategy,
                    "examined": result.examined,
                    "cancelled": result.cancelled,
                    "matches": {
                        item_id: match.model_dump(mode="json")
                        for item_id, match in result.matches.items()
                    },
                    "items": [
                        _item_payload(service.get(item_id)) for item_id in result.matches
                    ],
                }
            )
            return

        for item_id in result.matches:
            _emit_message(
                _describe_item(service.get(item_id)),
                mode="detail",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        _emit_reports(result.reports, quiet=quiet_enabled, summary_only=summary_only)
        _emit_message(
            _format_summary_line(
                "Infer",
                root,
                {
                    "strategy": result.strategy,
                    "examined": result.examined,
                    "grouped": len(result.matches),
                },
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="inferring groups", json_output=json_output)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.argument("group", required=False)
@click.option("--all", "all_groups", is_flag=True, help="Re-sequence every group.")
@click.option(
    "--repair",
    is_flag=True,
    help="Resolve duplicate names left in the pool before re-sequencing.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing name changes.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def resequence(
    ctx: click.Context,
    path: str,
    group: str | None,
    all_groups: bool,
    repair: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Recompute the names of every member of GROUP in capture order."""
    try:
        config = _load_config(verbose)
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        if not group and not all_groups and not repair:
            raise click.ClickException("Provide GROUP, --all, or --repair.")
        root, repository, service = _open_pool(path, config)

        reports: list[ResequenceReport] = []
        if repair:
            reports.extend(service.resolve_duplicate_names())
        if all_groups:
            groups = dict.fromkeys(item.group for item in service.items() if item.group)
            reports.extend(service.resequence_group(name) for name in groups if name)
        elif group:
            reports.append(service.resequence_group(group))
        repository.save(root, service.state)

        if json_output:
            console.print_json(data={"reports": [_report_payload(report) for report in reports]})
            return

        _emit_reports(reports, quiet=quiet_enabled, summary_only=summary_only)
        _emit_message(
            _format_summary_line(
                "Resequence",
                root,
                {
                    "groups": len(reports),
                    "renamed": sum(len(report.changes) for report in reports),
                    "failures": sum(len(report.failures) for report in reports),
                },
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="re-sequencing names", json_output=json_output)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--json", "json_output", is_flag=True, help="Emit status information as JSON.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def status(
    ctx: click.Context,
    path: str,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Display the items, groups, and names of the pool rooted at PATH.

    Args:
        ctx: Click context for parameter source inspection.
        path: Root directory whose state should be inspected.
        json_output: When True, emit JSON instead of textual output.
        summary_mode: When True, restrict output to summary lines and warnings.
        quiet: When True, suppress non-error output entirely.
    """
    try:
        config = _load_config()
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        root, _, service = _open_pool(path, config)
        items = service.items()
        problems = service.check_consistency()

        counts: dict[str, int] = {"items": len(items)}
        counts["grouped"] = sum(1 for item in items if item.is_grouped)
        counts["groups"] = len({item.group for item in items if item.is_grouped})
        counts["inferred"] = sum(1 for item in items if item.status == "matched")
        counts["invalid"] = sum(1 for item in items if item.status == "invalid-group")

        if json_output:
            console.print_json(
                data={
                    "root": str(root),
                    "created_at": service.state.created_at.isoformat(),
                    "updated_at": service.state.updated_at.isoformat(),
                    "counts": counts,
                    "problems": problems,
                    "items": [_item_payload(item) for item in items],
                }
            )
            return

        table = Table(title=f"Pool for {root}")
        table.add_column("Item", overflow="fold")
        table.add_column("Captured")
        table.add_column("Group")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Confidence", justify="right")
        for item in items:
            table.add_row(
                item.origin,
                item.captured_at.strftime("%Y-%m-%d %H:%M:%S"),
                item.group or "-",
                item.assigned_name or "-",
                item.status,
                f"{item.group_confidence:.2f}",
            )
        _emit_message(table, mode="detail", quiet=quiet_enabled, summary_only=summary_only)

        for problem in problems:
            _emit_message(
                f"[yellow]{problem}[/yellow]",
                mode="warning",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        _emit_message(
            _format_summary_line("Status", root, counts),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="loading status", json_output=json_output)


@cli.command()
def codes() -> None:
    """List the code formats recognized as valid groups."""
    try:
        config = _load_config()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    patterns = enabled_patterns(config.codes.enabled_patterns)
    console.print(describe_patterns(patterns), markup=False)


@cli.group()
def config() -> None:
    """Manage labelsort configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Args:
        no_env: If True, ignore environment-derived overrides.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        config = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(config.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException(
            "KEY must specify a dotted path such as 'matching.window_seconds'."
        )

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        assign_path(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=LabelsortConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()

    # The timestamp line always changes; compare settings only.
    before_body = [line for line in before if not line.startswith("# Last updated:")]
    after_body = [line for line in after if not line.startswith("# Last updated:")]
    diff = list(
        difflib.unified_diff(
            before_body,
            after_body,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )

    if diff:
        console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    else:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an interactive editor session.

    Raises:
        click.ClickException: If edited content is invalid or cannot be saved.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")

    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=LabelsortConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(parsed)
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
