"""CLI adapter for ``lib_functions_discovery`` built on ``lib_cli_exit_tools``.

Purpose
-------
Expose trigger discovery and runtime config export on the command line so
deployment tooling and operators can use them without writing Python.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command that wires global traceback handling into
  ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata for quick diagnostics.
* :func:`cli_convert_key` – shows the env key a config key maps to.
* :func:`cli_discover` – prints the desired backend as JSON.
* :func:`cli_export_config` – writes one dotenv file per project.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
Outermost layer; it only talks to :mod:`lib_functions_discovery.core` and the
default adapters. ``lib_cli_exit_tools`` centralises the exit code strategy.
"""

from __future__ import annotations

import asyncio
import json
import shlex
import sys
from importlib import metadata
from pathlib import Path
from typing import Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from . import core
from .adapters.dotenv.writer import DotEnvFileWriter
from .adapters.file_loaders.structured import JSONFileLoader
from .adapters.runtime_config.files import FileConfigMaterializer
from .application.export import convert_key
from .domain.errors import DiscoveryError, KeyValidationError

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000
_DISTRIBUTION: Final[str] = "lib_functions_discovery"


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` when metadata is unavailable."""

    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Discover function triggers and export runtime config as dotenv files",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name=_DISTRIBUTION,
    message="lib_functions_discovery version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command configuring traceback handling for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        click.echo("lib_functions_discovery (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', _DISTRIBUTION)}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("convert-key", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("config_key")
@click.option("--prefix", default="", help="Prefix applied when the plain key is not a valid env key")
def cli_convert_key(config_key: str, prefix: str) -> None:
    """Print the environment variable key *config_key* maps to.

    Examples
    --------
    >>> from click.testing import CliRunner
    >>> result = CliRunner().invoke(cli, ["convert-key", "some-service.key"])
    >>> result.output.strip()
    'SOME_SERVICE_KEY'
    """

    try:
        click.echo(convert_key(config_key, prefix))
    except KeyValidationError as exc:
        raise click.ClickException(f"{config_key} => {exc.key} ({exc})") from exc


@cli.command("discover", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--project", "project_id", required=True, help="Project the resources belong to")
@click.option(
    "--source",
    "source_dir",
    type=click.Path(path_type=Path, exists=True, file_okay=False, dir_okay=True, resolve_path=True),
    required=True,
    help="Functions source directory handed to the trigger parser",
)
@click.option("--runtime", required=True, help="Runtime identifier stamped on every function (e.g. nodejs16)")
@click.option("--parser", default=None, help="Trigger parser command (overrides LIB_FUNCTIONS_DISCOVERY_TRIGGER_PARSER)")
@click.option("--default-region", default=None, help="Region for functions that do not declare any")
@click.option(
    "--config-file",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    default=None,
    help="JSON runtime config exposed to the parser as CLOUD_RUNTIME_CONFIG",
)
@click.option("--env", "env_pairs", multiple=True, help="KEY=VALUE environment variable (repeatable)")
@click.option("--timeout", type=float, default=None, help="Abort discovery after this many seconds")
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
def cli_discover(
    project_id: str,
    source_dir: Path,
    runtime: str,
    parser: Optional[str],
    default_region: Optional[str],
    config_file: Optional[Path],
    env_pairs: Sequence[str],
    timeout: Optional[float],
    indent: Optional[int],
) -> None:
    """Discover function triggers and print the desired backend as JSON."""

    settings = _override_settings(core.load_settings(), parser=parser, default_region=default_region)
    config_values = JSONFileLoader().load(str(config_file)) if config_file is not None else {}
    try:
        backend = asyncio.run(
            core.discover(
                project_id,
                str(source_dir),
                runtime,
                config_values=config_values,
                envs=_parse_env_pairs(env_pairs),
                settings=settings,
                timeout=timeout,
            )
        )
    except DiscoveryError as exc:
        raise _discovery_failure(exc) from exc
    click.echo(json.dumps(backend.to_dict(), indent=indent))


@cli.command("export-config", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option(
    "--project",
    "project_refs",
    multiple=True,
    required=True,
    help="PROJECT_ID or PROJECT_ID:ALIAS to export (repeatable)",
)
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path, exists=True, file_okay=False, dir_okay=True),
    required=True,
    help="Directory holding <project>.json|yaml|toml runtime config snapshots",
)
@click.option(
    "--destination",
    type=click.Path(path_type=Path, file_okay=False, dir_okay=True),
    default=Path("."),
    show_default=True,
    help="Functions source directory receiving the .env.<alias> files",
)
@click.option("--prefix", default=None, help="Prefix for config keys that are not valid env keys")
@click.option(
    "--force/--no-force",
    default=False,
    show_default=True,
    help="Overwrite existing dotenv files if set",
)
def cli_export_config(
    project_refs: Sequence[str],
    config_dir: Path,
    destination: Path,
    prefix: Optional[str],
    force: bool,
) -> None:
    """Export runtime config snapshots as dotenv files and print the written paths as JSON."""

    projects = [_parse_project(ref) for ref in project_refs]
    settings = core.load_settings()
    result = core.export_config(
        projects,
        materializer=FileConfigMaterializer(config_dir),
        writer=DotEnvFileWriter(destination),
        prefix=settings.export_prefix if prefix is None else prefix,
        force=force,
    )
    for skipped in result.skipped:
        click.echo(
            f"Skipping {skipped.project_id}: alias {skipped.alias!r} is reserved for internal use.",
            err=True,
        )
    if result.needs_prefix:
        click.echo("The following config keys could not be exported as environment variables:", err=True)
        for conversion in result.conversions:
            if not conversion.result.errors:
                continue
            click.echo(f"{conversion.project.project_id}:", err=True)
            for error in conversion.result.errors:
                click.echo(f"\t{error.orig_key} => {error.new_key} ({error.err})", err=True)
        raise click.ClickException("Re-run with --prefix to rename the invalid keys (e.g. --prefix CONFIG_).")
    click.echo(json.dumps([str(path) for path in result.written], indent=2))


def _override_settings(
    settings: core.Settings,
    *,
    parser: Optional[str],
    default_region: Optional[str],
) -> core.Settings:
    """Return *settings* with CLI overrides applied."""

    overrides = {
        "default_region": default_region or settings.default_region,
        "trigger_parser": parser if parser is not None else shlex.join(settings.trigger_parser or ()),
        "export_prefix": settings.export_prefix,
    }
    return core.Settings.from_mapping(overrides)


def _discovery_failure(exc: DiscoveryError) -> click.ClickException:
    """Wrap *exc* so the process exits with the parser-derived exit code."""

    failure = click.ClickException(str(exc))
    failure.exit_code = exc.exit_code
    return failure


def _parse_env_pairs(values: Sequence[str]) -> dict[str, str]:
    """Turn repeated ``KEY=VALUE`` options into a mapping."""

    envs: dict[str, str] = {}
    for value in values:
        key, sep, payload = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got {value!r}", param_hint="--env")
        envs[key] = payload
    return envs


def _parse_project(value: str) -> core.TargetProject:
    try:
        return core.TargetProject.parse(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--project") from exc


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name=_DISTRIBUTION,
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
