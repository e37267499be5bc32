"""Composition root for ``lib_functions_discovery``.

Purpose
-------
Wire the default adapters (subprocess discovery, file snapshots, dotenv writer,
environment settings) to the pure application functions and expose the stable,
consumer-ready APIs.

Contents
--------
* :func:`load_settings` – resolve :class:`Settings` from the environment.
* :func:`discover` – run trigger discovery and build the desired backend.
* :class:`TargetProject` / :class:`ProjectConversion` / :class:`ExportResult`
  – export workflow values.
* :func:`convert_projects` – translate every project's runtime config with one
  prefix.
* :func:`export_config` – translate and, when nothing was rejected, write one
  dotenv file per project.

System Role
-----------
The CLI calls only into this module. Library users with their own adapters
call the application layer directly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Mapping, Sequence

from .adapters.discovery.process import SubprocessAnnotationDiscoverer
from .adapters.env.default import DefaultEnvLoader, default_env_prefix
from .application.builder import add_resources_to_backend, discover_backend
from .application.export import ConfigToEnvResult, config_to_env, convert_key, to_dotenv_format
from .application.ports import AnnotationDiscoverer, ConfigMaterializer, DotEnvWriter
from .domain.backend import Backend
from .domain.errors import DiscoveryError
from .domain.settings import Settings
from .observability import bind_trace_id, log_error, log_info, log_warning, make_event

SLUG: Final[str] = "lib-functions-discovery"
RESERVED_PROJECT_ALIASES: Final[frozenset[str]] = frozenset({"local"})


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Return settings read from ``LIB_FUNCTIONS_DISCOVERY_*`` variables.

    Examples
    --------
    >>> load_settings({"LIB_FUNCTIONS_DISCOVERY_DEFAULT_REGION": "asia-east1"}).default_region
    'asia-east1'
    """

    data = DefaultEnvLoader(environ=environ).load(default_env_prefix(SLUG))
    return Settings.from_mapping(data)


async def discover(
    project_id: str,
    source_dir: str,
    runtime: str,
    *,
    config_values: Mapping[str, Any] | None = None,
    envs: Mapping[str, str] | None = None,
    settings: Settings | None = None,
    discoverer: AnnotationDiscoverer | None = None,
    timeout: float | None = None,
    trace_id: str | None = None,
) -> Backend:
    """Discover the triggers of *source_dir* and return the desired backend.

    Parameters
    ----------
    settings:
        Defaults to :func:`load_settings`. Supplies the default region and,
        when *discoverer* is omitted, the trigger parser command.
    timeout:
        Optional bound in seconds; expiry is reported as a
        :class:`DiscoveryError`.

    Raises
    ------
    DiscoveryError
        When no parser is configured, the parser fails, or *timeout* expires.
    UnexpectedAnnotationError
        When the parser emits an annotation that breaks the SDK contract.
    """

    bind_trace_id(trace_id)
    settings = settings or load_settings()
    if discoverer is None:
        if not settings.trigger_parser:
            raise DiscoveryError(
                "No trigger parser configured. Set LIB_FUNCTIONS_DISCOVERY_TRIGGER_PARSER or pass --parser."
            )
        discoverer = SubprocessAnnotationDiscoverer(settings.trigger_parser)

    pending = discover_backend(
        project_id,
        source_dir,
        runtime,
        config_values or {},
        envs or {},
        discoverer=discoverer,
        default_region=settings.default_region,
    )
    if timeout is None:
        return await pending
    try:
        return await asyncio.wait_for(pending, timeout)
    except asyncio.TimeoutError as exc:
        log_error("discovery_failed", **make_event(project_id, None, {"timeout": timeout}))
        raise DiscoveryError(f"Timed out after {timeout:g}s while parsing function triggers.", exit_code=2) from exc


@dataclass(frozen=True, slots=True)
class TargetProject:
    """A project to export, optionally known under an alias."""

    project_id: str
    alias: str | None = None

    @property
    def label(self) -> str:
        return self.alias or self.project_id

    @classmethod
    def parse(cls, value: str) -> TargetProject:
        """Parse ``PROJECT_ID`` or ``PROJECT_ID:ALIAS``.

        Examples
        --------
        >>> TargetProject.parse("acme-prod:prod")
        TargetProject(project_id='acme-prod', alias='prod')
        """

        project_id, _, alias = value.partition(":")
        if not project_id:
            raise ValueError(f"Invalid project reference: {value!r}")
        return cls(project_id=project_id, alias=alias or None)


@dataclass(frozen=True, slots=True)
class ProjectConversion:
    project: TargetProject
    result: ConfigToEnvResult


@dataclass(slots=True)
class ExportResult:
    conversions: list[ProjectConversion] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    skipped: list[TargetProject] = field(default_factory=list)

    @property
    def needs_prefix(self) -> bool:
        """``True`` when at least one key was rejected and nothing was written."""

        return any(conversion.result.errors for conversion in self.conversions)


def is_reserved_alias(project: TargetProject) -> bool:
    return project.alias is not None and project.alias in RESERVED_PROJECT_ALIASES


def convert_projects(
    projects: Sequence[TargetProject],
    *,
    materializer: ConfigMaterializer,
    prefix: str = "",
) -> list[ProjectConversion]:
    """Materialize and translate every project's runtime config with *prefix*."""

    conversions: list[ProjectConversion] = []
    for project in projects:
        configs = materializer.materialize(project.project_id)
        conversions.append(ProjectConversion(project=project, result=config_to_env(configs, prefix)))
    return conversions


def export_config(
    projects: Sequence[TargetProject],
    *,
    materializer: ConfigMaterializer,
    writer: DotEnvWriter,
    prefix: str = "",
    force: bool = False,
) -> ExportResult:
    """Export runtime config of *projects* into ``.env.<alias|project>`` files.

    Projects with a reserved alias are skipped with a warning. When any key
    of any project is rejected nothing is written; the caller inspects
    :attr:`ExportResult.conversions` and retries with another *prefix*.
    """

    result = ExportResult()
    eligible: list[TargetProject] = []
    for project in projects:
        if is_reserved_alias(project):
            log_warning("project_skipped", **make_event(project.project_id, None, {"alias": project.alias}))
            result.skipped.append(project)
            continue
        eligible.append(project)

    result.conversions = convert_projects(eligible, materializer=materializer, prefix=prefix)
    if result.needs_prefix:
        return result

    for conversion in result.conversions:
        content = to_dotenv_format(conversion.result.success)
        path = writer.write(conversion.project.label, content, force=force)
        if path is not None:
            result.written.append(path)
    log_info("config_exported", project=None, region=None, files=len(result.written))
    return result


__all__ = [
    "Backend",
    "ExportResult",
    "ProjectConversion",
    "Settings",
    "TargetProject",
    "add_resources_to_backend",
    "config_to_env",
    "convert_key",
    "convert_projects",
    "discover",
    "export_config",
    "is_reserved_alias",
    "load_settings",
    "to_dotenv_format",
]
