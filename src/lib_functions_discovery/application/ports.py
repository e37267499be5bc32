"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts that adapters must satisfy so the builder and
the export workflow can orchestrate behaviour without depending on concrete
implementations.

Contents
--------
* :class:`AnnotationDiscoverer` – executes the user's function project and
  returns its raw trigger annotations.
* :class:`ConfigMaterializer` – resolves the runtime configuration snapshot of
  a project.
* :class:`DotEnvWriter` – persists rendered dotenv text for one project.

System Role
-----------
These protocols enforce Dependency Inversion. Tests substitute in-memory fakes;
the composition root wires the default adapters.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable


@runtime_checkable
class AnnotationDiscoverer(Protocol):
    """Produce raw trigger annotations for a function source directory.

    Why
    ----
    Executing user code is an out-of-process concern (subprocess, sandbox,
    remote worker). The builder only needs one terminal answer: the
    annotations, or a :class:`~lib_functions_discovery.domain.errors.DiscoveryError`.
    """

    async def discover(
        self,
        project_id: str,
        source_dir: str,
        config_values: Mapping[str, Any],
        envs: Mapping[str, str],
    ) -> Sequence[Mapping[str, Any]]:
        """Return the raw annotation records or raise ``DiscoveryError``."""


@runtime_checkable
class ConfigMaterializer(Protocol):
    """Resolve the current runtime configuration of a project."""

    def materialize(self, project_id: str) -> Mapping[str, Any]:
        """Return the nested configuration of *project_id* or raise ``NotFound``."""


@runtime_checkable
class DotEnvWriter(Protocol):
    """Write rendered dotenv content for one project."""

    def write(self, name: str, content: str, *, force: bool = False) -> Path | None:
        """Write ``.env.<name>`` and return its path, or ``None`` when skipped."""
