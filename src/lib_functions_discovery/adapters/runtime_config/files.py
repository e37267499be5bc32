"""File-based runtime configuration materialization.

Purpose
-------
Implement :class:`lib_functions_discovery.application.ports.ConfigMaterializer`
from snapshots exported to disk, one file per project:
``<directory>/<project_id>.json`` (or ``.yaml``/``.yml``/``.toml``).

System Role
-----------
Default materializer for :func:`lib_functions_discovery.core.export_config`.
Remote stores plug in through the same port.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

from ...domain.errors import NotFound
from ...observability import log_info, make_event
from ..file_loaders.structured import JSONFileLoader, TOMLFileLoader, YAMLFileLoader

_FILE_LOADERS = {
    "json": JSONFileLoader(),
    "yaml": YAMLFileLoader(),
    "yml": YAMLFileLoader(),
    "toml": TOMLFileLoader(),
}

DEFAULT_PREFER: tuple[str, ...] = ("json", "yaml", "yml", "toml")


class FileConfigMaterializer:
    """Read ``<project_id>.<suffix>`` snapshots from *directory*.

    Parameters
    ----------
    directory:
        Folder holding one snapshot per project.
    prefer:
        Suffix order used when several snapshots exist for the same project.
    """

    def __init__(self, directory: str | Path, *, prefer: Sequence[str] | None = None) -> None:
        self._directory = Path(directory)
        self._prefer = _normalize_prefer(prefer) if prefer else DEFAULT_PREFER

    def materialize(self, project_id: str) -> Mapping[str, object]:
        """Return the parsed snapshot of *project_id*.

        Raises
        ------
        NotFound
            When no snapshot exists for the project.
        InvalidFormat
            When the first snapshot found cannot be parsed.
        """

        for path in self.candidates(project_id):
            if path.is_file():
                data = _FILE_LOADERS[path.suffix.lstrip(".").lower()].load(str(path))
                log_info("runtime_config_loaded", **make_event(project_id, None, {"path": str(path), "keys": len(data)}))
                return data
        raise NotFound(f"No runtime config snapshot for project {project_id} in {self._directory}")

    def candidates(self, project_id: str) -> list[Path]:
        """List the snapshot paths checked for *project_id*, in preference order.

        Examples
        --------
        >>> [p.name for p in FileConfigMaterializer("/tmp", prefer=["toml", ".JSON"]).candidates("demo")]
        ['demo.toml', 'demo.json']
        """

        return [self._directory / f"{project_id}.{suffix}" for suffix in self._prefer if suffix in _FILE_LOADERS]


def _normalize_prefer(values: Sequence[str]) -> tuple[str, ...]:
    return tuple(value.lower().lstrip(".") for value in values)
