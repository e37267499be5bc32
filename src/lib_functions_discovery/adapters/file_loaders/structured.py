"""Structured runtime configuration snapshot loaders.

Purpose
-------
Convert on-disk runtime configuration snapshots into Python mappings the
export workflow can flatten. Adapters are small wrappers around
``tomllib``/``json``/``yaml.safe_load`` so error handling and observability
live in one place.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLFileLoader` / :class:`JSONFileLoader` / :class:`YAMLFileLoader`.

System Role
-----------
Invoked by :class:`lib_functions_discovery.adapters.runtime_config.files.FileConfigMaterializer`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

import yaml

from ...domain.errors import InvalidFormat, NotFound
from ...observability import log_debug, log_error


class BaseFileLoader:
    """Common utilities shared by the structured file loaders."""

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`NotFound` when the file is missing."""

        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"Runtime config file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("runtime_config_read", project=None, region=None, path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"key": 1}, path="demo")
        {'key': 1}
        >>> BaseFileLoader._ensure_mapping(42, path="demo")
        Traceback (most recent call last):
        ...
        lib_functions_discovery.domain.errors.InvalidFormat: File demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"File {path} did not produce a mapping")
        return data


class TOMLFileLoader(BaseFileLoader):
    """Load TOML snapshots."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = tomllib.loads(self._read(path).decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            log_error("runtime_config_invalid", project=None, region=None, path=path, format="toml", error=str(exc))
            raise InvalidFormat(f"Invalid TOML in {path}: {exc}") from exc
        return self._ensure_mapping(data, path=path)


class JSONFileLoader(BaseFileLoader):
    """Load JSON snapshots, the format the legacy ``.runtimeconfig.json`` uses."""

    def load(self, path: str) -> Mapping[str, object]:
        """Return mapping extracted from JSON file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', delete=False, encoding='utf-8', suffix='.json')
        >>> _ = tmp.write('{"service": {"key": "abc"}}')
        >>> tmp.close()
        >>> JSONFileLoader().load(tmp.name)["service"]["key"]
        'abc'
        >>> Path(tmp.name).unlink()
        """

        try:
            data = json.loads(self._read(path))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log_error("runtime_config_invalid", project=None, region=None, path=path, format="json", error=str(exc))
            raise InvalidFormat(f"Invalid JSON in {path}: {exc}") from exc
        return self._ensure_mapping(data, path=path)


class YAMLFileLoader(BaseFileLoader):
    """Load YAML snapshots."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            log_error("runtime_config_invalid", project=None, region=None, path=path, format="yaml", error=str(exc))
            raise InvalidFormat(f"Invalid YAML in {path}: {exc}") from exc
        if data is None:
            data = {}
        return self._ensure_mapping(data, path=path)
