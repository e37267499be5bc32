"""`.env` writer adapter.

Purpose
-------
Implement :class:`lib_functions_discovery.application.ports.DotEnvWriter` by
writing ``.env.<name>`` files into a functions source directory without
clobbering files the user already has, unless asked to.

Contents
    - ``DotEnvFileWriter``: public adapter.
    - ``dotenv_filename``: file naming rule for a project or alias.
    - ``_should_write`` / ``_write_text``: tiny helpers that narrate how files
      are written or skipped.

System Role
-----------
Final step of :func:`lib_functions_discovery.core.export_config`. Writes to the
same destination are serialised with a per-path lock so concurrent exports
never interleave partial content.
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path

from ...observability import log_info

_LOCKS: dict[Path, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def dotenv_filename(name: str) -> str:
    """Return the dotenv file name used for project or alias *name*.

    Examples
    --------
    >>> dotenv_filename("staging")
    '.env.staging'
    """

    return f".env.{name}"


class DotEnvFileWriter:
    """Write rendered dotenv text below *directory*."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def write(self, name: str, content: str, *, force: bool = False) -> Path | None:
        """Write ``.env.<name>`` and return its path, or ``None`` when it already exists and *force* is off.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> writer = DotEnvFileWriter(tmp.name)
        >>> writer.write("demo", 'A="1" # from a').name
        '.env.demo'
        >>> writer.write("demo", 'A="2" # from a') is None
        True
        >>> tmp.cleanup()
        """

        destination = self._directory / dotenv_filename(name)
        with _lock_for(destination):
            if not _should_write(destination, force):
                log_info("dotenv_skipped", project=name, region=None, path=str(destination))
                return None
            destination.parent.mkdir(parents=True, exist_ok=True)
            _write_text(destination, content)
        log_info("dotenv_written", project=name, region=None, path=str(destination))
        return destination


def _lock_for(path: Path) -> threading.Lock:
    key = path.absolute()
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.Lock())


def _should_write(destination: Path, force: bool) -> bool:
    """Return ``True`` when *destination* may be (over)written."""

    if destination.exists() and not force:
        return False
    return True


def _write_text(path: Path, content: str) -> None:
    """Persist *content* at *path* via a sibling temp file so readers never see half a file."""

    handle, temp_name = tempfile.mkstemp(prefix=f"{path.name}.", dir=path.parent)
    try:
        with os.fdopen(handle, "w", encoding="utf-8", newline="\n") as stream:
            stream.write(content)
        os.chmod(temp_name, _default_file_mode())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def _default_file_mode() -> int:
    """Return the mode a plain ``open(path, "w")`` would create under the current umask.

    ``mkstemp`` always creates ``0o600`` files.
    """

    with _LOCKS_GUARD:
        umask = os.umask(0o022)
        os.umask(umask)
    return 0o666 & ~umask

