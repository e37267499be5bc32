"""Translate runtime configuration into dotenv content.

Purpose
-------
Turn a nested runtime configuration snapshot (``{"service": {"key": ...}}``)
into environment variable keys (``SERVICE_KEY``) and render them as a dotenv
file with provenance comments. Everything here is pure and synchronous so
several projects can be translated independently.

Contents
    - ``flatten_config``: depth-first dotted-path leaves of a nested mapping.
    - ``convert_key``: config key → env key, with a prefix fallback.
    - ``config_to_env``: batch conversion collecting validation failures.
    - ``to_dotenv_format``: aligned ``KEY="value" # from key`` rendering.

System Role
-----------
Used by :func:`lib_functions_discovery.core.export_config`; validation is
delegated to :func:`lib_functions_discovery.domain.env_keys.validate_key`.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Iterator

from ..domain.env_keys import validate_key
from ..domain.errors import ConversionError, KeyValidationError
from ..observability import log_debug, log_warning

_QUOTES = re.compile(r"(['\"])")


@dataclass(frozen=True, slots=True)
class EnvMapping:
    """One configuration leaf and the env key it maps to.

    ``err`` is only set on entries of :attr:`ConfigToEnvResult.errors`.
    """

    orig_key: str
    new_key: str
    value: str
    err: str | None = None


@dataclass(slots=True)
class ConfigToEnvResult:
    success: list[EnvMapping] = field(default_factory=list)
    errors: list[EnvMapping] = field(default_factory=list)


def flatten_config(configs: Mapping[str, Any], *, delimiter: str = ".") -> Iterator[tuple[str, Any]]:
    """Yield ``(dotted_key, leaf)`` pairs depth-first in insertion order.

    Sequences are flattened by index; empty mappings and sequences produce
    nothing.

    Examples
    --------
    >>> list(flatten_config({"a": {"b": 1, "c": ["x", "y"]}, "d": "e"}))
    [('a.b', 1), ('a.c.0', 'x'), ('a.c.1', 'y'), ('d', 'e')]
    """

    yield from _walk(configs, [], delimiter)


def _walk(node: Any, segments: list[str], delimiter: str) -> Iterator[tuple[str, Any]]:
    if isinstance(node, Mapping):
        for key, value in node.items():
            yield from _walk(value, [*segments, str(key)], delimiter)
    elif isinstance(node, Sequence) and not isinstance(node, (str, bytes)):
        for index, value in enumerate(node):
            yield from _walk(value, [*segments, str(index)], delimiter)
    elif segments:
        yield delimiter.join(segments), node


def convert_key(config_key: str, prefix: str) -> str:
    """Convert a runtime config key into a valid environment variable key.

    Raises
    ------
    KeyValidationError
        When neither the plain nor the prefixed key is valid; ``err.key``
        holds the prefixed key.

    Examples
    --------
    >>> convert_key("some-service.key", "CONFIG_")
    'SOME_SERVICE_KEY'
    >>> convert_key("firebase.token", "CONFIG_")
    'CONFIG_FIREBASE_TOKEN'
    """

    base_key = config_key.upper().replace(".", "_").replace("-", "_")
    try:
        validate_key(base_key)
    except KeyValidationError:
        env_key = prefix + base_key
        validate_key(env_key)
        return env_key
    return base_key


def config_to_env(configs: Mapping[str, Any], prefix: str) -> ConfigToEnvResult:
    """Convert every leaf of *configs* into an env mapping, collecting failures.

    Raises
    ------
    ConversionError
        For any failure other than a key validation error.

    Examples
    --------
    >>> result = config_to_env({"a": {"b": 1}}, "")
    >>> result.success
    [EnvMapping(orig_key='a.b', new_key='A_B', value='1', err=None)]
    >>> result.errors
    []
    """

    result = ConfigToEnvResult()
    for config_key, leaf in flatten_config(configs):
        value = _stringify(leaf)
        try:
            env_key = convert_key(config_key, prefix)
        except KeyValidationError as exc:
            log_warning("config_key_rejected", key=config_key, attempted=exc.key, error=str(exc))
            result.errors.append(EnvMapping(orig_key=config_key, new_key=exc.key, value=value, err=str(exc)))
            continue
        except Exception as exc:
            raise ConversionError("Unexpected error while converting config") from exc
        result.success.append(EnvMapping(orig_key=config_key, new_key=env_key, value=value))
    log_debug("config_converted", converted=len(result.success), rejected=len(result.errors), prefix=prefix)
    return result


def _stringify(value: Any) -> str:
    """Render a leaf the way the config store reports it.

    Examples
    --------
    >>> _stringify(True), _stringify(None), _stringify(3)
    ('true', 'null', '3')
    """

    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def escape(value: str) -> str:
    """Escape control characters and quotes for a double-quoted dotenv value.

    Only the first occurrence of each control character is escaped; quotes
    are escaped everywhere.
    """

    result = (
        value.replace("\n", "\\n", 1)
        .replace("\r", "\\r", 1)
        .replace("\t", "\\t", 1)
        .replace("\v", "\\v", 1)
    )
    return _QUOTES.sub(r"\\\1", result)


def to_dotenv_format(entries: Sequence[EnvMapping]) -> str:
    """Render *entries* as aligned dotenv lines with provenance comments.

    Examples
    --------
    >>> print(to_dotenv_format([
    ...     EnvMapping("a.b", "A_B", "1"),
    ...     EnvMapping("service.url", "SERVICE_URL", "https://x"),
    ... ]))
    A_B="1"                 # from a.b
    SERVICE_URL="https://x" # from service.url
    """

    lines = [f'{entry.new_key}="{escape(entry.value)}"' for entry in entries]
    if not lines:
        return ""
    width = max(len(line) for line in lines)
    return "\n".join(f"{line.ljust(width)} # from {entry.orig_key}" for line, entry in zip(lines, entries))
