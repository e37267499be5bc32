"""Runtime settings for discovery and export.

Settings come from ``LIB_FUNCTIONS_DISCOVERY_*`` environment variables (see
:mod:`lib_functions_discovery.adapters.env.default`); CLI options override
them per invocation.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .backend import DEFAULT_REGION


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved settings.

    Attributes
    ----------
    default_region:
        Region used for annotations that do not list any.
    trigger_parser:
        Command (argv) that prints the trigger annotations of a source
        directory; ``None`` when not configured.
    export_prefix:
        Prefix applied to configuration keys that are not valid env keys.
    """

    default_region: str = DEFAULT_REGION
    trigger_parser: tuple[str, ...] | None = None
    export_prefix: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """Build settings from the flat mapping produced by the env loader.

        Examples
        --------
        >>> Settings.from_mapping({"trigger_parser": "node parse.js --json"}).trigger_parser
        ('node', 'parse.js', '--json')
        >>> Settings.from_mapping({}).default_region
        'us-central1'
        """

        parser = data.get("trigger_parser")
        prefix = data.get("export_prefix")
        return cls(
            default_region=str(data.get("default_region") or DEFAULT_REGION),
            trigger_parser=tuple(shlex.split(parser)) if isinstance(parser, str) and parser.strip() else None,
            export_prefix=str(prefix) if prefix is not None else "",
        )
