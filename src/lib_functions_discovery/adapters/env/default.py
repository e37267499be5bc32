"""Environment variable adapter.

Purpose
-------
Collect the ``LIB_FUNCTIONS_DISCOVERY_*`` process environment variables into
the flat mapping consumed by
:func:`lib_functions_discovery.domain.settings.Settings.from_mapping`.

Key behaviours
--------------
* Enforces a configurable prefix (``default_env_prefix``) so only relevant keys
  are captured.
* Lowercases the remaining key (``..._DEFAULT_REGION`` → ``default_region``).
* Keeps values verbatim. Every setting is text (a region, a shell command, a
  key prefix), so ``1e3`` or ``true`` must reach the settings unchanged.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from ...observability import log_debug


def default_env_prefix(slug: str) -> str:
    """Return the canonical environment prefix for *slug*.

    Examples
    --------
    >>> default_env_prefix('lib-functions-discovery')
    'LIB_FUNCTIONS_DISCOVERY'
    """

    return slug.replace("-", "_").upper()


class DefaultEnvLoader:
    """Load environment variables that belong to the settings namespace."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def load(self, prefix: str) -> dict[str, str]:
        """Return ``{setting_name: raw_value}`` for variables carrying *prefix*.

        Examples
        --------
        >>> loader = DefaultEnvLoader(environ={'DEMO_DEFAULT_REGION': 'europe-west1', 'OTHER': 'x'})
        >>> loader.load('DEMO')
        {'default_region': 'europe-west1'}
        """

        prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        collected: dict[str, str] = {}
        for key, value in self._environ.items():
            if prefix and not key.startswith(prefix):
                continue
            name = key[len(prefix) :].lower()
            if name:
                collected[name] = value
        log_debug("env_variables_loaded", project=None, region=None, keys=sorted(collected))
        return collected
