"""Validation rules for user-supplied environment variable keys.

The functions runtime owns a handful of variable names and prefixes; user keys
must stay clear of them and look like conventional POSIX identifiers.
"""

from __future__ import annotations

import re
from typing import Final

from .errors import KeyValidationError

_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"[A-Z_][A-Z0-9_]*")

RESERVED_KEYS: Final[frozenset[str]] = frozenset(
    {
        # Cloud Functions for Firebase
        "FIREBASE_CONFIG",
        "CLOUD_RUNTIME_CONFIG",
        "EVENTARC_CLOUD_EVENT_SOURCE",
        # Cloud Functions - old runtimes
        "ENTRY_POINT",
        "GCP_PROJECT",
        "GCLOUD_PROJECT",
        "GOOGLE_CLOUD_PROJECT",
        "FUNCTION_TRIGGER_TYPE",
        "FUNCTION_NAME",
        "FUNCTION_MEMORY_MB",
        "FUNCTION_TIMEOUT_SEC",
        "FUNCTION_IDENTITY",
        "FUNCTION_REGION",
        # Cloud Functions - new runtimes
        "FUNCTION_TARGET",
        "FUNCTION_SIGNATURE_TYPE",
        "K_SERVICE",
        "K_REVISION",
        "PORT",
        # Cloud Run
        "K_CONFIGURATION",
    }
)

RESERVED_PREFIXES: Final[tuple[str, ...]] = ("X_GOOGLE_", "FIREBASE_", "EXT_")


def validate_key(key: str) -> None:
    """Raise :class:`KeyValidationError` when *key* cannot be used as an env var.

    Examples
    --------
    >>> validate_key("API_TOKEN")
    >>> validate_key("PORT")
    Traceback (most recent call last):
    ...
    lib_functions_discovery.domain.errors.KeyValidationError: Key PORT is reserved for internal use.
    """

    if not _KEY_PATTERN.fullmatch(key):
        raise KeyValidationError(
            key,
            f"Key {key} must start with an uppercase ASCII letter or underscore, "
            "and then consist of uppercase ASCII letters, digits, and underscores.",
        )
    if key in RESERVED_KEYS:
        raise KeyValidationError(key, f"Key {key} is reserved for internal use.")
    for prefix in RESERVED_PREFIXES:
        if key.startswith(prefix):
            raise KeyValidationError(
                key,
                f"Key {key} starts with a reserved prefix ({' '.join(RESERVED_PREFIXES)})",
            )
