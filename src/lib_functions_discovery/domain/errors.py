"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by adapters, the builder, the export
workflow, and the CLI. The hierarchy lives in the domain layer so outer layers
may depend on it without the domain depending on them.

Contents
--------
* :class:`FunctionsError` – umbrella base class for every library failure.
* :class:`DiscoveryError` – the annotation discovery adapter failed.
* :class:`UnexpectedAnnotationError` – an annotation violates the producer
  contract (zero or two trigger kinds).
* :class:`KeyValidationError` – a candidate environment variable key was
  rejected.
* :class:`ConversionError` – any non-validation failure while translating
  configuration keys.
* :class:`InvalidFormat` / :class:`NotFound` – runtime configuration snapshots
  that are malformed or missing.

System Role
-----------
Discovery and structural failures abort the whole operation. Key validation
failures are collected by :func:`lib_functions_discovery.application.export.config_to_env`
so callers can batch-report them and retry with a prefix.
"""

from __future__ import annotations


class FunctionsError(Exception):
    """Base type for all exceptions emitted by ``lib_functions_discovery``."""


class DiscoveryError(FunctionsError):
    """Raised when trigger annotations could not be discovered.

    Why
    ----
    The adapter distinguishes an explicit error message sent by the parser
    (``exit_code`` 1) from a parser that died without saying anything
    (``exit_code`` 2). Both belong to the same failure category.
    """

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class UnexpectedAnnotationError(FunctionsError):
    """Raised when an annotation carries zero or two trigger kinds.

    Never expected for well-formed SDK output; fatal and never retried.
    """


class KeyValidationError(FunctionsError):
    """Signifies that a candidate environment variable key is not usable.

    Attributes
    ----------
    key:
        The offending key exactly as it was validated (possibly prefixed).
    """

    def __init__(self, key: str, message: str) -> None:
        super().__init__(message)
        self.key = key


class ConversionError(FunctionsError):
    """Unexpected failure while converting configuration into env keys."""


class InvalidFormat(FunctionsError):
    """Raised when a runtime configuration snapshot cannot be parsed."""


class NotFound(FunctionsError):
    """Represents a missing runtime configuration snapshot."""
