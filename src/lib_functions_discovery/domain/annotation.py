"""Read-only trigger annotations parsed from SDK output.

Purpose
-------
Convert the loosely typed, camelCase mappings emitted by the functions SDK
into frozen value objects the builder can rely on. Parsing happens once at the
boundary, so the rest of the system never mutates (or even sees) the raw
payload.

Contents
--------
* :class:`HttpsTriggerAnnotation` / :class:`EventTriggerAnnotation` – the two
  trigger variants, combined in :data:`TriggerVariant`.
* :class:`ScheduleRetryConfig` / :class:`ScheduleAnnotation` – schedule
  descriptor passed through to the scheduler resource.
* :class:`TriggerAnnotation` – one deployable function as described by the
  SDK, built via :meth:`TriggerAnnotation.from_mapping`.

System Role
-----------
Consumed by :mod:`lib_functions_discovery.application.builder`. Presence checks
mirror the truthiness rules of the SDK's own runtime: an empty object counts
as present, ``null``/``false``/missing do not.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Union

from .errors import UnexpectedAnnotationError

PLATFORM_GCFV1 = "gcfv1"
PLATFORM_GCFV2 = "gcfv2"

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class HttpsTriggerAnnotation:
    """HTTPS trigger as emitted by the SDK.

    ``allow_insecure`` is ``None`` when the SDK did not set the field at all.
    """

    allow_insecure: bool | None = None


@dataclass(frozen=True, slots=True)
class EventTriggerAnnotation:
    """Event trigger as emitted by the SDK."""

    event_type: str
    resource: str
    service: str | None = None  # deprecated by the SDK, kept for fidelity


TriggerVariant = Union[HttpsTriggerAnnotation, EventTriggerAnnotation]


@dataclass(frozen=True, slots=True)
class ScheduleRetryConfig:
    """Retry settings of a scheduler job, all optional and opaque."""

    retry_count: int | None = None
    max_retry_duration: str | None = None
    min_backoff_duration: str | None = None
    max_backoff_duration: str | None = None
    max_doublings: int | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ScheduleRetryConfig:
        return cls(
            retry_count=raw.get("retryCount"),
            max_retry_duration=raw.get("maxRetryDuration"),
            min_backoff_duration=raw.get("minBackoffDuration"),
            max_backoff_duration=raw.get("maxBackoffDuration"),
            max_doublings=raw.get("maxDoublings"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase wire shape, omitting unset fields."""

        pairs = (
            ("retryCount", self.retry_count),
            ("maxRetryDuration", self.max_retry_duration),
            ("minBackoffDuration", self.min_backoff_duration),
            ("maxBackoffDuration", self.max_backoff_duration),
            ("maxDoublings", self.max_doublings),
        )
        return {key: value for key, value in pairs if value is not None}


@dataclass(frozen=True, slots=True)
class ScheduleAnnotation:
    """Schedule descriptor attached to a function annotation.

    Attributes
    ----------
    schedule:
        Cron or ``every N minutes`` expression; opaque at this layer.
    time_zone:
        Optional IANA time zone name.
    retry_config:
        Optional :class:`ScheduleRetryConfig`.
    """

    schedule: str
    time_zone: str | None = None
    retry_config: ScheduleRetryConfig | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ScheduleAnnotation:
        if "schedule" not in raw:
            raise UnexpectedAnnotationError("Schedule annotation is missing the schedule expression.")
        retry = raw.get("retryConfig")
        return cls(
            schedule=raw["schedule"],
            time_zone=raw.get("timeZone"),
            retry_config=ScheduleRetryConfig.from_mapping(retry) if isinstance(retry, Mapping) else None,
        )


@dataclass(frozen=True, slots=True)
class TriggerAnnotation:
    """One function described by the SDK, frozen after parsing.

    Examples
    --------
    >>> annotation = TriggerAnnotation.from_mapping(
    ...     {"name": "hello", "entryPoint": "hello", "httpsTrigger": {}}
    ... )
    >>> annotation.trigger
    HttpsTriggerAnnotation(allow_insecure=None)
    >>> annotation.regions
    ()
    """

    name: str
    entry_point: str
    trigger: TriggerVariant
    platform: str | None = None
    labels: Mapping[str, str] | None = None
    vpc_connector: str | None = None
    vpc_connector_egress_settings: str | None = None
    ingress_settings: str | None = None
    available_memory_mb: int | None = None
    timeout: str | None = None
    max_instances: int | None = None
    min_instances: int | None = None
    concurrency: int | None = None
    service_account_email: str | None = None
    failure_policy: Mapping[str, Any] | None = None
    schedule: ScheduleAnnotation | None = None
    regions: tuple[str, ...] = ()
    invoker: tuple[str, ...] | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TriggerAnnotation:
        """Parse one raw SDK record, raising :class:`UnexpectedAnnotationError` on contract violations."""

        if not isinstance(raw, Mapping):
            raise UnexpectedAnnotationError(f"Expected a trigger annotation mapping, got {type(raw).__name__}.")
        for required in ("name", "entryPoint"):
            if not isinstance(raw.get(required), str):
                raise UnexpectedAnnotationError(f"Trigger annotation is missing {required!r}.")

        schedule = raw.get("schedule")
        return cls(
            name=raw["name"],
            entry_point=raw["entryPoint"],
            trigger=_parse_trigger(raw),
            platform=raw.get("platform"),
            labels=_freeze_mapping(raw.get("labels")),
            vpc_connector=raw.get("vpcConnector") or None,
            vpc_connector_egress_settings=raw.get("vpcConnectorEgressSettings"),
            ingress_settings=raw.get("ingressSettings"),
            available_memory_mb=raw.get("availableMemoryMb"),
            timeout=raw.get("timeout"),
            max_instances=raw.get("maxInstances"),
            min_instances=raw.get("minInstances"),
            concurrency=raw.get("concurrency"),
            service_account_email=raw.get("serviceAccountEmail"),
            failure_policy=_parse_failure_policy(raw.get("failurePolicy")),
            schedule=ScheduleAnnotation.from_mapping(schedule) if _present(schedule) else None,
            regions=tuple(raw.get("regions") or ()),
            invoker=_freeze_sequence(raw.get("invoker")),
        )


def _parse_trigger(raw: Mapping[str, Any]) -> TriggerVariant:
    https = raw.get("httpsTrigger")
    event = raw.get("eventTrigger")
    if _present(https) == _present(event):
        raise UnexpectedAnnotationError(
            f"Unexpected annotation generated by the functions SDK for {raw.get('name')!r}: "
            "exactly one of httpsTrigger or eventTrigger must be set. This should never happen."
        )
    if _present(https):
        options = https if isinstance(https, Mapping) else _EMPTY
        if "allowInsecure" in options:
            return HttpsTriggerAnnotation(allow_insecure=bool(options["allowInsecure"]))
        return HttpsTriggerAnnotation()
    if not isinstance(event, Mapping):
        raise UnexpectedAnnotationError(f"Event trigger of {raw.get('name')!r} is not a mapping.")
    return EventTriggerAnnotation(
        event_type=event.get("eventType", ""),
        resource=event.get("resource", ""),
        service=event.get("service"),
    )


def _parse_failure_policy(value: Any) -> Mapping[str, Any] | None:
    if not _present(value):
        return None
    if isinstance(value, Mapping):
        return MappingProxyType(dict(value))
    return _EMPTY


def _present(value: Any) -> bool:
    """Truthiness as the SDK runtime sees it: containers count even when empty."""

    if isinstance(value, (Mapping, list, tuple)):
        return True
    return bool(value)


def _freeze_mapping(value: Any) -> Mapping[str, Any] | None:
    if value is None:
        return None
    return MappingProxyType(dict(value))


def _freeze_sequence(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    return value
