"""Deployment resources produced from trigger annotations.

Purpose
-------
Describe the desired backend handed to deployment planning: cloud functions,
scheduler jobs, and the pub/sub topics those jobs publish to, plus the APIs
that must be enabled. The module is pure data; the folding logic lives in
:mod:`lib_functions_discovery.application.builder`.

Contents
--------
* :class:`TargetIds` – the ``(id, region, project)`` identity triple.
* :class:`HttpsTrigger` / :class:`EventTrigger` – the trigger sum type.
* :class:`FunctionSpec`, :class:`ScheduleSpec`, :class:`PubSubSpec` – resources.
* :class:`Backend` – the mutable accumulator returned by discovery.
* :func:`schedule_id_for_function` – deterministic id shared by a schedule
  and its topic.
* :func:`copy_if_present` – field-by-field passthrough helper.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final, Union

from .annotation import ScheduleRetryConfig

DEFAULT_REGION: Final[str] = "us-central1"

SCHEDULED_FUNCTION_LABEL: Final[Mapping[str, str]] = {"deployment": "firebase-schedule"}
"""Label stamped on every topic created for a scheduled function."""

SCHEDULED_LABEL_KEY: Final[str] = "deployment-scheduled"

SCHEDULE_APIS: Final[Mapping[str, str]] = {
    "pubsub": "pubsub.googleapis.com",
    "scheduler": "cloudscheduler.googleapis.com",
}


@dataclass(frozen=True, slots=True)
class TargetIds:
    """Globally unique identity of a function."""

    id: str
    region: str
    project: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "region": self.region, "project": self.project}


@dataclass(frozen=True, slots=True)
class HttpsTrigger:
    allow_insecure: bool

    def to_dict(self) -> dict[str, Any]:
        return {"allowInsecure": self.allow_insecure}


@dataclass(frozen=True, slots=True)
class EventTrigger:
    """Event delivery trigger.

    ``event_filters`` always carries a ``resource`` key; it is a fresh dict per
    function so rewriting one region never leaks into another.
    """

    event_type: str
    event_filters: dict[str, str]
    retry: bool

    def to_dict(self) -> dict[str, Any]:
        return {"eventType": self.event_type, "eventFilters": dict(self.event_filters), "retry": self.retry}


Trigger = Union[HttpsTrigger, EventTrigger]


@dataclass
class FunctionSpec:
    """A single deployable function in one region."""

    platform: str
    id: str
    region: str
    project: str
    entry_point: str
    runtime: str
    trigger: Trigger
    concurrency: int | None = None
    service_account_email: str | None = None
    labels: dict[str, str] | None = None
    vpc_connector: str | None = None
    vpc_connector_egress_settings: str | None = None
    ingress_settings: str | None = None
    timeout: str | None = None
    max_instances: int | None = None
    min_instances: int | None = None
    available_memory_mb: int | None = None
    invoker: tuple[str, ...] | None = None

    @property
    def target_ids(self) -> TargetIds:
        return TargetIds(id=self.id, region=self.region, project=self.project)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "platform": self.platform,
            "id": self.id,
            "region": self.region,
            "project": self.project,
            "entryPoint": self.entry_point,
            "runtime": self.runtime,
            "trigger": self.trigger.to_dict(),
        }
        optional = (
            ("concurrency", self.concurrency),
            ("serviceAccountEmail", self.service_account_email),
            ("labels", dict(self.labels) if self.labels is not None else None),
            ("vpcConnector", self.vpc_connector),
            ("vpcConnectorEgressSettings", self.vpc_connector_egress_settings),
            ("ingressSettings", self.ingress_settings),
            ("timeout", self.timeout),
            ("maxInstances", self.max_instances),
            ("minInstances", self.min_instances),
            ("availableMemoryMb", self.available_memory_mb),
            ("invoker", list(self.invoker) if isinstance(self.invoker, tuple) else self.invoker),
        )
        payload.update({key: value for key, value in optional if value is not None})
        return payload


@dataclass
class ScheduleSpec:
    id: str
    project: str
    schedule: str
    target_service: TargetIds
    transport: str = "pubsub"
    time_zone: str | None = None
    retry_config: ScheduleRetryConfig | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "project": self.project,
            "schedule": self.schedule,
            "transport": self.transport,
            "targetService": self.target_service.to_dict(),
        }
        if self.time_zone is not None:
            payload["timeZone"] = self.time_zone
        if self.retry_config is not None:
            payload["retryConfig"] = self.retry_config.to_dict()
        return payload


@dataclass
class PubSubSpec:
    id: str
    project: str
    target_service: TargetIds
    labels: dict[str, str] = field(default_factory=lambda: dict(SCHEDULED_FUNCTION_LABEL))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project": self.project,
            "labels": dict(self.labels),
            "targetService": self.target_service.to_dict(),
        }


@dataclass
class Backend:
    """Aggregate of everything one discovery run wants deployed.

    Examples
    --------
    >>> backend = Backend()
    >>> backend.cloud_functions, backend.required_apis
    ([], {})
    """

    cloud_functions: list[FunctionSpec] = field(default_factory=list)
    schedules: list[ScheduleSpec] = field(default_factory=list)
    topics: list[PubSubSpec] = field(default_factory=list)
    required_apis: dict[str, str] = field(default_factory=dict)
    environment_variables: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase wire shape consumed by deployment planning."""

        return {
            "cloudFunctions": [spec.to_dict() for spec in self.cloud_functions],
            "schedules": [spec.to_dict() for spec in self.schedules],
            "topics": [spec.to_dict() for spec in self.topics],
            "requiredAPIs": dict(self.required_apis),
            "environmentVariables": dict(self.environment_variables),
        }


def schedule_id_for_function(target: TargetIds) -> str:
    """Return the id shared by the scheduler job and topic of *target*.

    Examples
    --------
    >>> schedule_id_for_function(TargetIds(id="nightly", region="europe-west1", project="demo"))
    'firebase-schedule-nightly-europe-west1'
    """

    return f"firebase-schedule-{target.id}-{target.region}"


def copy_if_present(target: object, source: object, *fields: str) -> None:
    """Assign each named attribute of *source* onto *target* unless it is ``None``.

    Mappings and lists are copied so the target never aliases the source.
    """

    for name in fields:
        value = getattr(source, name)
        if value is None:
            continue
        setattr(target, name, _detach(value))


def _detach(value: Any) -> Any:
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, list):
        return list(value)
    return value
