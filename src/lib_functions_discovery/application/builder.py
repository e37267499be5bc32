"""Fold trigger annotations into the desired backend.

Purpose
-------
Translate the SDK's per-function annotations into deployable resources:
one :class:`FunctionSpec` per region, plus a scheduler job and pub/sub topic
for scheduled functions. The module is free of I/O apart from awaiting the
discovery port, so the same inputs always yield the same backend.

Contents
    - ``discover_backend``: awaits the discovery port and folds every
      annotation into a fresh :class:`Backend`.
    - ``add_resources_to_backend``: the per-annotation fan-out over regions.
    - ``_build_trigger`` / ``_build_function`` / ``_add_schedule``: small
      stanzas for each rule.

System Role
-----------
Called by :func:`lib_functions_discovery.core.discover`. The resulting backend
is handed to deployment planning and not mutated afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from ..domain.annotation import (
    PLATFORM_GCFV1,
    EventTriggerAnnotation,
    HttpsTriggerAnnotation,
    ScheduleAnnotation,
    TriggerAnnotation,
)
from ..domain.backend import (
    DEFAULT_REGION,
    SCHEDULE_APIS,
    SCHEDULED_LABEL_KEY,
    Backend,
    EventTrigger,
    FunctionSpec,
    HttpsTrigger,
    PubSubSpec,
    ScheduleSpec,
    TargetIds,
    Trigger,
    copy_if_present,
    schedule_id_for_function,
)
from ..domain.errors import UnexpectedAnnotationError
from ..observability import log_debug, log_info, log_warning, make_event
from .ports import AnnotationDiscoverer

_PASSTHROUGH_FIELDS = (
    "concurrency",
    "service_account_email",
    "labels",
    "vpc_connector_egress_settings",
    "ingress_settings",
    "timeout",
    "max_instances",
    "min_instances",
    "available_memory_mb",
    "invoker",
)


async def discover_backend(
    project_id: str,
    source_dir: str,
    runtime: str,
    config_values: Mapping[str, Any],
    envs: Mapping[str, str],
    *,
    discoverer: AnnotationDiscoverer,
    default_region: str = DEFAULT_REGION,
) -> Backend:
    """Discover the annotations under *source_dir* and build the desired backend.

    Parameters
    ----------
    project_id:
        Project every resource is created in.
    source_dir:
        Root of the user's function project, handed to the discoverer.
    runtime:
        Runtime identifier stamped on every function (e.g. ``"nodejs16"``).
    config_values / envs:
        Forwarded to the discoverer; ``envs`` also seeds
        :attr:`Backend.environment_variables`.
    discoverer:
        Implementation of :class:`~lib_functions_discovery.application.ports.AnnotationDiscoverer`.

    Raises
    ------
    DiscoveryError
        Propagated unchanged from the discoverer.
    UnexpectedAnnotationError
        When any annotation breaks the SDK contract. Resources folded from
        earlier annotations are not rolled back.
    """

    annotations = await discoverer.discover(project_id, source_dir, config_values, envs)
    log_info("annotations_discovered", **make_event(project_id, None, {"count": len(annotations)}))
    want = Backend(environment_variables=dict(envs))
    for annotation in annotations:
        add_resources_to_backend(project_id, runtime, annotation, want, default_region=default_region)
    return want


def add_resources_to_backend(
    project_id: str,
    runtime: str,
    annotation: TriggerAnnotation | Mapping[str, Any],
    want: Backend,
    *,
    default_region: str = DEFAULT_REGION,
) -> None:
    """Append the resources described by *annotation* to *want*.

    Every region listed by the annotation (or *default_region* when the list
    is missing or empty) yields an independent function, and for scheduled
    functions an independent schedule and topic.

    Examples
    --------
    >>> want = Backend()
    >>> add_resources_to_backend(
    ...     "demo", "nodejs16",
    ...     {"name": "api", "entryPoint": "api", "httpsTrigger": {}, "regions": ["us-east1", "europe-west1"]},
    ...     want,
    ... )
    >>> [(fn.id, fn.region, fn.trigger.allow_insecure) for fn in want.cloud_functions]
    [('api', 'us-east1', True), ('api', 'europe-west1', True)]
    """

    if not isinstance(annotation, TriggerAnnotation):
        annotation = TriggerAnnotation.from_mapping(annotation)

    for region in annotation.regions or (default_region,):
        trigger = _build_trigger(annotation)
        target = TargetIds(id=annotation.name, region=region, project=project_id)
        function = _build_function(annotation, target, runtime, trigger)

        if annotation.schedule is not None:
            _add_schedule(annotation.schedule, function, want)

        want.cloud_functions.append(function)
        log_debug(
            "function_added",
            **make_event(project_id, region, {"function": annotation.name, "platform": function.platform}),
        )


def _build_trigger(annotation: TriggerAnnotation) -> Trigger:
    spec = annotation.trigger
    if isinstance(spec, HttpsTriggerAnnotation):
        if spec.allow_insecure is not None:
            allow_insecure = spec.allow_insecure
        else:
            allow_insecure = annotation.platform in (None, PLATFORM_GCFV1)
        if annotation.failure_policy is not None:
            log_warning(
                "https_retry_ignored",
                **make_event(None, None, {"function": annotation.name}),
            )
        return HttpsTrigger(allow_insecure=allow_insecure)
    if isinstance(spec, EventTriggerAnnotation):
        return EventTrigger(
            event_type=spec.event_type,
            event_filters={"resource": spec.resource},
            retry=annotation.failure_policy is not None,
        )
    raise UnexpectedAnnotationError(
        f"Unexpected annotation generated by the functions SDK for {annotation.name!r}. This should never happen."
    )


def _build_function(
    annotation: TriggerAnnotation,
    target: TargetIds,
    runtime: str,
    trigger: Trigger,
) -> FunctionSpec:
    function = FunctionSpec(
        platform=annotation.platform or PLATFORM_GCFV1,
        id=target.id,
        region=target.region,
        project=target.project,
        entry_point=annotation.entry_point,
        runtime=runtime,
        trigger=trigger,
    )
    if annotation.vpc_connector:
        connector = annotation.vpc_connector
        if "/" not in connector:
            connector = f"projects/{target.project}/locations/{target.region}/connectors/{connector}"
        function.vpc_connector = connector
    copy_if_present(function, annotation, *_PASSTHROUGH_FIELDS)
    return function


def _add_schedule(schedule_annotation: ScheduleAnnotation, function: FunctionSpec, want: Backend) -> None:
    want.required_apis.update(SCHEDULE_APIS)

    target = function.target_ids
    schedule_id = schedule_id_for_function(target)
    schedule = ScheduleSpec(
        id=schedule_id,
        project=target.project,
        schedule=schedule_annotation.schedule,
        target_service=target,
    )
    copy_if_present(schedule, schedule_annotation, "time_zone", "retry_config")
    topic = PubSubSpec(id=schedule_id, project=target.project, target_service=target)

    # The SDK omits the topic id from the event resource of scheduled functions.
    if isinstance(function.trigger, EventTrigger):
        filters = dict(function.trigger.event_filters)
        filters["resource"] = f"{filters['resource']}/{schedule_id}"
        function.trigger = replace(function.trigger, event_filters=filters)

    function.labels = {**(function.labels or {}), SCHEDULED_LABEL_KEY: "true"}
    want.schedules.append(schedule)
    want.topics.append(topic)
    log_debug("schedule_added", **make_event(target.project, target.region, {"schedule_id": schedule_id}))
