"""Behaviour of the annotation → backend fold.

Covers region fan-out, trigger defaults, VPC connector expansion, schedule
and topic creation, and the async discovery entry point with fake ports.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_functions_discovery.application.builder import add_resources_to_backend, discover_backend
from lib_functions_discovery.domain.annotation import TriggerAnnotation
from lib_functions_discovery.domain.backend import Backend, EventTrigger, HttpsTrigger
from lib_functions_discovery.domain.errors import DiscoveryError, UnexpectedAnnotationError


class FakeDiscoverer:
    """In-memory discovery port returning canned annotations."""

    def __init__(self, annotations: Sequence[Mapping[str, Any]] = (), error: Exception | None = None) -> None:
        self.annotations = list(annotations)
        self.error = error
        self.calls: list[tuple[Any, ...]] = []

    async def discover(self, project_id, source_dir, config_values, envs):
        self.calls.append((project_id, source_dir, dict(config_values), dict(envs)))
        if self.error is not None:
            raise self.error
        return self.annotations


def _fold(raw: Mapping[str, Any], **kwargs: Any) -> Backend:
    want = Backend()
    add_resources_to_backend("demo", "nodejs16", raw, want, **kwargs)
    return want


def test_missing_regions_use_default_region(https_annotation) -> None:
    want = _fold(https_annotation())
    assert [(fn.id, fn.region, fn.project) for fn in want.cloud_functions] == [("api", "us-central1", "demo")]


def test_empty_regions_use_default_region(https_annotation) -> None:
    want = _fold(https_annotation(regions=[]), default_region="europe-west1")
    assert [fn.region for fn in want.cloud_functions] == ["europe-west1"]


@given(st.lists(st.sampled_from(["us-east1", "europe-west1", "asia-east1", "us-west2"]), min_size=1, unique=True))
def test_one_function_per_region(regions: list[str]) -> None:
    raw = {"name": "api", "entryPoint": "api", "httpsTrigger": {}, "regions": regions}
    want = _fold(raw)
    assert [fn.region for fn in want.cloud_functions] == regions
    assert all(fn.entry_point == "api" and fn.runtime == "nodejs16" for fn in want.cloud_functions)


@pytest.mark.parametrize(
    "platform,trigger,expected",
    [
        (None, {}, True),
        ("gcfv1", {}, True),
        ("gcfv2", {}, False),
        ("gcfv2", {"allowInsecure": True}, True),
        (None, {"allowInsecure": False}, False),
    ],
)
def test_allow_insecure_defaults(https_annotation, platform, trigger, expected) -> None:
    raw = https_annotation(httpsTrigger=trigger)
    if platform is not None:
        raw["platform"] = platform
    function = _fold(raw).cloud_functions[0]
    assert function.trigger == HttpsTrigger(allow_insecure=expected)


def test_platform_defaults_to_gcfv1(https_annotation) -> None:
    assert _fold(https_annotation()).cloud_functions[0].platform == "gcfv1"
    assert _fold(https_annotation(platform="gcfv2")).cloud_functions[0].platform == "gcfv2"


def test_event_trigger_retry_follows_failure_policy(event_annotation) -> None:
    plain = _fold(event_annotation()).cloud_functions[0]
    retried = _fold(event_annotation(failurePolicy={})).cloud_functions[0]
    assert plain.trigger == EventTrigger(
        event_type="google.storage.object.finalize",
        event_filters={"resource": "projects/_/buckets/uploads"},
        retry=False,
    )
    assert isinstance(retried.trigger, EventTrigger) and retried.trigger.retry is True


def test_https_failure_policy_is_ignored_with_warning(https_annotation, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="lib_functions_discovery")
    function = _fold(https_annotation(failurePolicy={})).cloud_functions[0]
    assert isinstance(function.trigger, HttpsTrigger)
    assert any(record.getMessage() == "https_retry_ignored" for record in caplog.records)


def test_short_vpc_connector_expanded_per_region(https_annotation) -> None:
    want = _fold(https_annotation(vpcConnector="conn", regions=["us-east1", "europe-west1"]))
    assert [fn.vpc_connector for fn in want.cloud_functions] == [
        "projects/demo/locations/us-east1/connectors/conn",
        "projects/demo/locations/europe-west1/connectors/conn",
    ]


def test_qualified_vpc_connector_kept(https_annotation) -> None:
    connector = "projects/other/locations/us-east1/connectors/shared"
    assert _fold(https_annotation(vpcConnector=connector)).cloud_functions[0].vpc_connector == connector


def test_passthrough_fields_copied(https_annotation) -> None:
    raw = https_annotation(
        availableMemoryMb=512,
        timeout="120s",
        maxInstances=10,
        minInstances=1,
        concurrency=80,
        serviceAccountEmail="svc@demo.iam.gserviceaccount.com",
        ingressSettings="ALLOW_ALL",
        vpcConnectorEgressSettings="PRIVATE_RANGES_ONLY",
        labels={"team": "core"},
        invoker=["public"],
    )
    payload = _fold(raw).cloud_functions[0].to_dict()
    assert payload["availableMemoryMb"] == 512
    assert payload["timeout"] == "120s"
    assert (payload["maxInstances"], payload["minInstances"], payload["concurrency"]) == (10, 1, 80)
    assert payload["serviceAccountEmail"] == "svc@demo.iam.gserviceaccount.com"
    assert payload["ingressSettings"] == "ALLOW_ALL"
    assert payload["vpcConnectorEgressSettings"] == "PRIVATE_RANGES_ONLY"
    assert payload["labels"] == {"team": "core"}
    assert payload["invoker"] == ["public"]


def test_absent_optional_fields_are_not_set(https_annotation) -> None:
    function = _fold(https_annotation()).cloud_functions[0]
    assert function.labels is None
    assert function.timeout is None
    assert "labels" not in function.to_dict()


def test_scheduled_function_creates_schedule_and_topic(scheduled_annotation) -> None:
    raw = scheduled_annotation(
        regions=["us-east1", "europe-west1"],
        labels={"team": "ops"},
        schedule={"schedule": "every 5 minutes", "timeZone": "UTC", "retryConfig": {"retryCount": 1}},
    )
    want = _fold(raw)

    assert want.required_apis == {
        "pubsub": "pubsub.googleapis.com",
        "scheduler": "cloudscheduler.googleapis.com",
    }
    assert [schedule.id for schedule in want.schedules] == [
        "firebase-schedule-nightly-us-east1",
        "firebase-schedule-nightly-europe-west1",
    ]
    assert [topic.id for topic in want.topics] == [schedule.id for schedule in want.schedules]
    assert all(topic.labels == {"deployment": "firebase-schedule"} for topic in want.topics)

    first = want.schedules[0]
    assert first.schedule == "every 5 minutes"
    assert first.time_zone == "UTC"
    assert first.retry_config is not None and first.retry_config.retry_count == 1
    assert first.transport == "pubsub"
    assert first.target_service == want.cloud_functions[0].target_ids


def test_scheduled_resource_rewritten_per_region(scheduled_annotation) -> None:
    want = _fold(scheduled_annotation(regions=["us-east1", "europe-west1"]))
    resources = [fn.trigger.event_filters["resource"] for fn in want.cloud_functions]
    assert resources == [
        "projects/demo/topics/firebase-schedule-nightly-us-east1",
        "projects/demo/topics/firebase-schedule-nightly-europe-west1",
    ]


def test_scheduled_labels_merged_without_aliasing(scheduled_annotation) -> None:
    annotation = TriggerAnnotation.from_mapping(
        scheduled_annotation(regions=["us-east1", "europe-west1"], labels={"team": "ops"})
    )
    want = Backend()
    add_resources_to_backend("demo", "nodejs16", annotation, want)

    first, second = want.cloud_functions
    assert first.labels == {"team": "ops", "deployment-scheduled": "true"}
    assert first.labels is not second.labels
    assert dict(annotation.labels or {}) == {"team": "ops"}


def test_unscheduled_functions_leave_backend_lists_empty(https_annotation) -> None:
    want = _fold(https_annotation())
    assert (want.schedules, want.topics, want.required_apis) == ([], [], {})


def test_annotations_accumulate_in_order(https_annotation, event_annotation) -> None:
    want = Backend()
    add_resources_to_backend("demo", "nodejs16", https_annotation(), want)
    add_resources_to_backend("demo", "nodejs16", event_annotation(), want)
    assert [fn.id for fn in want.cloud_functions] == ["api", "onUpload"]


def test_invalid_annotation_raises(https_annotation) -> None:
    raw = https_annotation(eventTrigger={"eventType": "x", "resource": "y"})
    with pytest.raises(UnexpectedAnnotationError):
        _fold(raw)


def test_discover_backend_folds_every_annotation(https_annotation, scheduled_annotation) -> None:
    discoverer = FakeDiscoverer([https_annotation(), scheduled_annotation()])
    want = asyncio.run(
        discover_backend(
            "demo",
            "/src",
            "nodejs16",
            {"service": {"key": "v"}},
            {"API_URL": "https://x"},
            discoverer=discoverer,
        )
    )
    assert discoverer.calls == [("demo", "/src", {"service": {"key": "v"}}, {"API_URL": "https://x"})]
    assert [fn.id for fn in want.cloud_functions] == ["api", "nightly"]
    assert len(want.schedules) == len(want.topics) == 1
    assert want.environment_variables == {"API_URL": "https://x"}


def test_discover_backend_environment_is_a_copy() -> None:
    envs = {"A": "1"}
    want = asyncio.run(discover_backend("demo", "/src", "nodejs16", {}, envs, discoverer=FakeDiscoverer()))
    envs["A"] = "2"
    assert want.environment_variables == {"A": "1"}


def test_discover_backend_propagates_discovery_error() -> None:
    discoverer = FakeDiscoverer(error=DiscoveryError("Parser crashed", exit_code=1))
    with pytest.raises(DiscoveryError, match="Parser crashed") as info:
        asyncio.run(discover_backend("demo", "/src", "nodejs16", {}, {}, discoverer=discoverer))
    assert info.value.exit_code == 1


def test_discover_backend_uses_default_region(https_annotation) -> None:
    want = asyncio.run(
        discover_backend(
            "demo",
            "/src",
            "nodejs16",
            {},
            {},
            discoverer=FakeDiscoverer([https_annotation()]),
            default_region="asia-east1",
        )
    )
    assert want.cloud_functions[0].region == "asia-east1"
