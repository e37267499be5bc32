"""Shared fixtures describing SDK annotations the way the functions SDK emits them."""

from __future__ import annotations

from typing import Any, Callable

import pytest

AnnotationFactory = Callable[..., dict[str, Any]]


@pytest.fixture()
def https_annotation() -> AnnotationFactory:
    """Return a factory for raw HTTPS annotations with optional overrides."""

    def _make(**overrides: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {"name": "api", "entryPoint": "api", "httpsTrigger": {}}
        raw.update(overrides)
        return raw

    return _make


@pytest.fixture()
def event_annotation() -> AnnotationFactory:
    """Return a factory for raw event annotations with optional overrides."""

    def _make(**overrides: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "name": "onUpload",
            "entryPoint": "onUpload",
            "eventTrigger": {
                "eventType": "google.storage.object.finalize",
                "resource": "projects/_/buckets/uploads",
                "service": "storage.googleapis.com",
            },
        }
        raw.update(overrides)
        return raw

    return _make


@pytest.fixture()
def scheduled_annotation() -> AnnotationFactory:
    """Return a factory for raw scheduled-function annotations."""

    def _make(**overrides: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "name": "nightly",
            "entryPoint": "nightly",
            "eventTrigger": {
                "eventType": "google.pubsub.topic.publish",
                "resource": "projects/demo/topics",
                "service": "pubsub.googleapis.com",
            },
            "schedule": {"schedule": "every 5 minutes"},
        }
        raw.update(overrides)
        return raw

    return _make
