"""Public package surface for ``lib_functions_discovery``.

Discovery turns the trigger annotations of a functions project into the
desired backend (functions, schedules, topics); export turns a legacy runtime
configuration snapshot into dotenv files.
"""

from __future__ import annotations

from .application.builder import add_resources_to_backend, discover_backend
from .application.export import (
    ConfigToEnvResult,
    EnvMapping,
    config_to_env,
    convert_key,
    flatten_config,
    to_dotenv_format,
)
from .core import (
    ExportResult,
    ProjectConversion,
    TargetProject,
    convert_projects,
    discover,
    export_config,
    load_settings,
)
from .domain.annotation import ScheduleAnnotation, ScheduleRetryConfig, TriggerAnnotation
from .domain.backend import (
    DEFAULT_REGION,
    Backend,
    EventTrigger,
    FunctionSpec,
    HttpsTrigger,
    PubSubSpec,
    ScheduleSpec,
    TargetIds,
    schedule_id_for_function,
)
from .domain.env_keys import validate_key
from .domain.errors import (
    ConversionError,
    DiscoveryError,
    FunctionsError,
    InvalidFormat,
    KeyValidationError,
    NotFound,
    UnexpectedAnnotationError,
)
from .domain.settings import Settings
from .observability import bind_trace_id, get_logger

__all__ = [
    "DEFAULT_REGION",
    "Backend",
    "ConfigToEnvResult",
    "ConversionError",
    "DiscoveryError",
    "EnvMapping",
    "EventTrigger",
    "ExportResult",
    "FunctionSpec",
    "FunctionsError",
    "HttpsTrigger",
    "InvalidFormat",
    "KeyValidationError",
    "NotFound",
    "ProjectConversion",
    "PubSubSpec",
    "ScheduleAnnotation",
    "ScheduleRetryConfig",
    "ScheduleSpec",
    "Settings",
    "TargetIds",
    "TargetProject",
    "TriggerAnnotation",
    "UnexpectedAnnotationError",
    "add_resources_to_backend",
    "bind_trace_id",
    "config_to_env",
    "convert_key",
    "convert_projects",
    "discover",
    "discover_backend",
    "export_config",
    "flatten_config",
    "get_logger",
    "load_settings",
    "schedule_id_for_function",
    "to_dotenv_format",
    "validate_key",
]
