"""Resource descriptor builder.

This module builds the OpenTelemetry Resource that identifies the service
producing telemetry. The descriptor is the merge, later sources winning on
key collision, of:

    1. the SDK default descriptor (``telemetry.sdk.*``)
    2. the configured service identity, carrying the schema URL
    3. ``OTEL_RESOURCE_ATTRIBUTES`` / ``OTEL_SERVICE_NAME`` from the environment
    4. host-detected attributes
"""

from __future__ import annotations

import logging
import os
import platform
from collections.abc import Mapping
from typing import Any
from urllib.parse import unquote

from opentelemetry.sdk.resources import (
    HOST_ARCH,
    HOST_NAME,
    OS_DESCRIPTION,
    OS_TYPE,
    SERVICE_NAME,
    TELEMETRY_SDK_LANGUAGE,
    TELEMETRY_SDK_NAME,
    TELEMETRY_SDK_VERSION,
    Resource,
    ResourceDetector,
)
from opentelemetry.sdk.version import __version__ as sdk_version

from otelruntimemetrics.config import ResourceConfig
from otelruntimemetrics.exceptions import ResourceConstructionError

__all__ = [
    "OTEL_RESOURCE_ATTRIBUTES_ENV",
    "OTEL_SERVICE_NAME_ENV",
    "EnvironmentResourceDetector",
    "HostResourceDetector",
    "build_resource",
    "get_default_resource",
    "merge_resources",
    "parse_resource_attributes",
]

logger = logging.getLogger(__name__)

OTEL_RESOURCE_ATTRIBUTES_ENV = "OTEL_RESOURCE_ATTRIBUTES"
OTEL_SERVICE_NAME_ENV = "OTEL_SERVICE_NAME"


def parse_resource_attributes(raw: str | None) -> dict[str, str]:
    """Parse an ``OTEL_RESOURCE_ATTRIBUTES`` value.

    The value is a comma separated list of ``key=value`` pairs with
    percent-encoded values. Blank entries are ignored.

    Args:
        raw: Raw environment variable value.

    Returns:
        Parsed attributes.

    Raises:
        ResourceConstructionError: If an entry has no ``=`` or an empty key.

    Example:
        >>> parse_resource_attributes("team=core,region=eu%2Dwest")
        {'team': 'core', 'region': 'eu-west'}
    """
    attributes: dict[str, str] = {}
    if not raw or not raw.strip():
        return attributes

    for entry in raw.split(","):
        if not entry.strip():
            continue
        key, sep, value = entry.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ResourceConstructionError(
                f"Malformed {OTEL_RESOURCE_ATTRIBUTES_ENV} entry: {entry.strip()!r}",
                source=OTEL_RESOURCE_ATTRIBUTES_ENV,
                details={"entry": entry.strip()},
            )
        attributes[key] = unquote(value.strip())
    return attributes


class EnvironmentResourceDetector(ResourceDetector):
    """Detects resource attributes from the standard OpenTelemetry variables.

    Unlike the SDK's lenient detector, a malformed entry is an error.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        super().__init__(raise_on_error=True)
        self._environ = environ if environ is not None else os.environ

    def detect(self) -> Resource:
        attributes: dict[str, Any] = dict(
            parse_resource_attributes(self._environ.get(OTEL_RESOURCE_ATTRIBUTES_ENV))
        )
        service_name = self._environ.get(OTEL_SERVICE_NAME_ENV, "").strip()
        if service_name:
            attributes[SERVICE_NAME] = service_name
        return Resource(attributes)


class HostResourceDetector(ResourceDetector):
    """Detects host and operating system attributes."""

    def __init__(self) -> None:
        super().__init__(raise_on_error=True)

    def detect(self) -> Resource:
        attributes = {
            HOST_NAME: platform.node(),
            HOST_ARCH: platform.machine(),
            OS_TYPE: platform.system().lower(),
            OS_DESCRIPTION: platform.platform(),
        }
        # platform returns "" for values it cannot determine
        return Resource({key: value for key, value in attributes.items() if value})


def get_default_resource() -> Resource:
    """Get the SDK default descriptor.

    Returns:
        Resource with the ``telemetry.sdk.*`` attributes and an
        ``unknown_service`` name.
    """
    return Resource(
        {
            TELEMETRY_SDK_LANGUAGE: "python",
            TELEMETRY_SDK_NAME: "opentelemetry",
            TELEMETRY_SDK_VERSION: sdk_version,
            SERVICE_NAME: "unknown_service",
        }
    )


def merge_resources(*resources: Resource) -> Resource:
    """Merge multiple resources into one.

    Later resources take precedence over earlier ones for conflicting keys.

    Args:
        resources: Resources to merge.

    Returns:
        Merged Resource.
    """
    if not resources:
        return Resource.get_empty()

    result = resources[0]
    for resource in resources[1:]:
        result = result.merge(resource)

    return result


def build_resource(
    config: ResourceConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> Resource:
    """Build the resource descriptor shared by both providers.

    Args:
        config: Service identity configuration. If None, uses defaults.
        environ: Environment to read ``OTEL_*`` variables from.
            Defaults to ``os.environ``.

    Returns:
        Merged OpenTelemetry Resource.

    Raises:
        ResourceConstructionError: If the environment is malformed or a
            detector fails.

    Example:
        resource = build_resource(ResourceConfig(service_name="client"))
        resource.attributes["service.name"]
    """
    config = config or ResourceConfig()

    identity = Resource(config.to_attributes(), schema_url=config.schema_url)
    detectors: list[ResourceDetector] = [
        EnvironmentResourceDetector(environ),
        HostResourceDetector(),
    ]

    detected: list[Resource] = []
    for detector in detectors:
        try:
            detected.append(detector.detect())
        except ResourceConstructionError:
            raise
        except Exception as e:
            raise ResourceConstructionError(
                f"Resource detector {type(detector).__name__} failed: {e}",
                source=type(detector).__name__,
                cause=e,
            ) from e

    resource = merge_resources(get_default_resource(), identity, *detected)
    logger.debug(f"Built resource with {len(resource.attributes)} attributes")
    return resource
