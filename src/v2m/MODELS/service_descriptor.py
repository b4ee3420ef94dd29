# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Models for service descriptors and the global defaults applied to them.
"""
from typing import Any, Dict, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

NODE_PORT_MIN = 30000
NODE_PORT_MAX = 32767


def _reject_bool(cls, value: Any) -> Any:
    # bool is an int subclass, so `replicas: true` would pass as 1
    if isinstance(value, bool):
        raise ValueError("expected an integer, not a boolean")
    return value


class ValuesModel(BaseModel):
    """
    Base for every model read from a values tree.
    Accepts the camelCase keys used in values files as well as field names.
    """
    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)


class PullPolicy(str, Enum):
    """
    When the orchestrator should pull the container image.
    """
    ALWAYS = "Always"
    IF_NOT_PRESENT = "IfNotPresent"
    NEVER = "Never"


class ExposureType(str, Enum):
    """
    Declared reachability of a service.
    """
    INTERNAL = "Internal"
    NODE_EXPOSED = "NodeExposed"


class ImageSpec(ValuesModel):
    """
    Container image of a service. Registry, namespace and pull policy fall
    back to the global defaults when unset.
    """
    repository: Optional[str] = None
    tag: str = "latest"
    registry: Optional[str] = None
    namespace: Optional[str] = None
    pull_policy: Optional[PullPolicy] = Field(default=None, alias="pullPolicy")

    @field_validator("tag", mode="before")
    @classmethod
    def _tag_to_str(cls, value: Any) -> Any:
        # YAML reads `tag: 1.10` as the float 1.1
        if isinstance(value, float):
            raise ValueError(f"{value!r} was read as a number; quote the tag so it is kept as written")
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ExposureSpec(ValuesModel):
    """
    How a service is reached: internal only, or on a fixed node port.
    """
    type: ExposureType = ExposureType.INTERNAL
    external_port: Optional[int] = Field(default=None, alias="externalPort")

    _no_bool_port = field_validator("external_port", mode="before")(_reject_bool)


class ResourceLimits(ValuesModel):
    """
    CPU and memory requests/limits. Unset fields inherit from the global defaults.
    """
    requests_cpu: Optional[str] = Field(default=None, alias="requestsCPU")
    requests_mem: Optional[str] = Field(default=None, alias="requestsMem")
    limits_cpu: Optional[str] = Field(default=None, alias="limitsCPU")
    limits_mem: Optional[str] = Field(default=None, alias="limitsMem")

    def merged_over(self, defaults: "ResourceLimits") -> "ResourceLimits":
        """
        Returns a copy where every unset field is taken from ``defaults``.

        :param defaults: The limits to fall back to.
        :return: The resolved limits.
        """
        return ResourceLimits(
            requests_cpu=self.requests_cpu or defaults.requests_cpu,
            requests_mem=self.requests_mem or defaults.requests_mem,
            limits_cpu=self.limits_cpu or defaults.limits_cpu,
            limits_mem=self.limits_mem or defaults.limits_mem,
        )


LIVENESS_DEFAULTS = {"initial_delay_seconds": 60, "period_seconds": 10}
READINESS_DEFAULTS = {"initial_delay_seconds": 30, "period_seconds": 5}


class ProbeSettings(ValuesModel):
    """
    Timing of a single HTTP probe.
    """
    initial_delay_seconds: int = Field(default=30, alias="initialDelaySeconds", gt=0)
    period_seconds: int = Field(default=10, alias="periodSeconds", gt=0)
    timeout_seconds: int = Field(default=5, alias="timeoutSeconds", gt=0)
    failure_threshold: int = Field(default=3, alias="failureThreshold", gt=0)


class ProbeDefaults(ValuesModel):
    """
    Liveness and readiness probes shared by every workload.
    Liveness waits longer before its first check than readiness does.
    """
    path: str = "/actuator/health"
    liveness: ProbeSettings = Field(default_factory=lambda: ProbeSettings(**LIVENESS_DEFAULTS))
    readiness: ProbeSettings = Field(default_factory=lambda: ProbeSettings(**READINESS_DEFAULTS))

    @model_validator(mode="before")
    @classmethod
    def _fill_probe_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for probe, defaults in (("liveness", LIVENESS_DEFAULTS), ("readiness", READINESS_DEFAULTS)):
            settings = data.get(probe)
            if not isinstance(settings, dict):
                continue
            settings = dict(settings)
            for field, default in defaults.items():
                alias = ProbeSettings.model_fields[field].alias
                if field not in settings and alias not in settings:
                    settings[alias] = default
            data[probe] = settings
        return data

    @model_validator(mode="after")
    def _liveness_starts_later(self) -> "ProbeDefaults":
        if self.liveness.initial_delay_seconds <= self.readiness.initial_delay_seconds:
            raise ValueError(
                "liveness initialDelaySeconds must be greater than readiness initialDelaySeconds"
            )
        return self


class GlobalDefaults(ValuesModel):
    """
    Values applied to every service unless the service overrides them.
    """
    image_registry: str = Field(default="", alias="imageRegistry")
    image_namespace: str = Field(default="", alias="imageNamespace")
    image_pull_policy: PullPolicy = Field(default=PullPolicy.IF_NOT_PRESENT, alias="imagePullPolicy")
    resource_limits: ResourceLimits = Field(
        default_factory=lambda: ResourceLimits(
            requests_cpu="250m",
            requests_mem="256Mi",
            limits_cpu="500m",
            limits_mem="512Mi",
        ),
        alias="resourceLimits",
    )
    probes: ProbeDefaults = Field(default_factory=ProbeDefaults)


class ServiceDescriptor(ValuesModel):
    """
    The declarative record describing one deployable service.
    """
    name: str
    enabled: bool = True
    replicas: int = 1
    image: ImageSpec = Field(default_factory=ImageSpec)
    port: Optional[int] = Field(default=None, gt=0, le=65535)

    # Environment
    config_entries: Dict[str, str] = Field(default_factory=dict, alias="configEntries")
    secret_ref: Optional[str] = Field(default=None, alias="secretRef")

    # Networking
    exposure: ExposureSpec = Field(default_factory=ExposureSpec)

    # Resources
    resources: Optional[ResourceLimits] = None

    # Metadata
    labels: Dict[str, str] = Field(default_factory=dict)

    _no_bool_counts = field_validator("replicas", "port", mode="before")(_reject_bool)

    @field_validator("config_entries", mode="before")
    @classmethod
    def _entries_to_str(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {str(k): _scalar_to_str(v) for k, v in value.items()}

    @property
    def config_name(self) -> str:
        """Name of the ConfigMap holding this service's config entries."""
        return f"{self.name}-config"


def _scalar_to_str(value: Any) -> Any:
    """
    Renders a YAML scalar the way it would appear in an environment variable.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        raise ValueError(f"{value!r} was read as a number; quote the value so it is kept as written")
    if isinstance(value, int):
        return str(value)
    return value
