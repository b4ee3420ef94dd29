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
Models for the documents produced by expansion.
"""
from typing import Any, Dict
from dataclasses import dataclass, field
from enum import Enum


class ResourceKind(str, Enum):
    """
    The three document kinds emitted per service, in emission order.
    """
    CONFIG = "Config"
    WORKLOAD = "Workload"
    EXPOSURE = "Exposure"

    @property
    def k8s_kind(self) -> str:
        """The Kubernetes kind this document kind is rendered as."""
        return _K8S_KINDS[self]


_K8S_KINDS = {
    ResourceKind.CONFIG: "ConfigMap",
    ResourceKind.WORKLOAD: "Deployment",
    ResourceKind.EXPOSURE: "Service",
}


@dataclass(frozen=True)
class ResourceDocument:
    """One expanded manifest, tagged with the service it came from."""

    kind: ResourceKind
    service: str
    name: str
    body: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"ResourceDocument({self.kind.k8s_kind}/{self.name})"
