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
Image reference parsing and resolution.
Builds references like 'inventory-service:1.0.0' or 'ghcr.io/acme/order-service:2.1'.
"""

from typing import Optional
from dataclasses import dataclass

from ..MODELS.service_descriptor import GlobalDefaults, ImageSpec, PullPolicy


@dataclass(frozen=True)
class ImageReference:
    """
    A container image reference split into its parts.
    Empty registry or namespace parts are left out when rendered.

    Examples:
        - inventory-service:1.0.0 -> registry='', namespace='', repository='inventory-service'
        - acme/inventory-service:1.0.0 -> namespace='acme'
        - ghcr.io/acme/inventory-service:1.0.0 -> registry='ghcr.io', namespace='acme'
        - localhost:5000/inventory-service@sha256:abc -> registry='localhost:5000', digest='sha256:abc'
    """

    registry: str
    namespace: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse an image reference string without applying any defaults.

        Args:
            reference: Image reference string (e.g., 'acme/inventory-service:1.0.0')

        Returns:
            Parsed ImageReference object.
        """
        if not reference:
            raise ValueError("Empty image reference")

        digest = None
        if "@" in reference:
            reference, digest = reference.rsplit("@", 1)

        tag = None
        last_colon = reference.rfind(":")
        if last_colon != -1 and "/" not in reference[last_colon + 1:]:
            tag = reference[last_colon + 1:]
            reference = reference[:last_colon]

        parts = reference.split("/")
        registry = ""
        if len(parts) > 1 and _looks_like_host(parts[0]):
            registry = parts.pop(0)

        return cls(
            registry=registry,
            namespace="/".join(parts[:-1]),
            repository=parts[-1],
            tag=tag,
            digest=digest,
        )

    @classmethod
    def resolve(cls, image: ImageSpec, defaults: GlobalDefaults) -> "ImageReference":
        """
        Resolve a service's image against the global defaults.

        A repository that already names its own registry or namespace keeps
        them; otherwise the service override, then the global default, applies.

        Args:
            image: The service's image spec; ``repository`` must be set.
            defaults: The chart-wide defaults.

        Returns:
            The resolved ImageReference.
        """
        if not image.repository:
            raise ValueError("image.repository is not set")

        parsed = cls.parse(image.repository)
        registry = parsed.registry or image.registry or defaults.image_registry
        namespace = parsed.namespace or image.namespace or defaults.image_namespace
        return cls(
            registry=registry or "",
            namespace=namespace or "",
            repository=parsed.repository,
            tag=parsed.tag or image.tag,
            digest=parsed.digest,
        )

    @staticmethod
    def pull_policy(image: ImageSpec, defaults: GlobalDefaults) -> PullPolicy:
        """The service's pull policy, falling back to the global default."""
        return image.pull_policy or defaults.image_pull_policy

    @property
    def full_name(self) -> str:
        """Get the full reference with every non-empty part."""
        name = "/".join(p for p in (self.registry, self.namespace, self.repository) if p)
        if self.digest:
            return f"{name}@{self.digest}"
        if self.tag:
            return f"{name}:{self.tag}"
        return name

    def __str__(self) -> str:
        return self.full_name

    def __repr__(self) -> str:
        return f"ImageReference({self.full_name})"


def _looks_like_host(part: str) -> bool:
    return "." in part or ":" in part or part == "localhost"
