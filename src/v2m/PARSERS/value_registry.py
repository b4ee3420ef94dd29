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
Builds typed, validated service descriptors from merged value trees.
"""
import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..MODELS.chart_values import ChartValues
from ..MODELS.errors import ValidationError
from ..MODELS.service_descriptor import (
    NODE_PORT_MAX,
    NODE_PORT_MIN,
    ExposureType,
    GlobalDefaults,
    ServiceDescriptor,
)
from ..REGISTRY.secret_resolver import SecretResolver
from ..UTILS.deep_merge import merge_values
from ..UTILS.k8s_names import is_dns_label, is_env_var_name, is_service_name

logger = logging.getLogger(__name__)


def load(base_values: Mapping[str, Any],
         overlay_values: Optional[Mapping[str, Any]] = None) -> List[ServiceDescriptor]:
    """
    Merges ``overlay_values`` onto ``base_values`` and returns the service
    descriptors in registry order.

    :raises ValidationError: If the merged tree is invalid.
    """
    return ValueRegistry().load(base_values, overlay_values)


class ValueRegistry:
    """
    Validates a value tree once and turns it into descriptors.

    Every problem found is collected and reported together in a single
    ValidationError; nothing is returned for an invalid tree.
    """

    def __init__(self, secret_resolver: Optional[SecretResolver] = None):
        """
        :param secret_resolver: Resolver for secretRef names. When omitted,
            one is built from the ``secrets`` section of the values.
        """
        self.secret_resolver = secret_resolver

    def load(self, base_values: Mapping[str, Any],
             overlay_values: Optional[Mapping[str, Any]] = None) -> List[ServiceDescriptor]:
        """
        :return: All descriptors, enabled or not, in registry order.
        """
        return list(self.load_chart(base_values, overlay_values).services)

    def load_chart(self, base_values: Mapping[str, Any],
                   overlay_values: Optional[Mapping[str, Any]] = None) -> ChartValues:
        """
        Merges and validates a value tree.

        :param base_values: The base values.
        :param overlay_values: The environment overlay, applied on top.
        :return: The typed chart.
        :raises ValidationError: Listing every problem in the merged tree.
        """
        merged = merge_values(base_values or {}, overlay_values or {})
        problems: List[str] = []

        namespace = merged.get("namespace")
        if namespace is not None and (not isinstance(namespace, str) or not is_dns_label(namespace)):
            problems.append(f"namespace: '{namespace}' is not a valid DNS-1123 label")
            namespace = None

        global_defaults = GlobalDefaults()
        try:
            global_defaults = GlobalDefaults.model_validate(merged.get("global") or {})
        except PydanticValidationError as e:
            problems.extend(_format_errors("global", e))

        secrets = self._parse_secrets(merged.get("secrets"), problems)
        resolver = self.secret_resolver or SecretResolver(secrets)

        descriptors: List[ServiceDescriptor] = []
        for path, entry in self._service_entries(merged.get("services"), problems):
            try:
                descriptors.append(ServiceDescriptor.model_validate(entry))
            except PydanticValidationError as e:
                problems.extend(_format_errors(path, e))

        problems.extend(self._check_descriptors(descriptors, resolver))

        if problems:
            logger.debug("Values rejected with %d problem(s)", len(problems))
            raise ValidationError(problems)

        chart = ChartValues(
            namespace=namespace,
            global_defaults=global_defaults,
            services=descriptors,
            secrets=secrets,
        )
        logger.info("Loaded %d service(s), %d enabled",
                    len(chart.services), len(chart.enabled_services))
        return chart

    def _service_entries(self, services: Any, problems: List[str]) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Normalizes the ``services`` section to (path, entry) pairs, each entry
        carrying its ``name``. Accepts a mapping keyed by name or a list.
        """
        entries: List[Tuple[str, Dict[str, Any]]] = []
        if services is None:
            return entries

        if isinstance(services, Mapping):
            for key, entry in services.items():
                path = f"services.{key}"
                if entry is None:
                    entry = {}
                if not isinstance(entry, Mapping):
                    problems.append(f"{path}: expected a mapping")
                    continue
                entry = dict(entry)
                entry.setdefault("name", str(key))
                entries.append((path, entry))
        elif isinstance(services, list):
            for index, entry in enumerate(services):
                path = f"services[{index}]"
                if not isinstance(entry, Mapping) or "name" not in entry:
                    problems.append(f"{path}: expected a mapping with a 'name'")
                    continue
                entries.append((path, dict(entry)))
        else:
            problems.append("services: expected a mapping or a list")
        return entries

    def _parse_secrets(self, secrets: Any, problems: List[str]) -> Optional[Dict[str, List[str]]]:
        if secrets is None:
            return None
        if not isinstance(secrets, Mapping):
            problems.append("secrets: expected a mapping of bundle name to key names")
            return None

        catalogue: Dict[str, List[str]] = {}
        for name, keys in secrets.items():
            keys = keys or []
            if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
                problems.append(f"secrets.{name}: expected a list of key names")
                continue
            catalogue[str(name)] = list(keys)
        return catalogue

    def _check_descriptors(self, descriptors: List[ServiceDescriptor],
                           resolver: SecretResolver) -> List[str]:
        """
        Cross-field and cross-service checks on enabled descriptors.
        """
        problems: List[str] = []
        enabled = [d for d in descriptors if d.enabled]

        for name, count in Counter(d.name for d in enabled).items():
            if count > 1:
                problems.append(f"services: name '{name}' is used by {count} enabled services")

        claimed_ports: Dict[int, str] = {}
        for svc in enabled:
            prefix = f"services.{svc.name}"
            if not is_service_name(svc.name):
                problems.append(f"{prefix}: name must be a DNS-1123 label of at most 56 characters")
            if not svc.image.repository:
                problems.append(f"{prefix}.image.repository: required")
            if svc.port is None:
                problems.append(f"{prefix}.port: required")
            if svc.replicas < 1:
                problems.append(f"{prefix}.replicas: must be at least 1 (set enabled: false to turn a service off)")

            for key in svc.config_entries:
                if not is_env_var_name(key):
                    problems.append(f"{prefix}.configEntries: '{key}' is not a valid variable name")

            problems.extend(self._check_exposure(svc, prefix, claimed_ports))
            problems.extend(self._check_secret(svc, prefix, resolver))
        return problems

    def _check_exposure(self, svc: ServiceDescriptor, prefix: str,
                        claimed_ports: Dict[int, str]) -> List[str]:
        problems: List[str] = []
        external_port = svc.exposure.external_port

        if svc.exposure.type == ExposureType.INTERNAL:
            if external_port is not None:
                problems.append(f"{prefix}.exposure.externalPort: must be unset for Internal exposure")
            return problems

        if external_port is None:
            problems.append(f"{prefix}.exposure.externalPort: required for NodeExposed exposure")
        elif not NODE_PORT_MIN <= external_port <= NODE_PORT_MAX:
            problems.append(
                f"{prefix}.exposure.externalPort: {external_port} is outside {NODE_PORT_MIN}-{NODE_PORT_MAX}"
            )
        elif external_port in claimed_ports:
            problems.append(
                f"{prefix}.exposure.externalPort: {external_port} is already used by '{claimed_ports[external_port]}'"
            )
        else:
            claimed_ports[external_port] = svc.name
        return problems

    def _check_secret(self, svc: ServiceDescriptor, prefix: str,
                      resolver: SecretResolver) -> List[str]:
        if svc.secret_ref is None:
            return []
        if not resolver.exists(svc.secret_ref):
            return [f"{prefix}.secretRef: unknown secret '{svc.secret_ref}'"]

        shared = sorted(resolver.keys(svc.secret_ref) & set(svc.config_entries))
        if shared:
            return [
                f"{prefix}.configEntries: key(s) {', '.join(shared)} also provided by secret '{svc.secret_ref}'"
            ]
        return []


def _format_errors(path: str, error: PydanticValidationError) -> List[str]:
    """Flattens a pydantic error into 'path.field: message' lines."""
    lines = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        lines.append(f"{path}.{loc}: {err['msg']}" if loc else f"{path}: {err['msg']}")
    return lines
