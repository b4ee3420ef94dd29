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
Expansion of service descriptors into ConfigMap, Deployment and Service manifests.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError

from ..MODELS.errors import ExpansionError, ExpansionFailed
from ..MODELS.resource_document import ResourceDocument, ResourceKind
from ..MODELS.service_descriptor import ExposureType, GlobalDefaults, ServiceDescriptor
from ..REGISTRY.image_reference import ImageReference

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: {{ svc.config_name | toyaml }}
{% if namespace %}
  namespace: {{ namespace | toyaml }}
{% endif %}
  labels:
{% for key, value in labels.items() %}
    {{ key | toyaml }}: {{ value | toyaml }}
{% endfor %}
data:
{% for key, value in svc.config_entries | dictsort(true) %}
  {{ key | toyaml }}: {{ value | toyaml }}
{% endfor %}
"""

WORKLOAD_TEMPLATE = """
{% macro probe(settings) %}
httpGet:
  path: {{ probes.path | toyaml }}
  port: {{ svc.port | toyaml }}
initialDelaySeconds: {{ settings.initial_delay_seconds | toyaml }}
periodSeconds: {{ settings.period_seconds | toyaml }}
timeoutSeconds: {{ settings.timeout_seconds | toyaml }}
failureThreshold: {{ settings.failure_threshold | toyaml }}
{% endmacro %}
apiVersion: apps/v1
kind: Deployment
metadata:
  name: {{ svc.name | toyaml }}
{% if namespace %}
  namespace: {{ namespace | toyaml }}
{% endif %}
  labels:
{% for key, value in labels.items() %}
    {{ key | toyaml }}: {{ value | toyaml }}
{% endfor %}
spec:
  replicas: {{ svc.replicas | toyaml }}
  selector:
    matchLabels:
      app: {{ svc.name | toyaml }}
  template:
    metadata:
      labels:
{% for key, value in labels.items() %}
        {{ key | toyaml }}: {{ value | toyaml }}
{% endfor %}
    spec:
      containers:
        - name: {{ svc.name | toyaml }}
          image: {{ image | toyaml }}
          imagePullPolicy: {{ pull_policy | toyaml }}
          ports:
            - name: http
              containerPort: {{ svc.port | toyaml }}
              protocol: TCP
{% if env_from %}
          envFrom:
{% for source, name in env_from %}
            - {{ source }}:
                name: {{ name | toyaml }}
{% endfor %}
{% endif %}
          resources:
{% for section, values in resources.items() %}
            {{ section }}:
{% for key, value in values.items() %}
              {{ key }}: {{ value | toyaml }}
{% endfor %}
{% endfor %}
          livenessProbe:
{{ probe(probes.liveness) | indent(12, true) }}
          readinessProbe:
{{ probe(probes.readiness) | indent(12, true) }}
"""

EXPOSURE_TEMPLATE = """
apiVersion: v1
kind: Service
metadata:
  name: {{ svc.name | toyaml }}
{% if namespace %}
  namespace: {{ namespace | toyaml }}
{% endif %}
  labels:
{% for key, value in labels.items() %}
    {{ key | toyaml }}: {{ value | toyaml }}
{% endfor %}
spec:
  type: {{ service_type | toyaml }}
  selector:
    app: {{ svc.name | toyaml }}
  ports:
    - name: http
      port: {{ svc.port | toyaml }}
      targetPort: {{ svc.port | toyaml }}
      protocol: TCP
{% if node_port %}
      nodePort: {{ node_port | toyaml }}
{% endif %}
"""

SERVICE_TYPES = {
    ExposureType.INTERNAL: "ClusterIP",
    ExposureType.NODE_EXPOSED: "NodePort",
}

# Characters YAML would reject or fold inside a double-quoted scalar
_YAML_UNSAFE = re.compile('[\x7f-\x9f\u2028\u2029\ufeff\ufffe\uffff]')


def to_yaml_scalar(value: Any) -> str:
    """
    Renders a scalar as a YAML flow scalar. JSON is valid YAML, so strings
    come out double-quoted and never change type when re-read.
    """
    text = json.dumps(value, ensure_ascii=False)
    return _YAML_UNSAFE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


@dataclass
class ExpansionResult:
    """
    Documents produced by one expansion run, plus every kind-scoped error.
    """
    documents: List[ResourceDocument] = field(default_factory=list)
    errors: List[ExpansionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self):
        """
        :raises ExpansionFailed: If any descriptor/kind pair failed.
        """
        if self.errors:
            raise ExpansionFailed(self.errors)


class TemplateExpander:
    """
    Applies the Config, Workload and Exposure templates to every enabled
    descriptor, in registry order.
    """

    def __init__(self):
        self.env = Environment(
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["toyaml"] = to_yaml_scalar
        self.templates = {
            ResourceKind.CONFIG: self.env.from_string(CONFIG_TEMPLATE),
            ResourceKind.WORKLOAD: self.env.from_string(WORKLOAD_TEMPLATE),
            ResourceKind.EXPOSURE: self.env.from_string(EXPOSURE_TEMPLATE),
        }

    def expand(self, descriptors: Sequence[ServiceDescriptor],
               global_defaults: Optional[GlobalDefaults] = None,
               namespace: Optional[str] = None) -> ExpansionResult:
        """
        Expands descriptors into documents.

        For each enabled descriptor, documents are produced in the order
        Config, Workload, Exposure. A failure is recorded against its
        descriptor and kind; every other pair is still expanded.

        :param descriptors: Descriptors in registry order.
        :param global_defaults: Chart-wide defaults, read only.
        :param namespace: Namespace set on every document, if any.
        :return: The produced documents and collected errors.
        """
        defaults = global_defaults or GlobalDefaults()
        result = ExpansionResult()

        for svc in descriptors:
            if not svc.enabled:
                logger.info("Skipping disabled service %s", svc.name)
                continue

            context = {
                "svc": svc,
                "namespace": namespace,
                "labels": _labels(svc),
                "probes": defaults.probes,
            }

            config_failed = False
            if svc.config_entries:
                config_failed = not self._render(ResourceKind.CONFIG, svc, context, result)

            if config_failed:
                result.errors.append(ExpansionError(
                    svc.name, ResourceKind.WORKLOAD.value, f"ConfigMap '{svc.config_name}' was not produced"
                ))
            else:
                self._render(ResourceKind.WORKLOAD, svc, context, result, defaults=defaults)

            self._render(ResourceKind.EXPOSURE, svc, context, result)

        for error in result.errors:
            logger.warning("Expansion failed for %s", error)
        logger.info("Expanded %d document(s) with %d error(s)", len(result.documents), len(result.errors))
        return result

    def _render(self, kind: ResourceKind, svc: ServiceDescriptor, context: Dict[str, Any],
                result: ExpansionResult, defaults: Optional[GlobalDefaults] = None) -> bool:
        """
        Renders one document into ``result``, or records why it could not be.

        :return: True if the document was produced.
        """
        missing = _missing_fields(kind, svc)
        if missing:
            result.errors.append(ExpansionError(svc.name, kind.value, f"missing {', '.join(missing)}"))
            return False

        try:
            if kind == ResourceKind.WORKLOAD:
                context = dict(context, **_workload_context(svc, defaults))
            elif kind == ResourceKind.EXPOSURE:
                context = dict(context, **_exposure_context(svc))
            rendered = self.templates[kind].render(**context)
            body = yaml.safe_load(rendered)
        except (TemplateError, yaml.YAMLError, ValueError) as e:
            result.errors.append(ExpansionError(svc.name, kind.value, str(e)))
            return False

        name = body["metadata"]["name"]
        result.documents.append(ResourceDocument(kind=kind, service=svc.name, name=name, body=body))
        logger.debug("Rendered %s/%s", kind.k8s_kind, name)
        return True


def expand(descriptors: Sequence[ServiceDescriptor],
           global_defaults: Optional[GlobalDefaults] = None,
           namespace: Optional[str] = None) -> ExpansionResult:
    """Expands descriptors with a fresh TemplateExpander."""
    return TemplateExpander().expand(descriptors, global_defaults, namespace)


def _labels(svc: ServiceDescriptor) -> Dict[str, str]:
    labels = {"app": svc.name}
    for key in sorted(svc.labels):
        labels.setdefault(key, svc.labels[key])
    return labels


def _missing_fields(kind: ResourceKind, svc: ServiceDescriptor) -> List[str]:
    missing = []
    if kind == ResourceKind.WORKLOAD and not svc.image.repository:
        missing.append("image.repository")
    if kind in (ResourceKind.WORKLOAD, ResourceKind.EXPOSURE) and svc.port is None:
        missing.append("port")
    if (kind == ResourceKind.EXPOSURE and svc.exposure.type == ExposureType.NODE_EXPOSED
            and svc.exposure.external_port is None):
        missing.append("exposure.externalPort")
    return missing


def _workload_context(svc: ServiceDescriptor, defaults: GlobalDefaults) -> Dict[str, Any]:
    limits = (svc.resources or defaults.resource_limits).merged_over(defaults.resource_limits)
    resources = {
        "requests": _present({"cpu": limits.requests_cpu, "memory": limits.requests_mem}),
        "limits": _present({"cpu": limits.limits_cpu, "memory": limits.limits_mem}),
    }

    env_from = []
    if svc.config_entries:
        env_from.append(("configMapRef", svc.config_name))
    if svc.secret_ref:
        env_from.append(("secretRef", svc.secret_ref))

    return {
        "image": ImageReference.resolve(svc.image, defaults).full_name,
        "pull_policy": ImageReference.pull_policy(svc.image, defaults).value,
        "resources": {section: values for section, values in resources.items() if values},
        "env_from": env_from,
    }


def _exposure_context(svc: ServiceDescriptor) -> Dict[str, Any]:
    node_port = None
    if svc.exposure.type == ExposureType.NODE_EXPOSED:
        node_port = svc.exposure.external_port
    return {
        "service_type": SERVICE_TYPES[svc.exposure.type],
        "node_port": node_port,
    }


def _present(values: Dict[str, Optional[str]]) -> Dict[str, str]:
    return {k: v for k, v in values.items() if v}
