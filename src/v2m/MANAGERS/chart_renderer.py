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
One render run: overlay lookup, validation, expansion and emission.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..CONVERTERS.manifest_emitter import ManifestEmitter
from ..CONVERTERS.template_expander import TemplateExpander
from ..MODELS.chart_values import ChartValues
from ..MODELS.errors import ExpansionError
from ..MODELS.resource_document import ResourceDocument
from ..PARSERS.value_registry import ValueRegistry
from ..PARSERS.values_parser import ValuesParser
from ..UTILS.deep_merge import merge_layers, parse_set_value
from .environment_manager import EnvironmentManager

logger = logging.getLogger(__name__)

DEFAULT_VALUES_FILE = "values.yaml"


@dataclass
class RenderResult:
    """Outcome of a render run."""
    chart: ChartValues
    documents: List[ResourceDocument] = field(default_factory=list)
    errors: List[ExpansionError] = field(default_factory=list)
    stream: bytes = b""

    @property
    def ok(self) -> bool:
        return not self.errors


class ChartRenderer:
    """
    Runs the pipeline for a chart: base values, environment overlay and
    command-line overrides are merged in that order, validated, expanded and
    serialized. Holds no state between runs.
    """

    def __init__(self, base_values: Mapping[str, Any],
                 environments: Optional[EnvironmentManager] = None,
                 registry: Optional[ValueRegistry] = None,
                 expander: Optional[TemplateExpander] = None,
                 emitter: Optional[ManifestEmitter] = None):
        """
        :param base_values: The base value tree.
        :param environments: Source of environment overlays.
        :param registry: Validator for merged values.
        :param expander: Template expander.
        :param emitter: Stream serializer.
        """
        self.base_values = base_values
        self.environments = environments or EnvironmentManager()
        self.registry = registry or ValueRegistry()
        self.expander = expander or TemplateExpander()
        self.emitter = emitter or ManifestEmitter()

    @classmethod
    def from_chart_dir(cls, chart_dir: Optional[str] = None,
                       values_file: Optional[str] = None,
                       context: Optional[Mapping[str, str]] = None) -> "ChartRenderer":
        """
        Builds a renderer from files on disk.

        :param chart_dir: Directory holding values.yaml and values-<env>.yaml files.
        :param values_file: Base values file; defaults to <chart_dir>/values.yaml.
        :param context: Variables for ${VAR} interpolation.
        :return: The renderer.
        """
        if values_file is None:
            values_file = os.path.join(chart_dir or ".", DEFAULT_VALUES_FILE)
        if chart_dir is None:
            chart_dir = os.path.dirname(os.path.abspath(values_file))

        parser = ValuesParser(context)
        base_values = parser.parse(values_file)
        logger.debug("Loaded base values from %s", values_file)
        return cls(base_values, environments=EnvironmentManager(chart_dir, parser=parser))

    def overlay(self, env_name: Optional[str] = None,
                set_values: Sequence[str] = ()) -> Dict[str, Any]:
        """
        Builds the overlay applied on top of the base values.

        :raises UnknownEnvironment: If ``env_name`` is not known.
        :raises ValidationError: If an override expression is malformed.
        """
        layers = []
        if env_name:
            layers.append(self.environments.resolve_environment(env_name))
        layers.extend(parse_set_value(expr) for expr in set_values)
        return merge_layers(layers)

    def load(self, env_name: Optional[str] = None, set_values: Sequence[str] = ()) -> ChartValues:
        """
        Merges and validates the values for an environment.

        :raises UnknownEnvironment: If ``env_name`` is not known.
        :raises ValidationError: If the merged values are invalid.
        """
        return self.registry.load_chart(self.base_values, self.overlay(env_name, set_values))

    def render(self, env_name: Optional[str] = None, set_values: Sequence[str] = ()) -> RenderResult:
        """
        Renders the manifest stream for an environment.

        Validation and environment errors are raised before anything is
        rendered. Expansion errors are returned in the result, whose stream
        holds only the documents that expanded successfully.

        :param env_name: The environment overlay to apply, if any.
        :param set_values: ``key.path=value`` overrides applied last.
        :return: The render result.
        """
        chart = self.load(env_name, set_values)
        expansion = self.expander.expand(chart.services, chart.global_defaults, chart.namespace)
        stream = self.emitter.emit(expansion.documents)
        logger.info("Rendered %d document(s) for environment %s",
                    len(expansion.documents), env_name or "<base>")
        return RenderResult(
            chart=chart,
            documents=expansion.documents,
            errors=expansion.errors,
            stream=stream,
        )
