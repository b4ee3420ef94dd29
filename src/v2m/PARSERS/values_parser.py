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
Parser for YAML values files.
"""
import logging
import os
from collections.abc import Hashable
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml
from dotenv import dotenv_values

from ..MODELS.errors import ValuesParseError
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)

_MERGE_TAG = "tag:yaml.org,2002:merge"


class _UniqueKeyLoader(yaml.SafeLoader):
    """
    Safe loader that refuses mappings with repeated keys instead of
    silently keeping the last one.
    """

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if key_node.tag == _MERGE_TAG:
                    continue
                key = self.construct_object(key_node, deep=deep)
                if not isinstance(key, Hashable):
                    continue
                if key in seen:
                    raise yaml.constructor.ConstructorError(
                        "while constructing a mapping", node.start_mark,
                        f"found duplicate key '{key}'", key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def build_context(env_files: Iterable[str] = (),
                  base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Builds the interpolation context: the process environment (or ``base``)
    overlaid by each dotenv file in turn, later files winning.

    :param env_files: Paths to dotenv files.
    :param base: Starting variables; defaults to ``os.environ``.
    :return: The merged variables.
    """
    context = dict(os.environ if base is None else base)
    for env_file in env_files:
        if not os.path.exists(env_file):
            raise ValuesParseError(env_file, "env file not found")
        loaded = {k: v for k, v in dotenv_values(env_file).items() if v is not None}
        logger.debug("Loaded %d variables from %s", len(loaded), env_file)
        context.update(loaded)
    return context


class ValuesParser:
    """
    Parser for values files.
    """
    def __init__(self, context: Optional[Mapping[str, str]] = None):
        """
        Initializes the parser with an optional context for ${VAR} interpolation.

        :param context: Variables for interpolation; defaults to the process environment.
        """
        self.context = dict(os.environ) if context is None else dict(context)

    def parse(self, values_path: str) -> Dict[str, Any]:
        """
        Parses a values file from a path.

        :param values_path: Path to the values file.
        :return: The interpolated value tree.
        """
        try:
            with open(values_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise ValuesParseError(values_path, e.strerror or str(e)) from e
        return self.parse_from_string(content, source=values_path)

    def parse_from_string(self, content: str, source: str = "<string>") -> Dict[str, Any]:
        """
        Parses values from a string.

        :param content: YAML content.
        :param source: Name used in error messages.
        :return: The interpolated value tree; empty documents yield ``{}``.
        :raises ValuesParseError: On invalid YAML, duplicate keys, a non-mapping
            document or an unresolved variable.
        """
        try:
            data = yaml.load(content, Loader=_UniqueKeyLoader)
        except (yaml.YAMLError, ValueError) as e:
            raise ValuesParseError(source, f"invalid YAML: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValuesParseError(source, f"expected a mapping at top level, got {type(data).__name__}")

        try:
            data = EnvironmentInterpolator.interpolate_tree(data, self.context)
        except KeyError as e:
            raise ValuesParseError(source, e.args[0]) from e

        logger.debug("Parsed values from %s (%d top-level keys)", source, len(data))
        return data
