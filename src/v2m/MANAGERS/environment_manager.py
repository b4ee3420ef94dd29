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
Lookup of named environment overlays (dev, prod, ...).
"""
import copy
import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

from ..MODELS.errors import UnknownEnvironment
from ..PARSERS.values_parser import ValuesParser

logger = logging.getLogger(__name__)

OVERLAY_FILE_PATTERN = re.compile(r'^values-(?P<env>[A-Za-z0-9][A-Za-z0-9_.-]*)\.ya?ml$')


class EnvironmentManager:
    """
    Resolves environment names to partial value trees.

    Overlays come from an in-memory mapping, from ``values-<env>.yaml``
    files in a chart directory, or both; in-memory overlays take precedence.
    Resolving never merges; the caller applies the overlay.
    """

    def __init__(self, chart_dir: Optional[str] = None,
                 overlays: Optional[Mapping[str, Mapping[str, Any]]] = None,
                 parser: Optional[ValuesParser] = None):
        """
        Initializes the environment manager.

        :param chart_dir: Directory holding ``values-<env>.yaml`` overlay files.
        :param overlays: Overlays keyed by environment name.
        :param parser: Parser used for overlay files.
        """
        self.chart_dir = chart_dir
        self.overlays = dict(overlays or {})
        self.parser = parser or ValuesParser()

    def _overlay_files(self) -> Dict[str, str]:
        """Maps environment names to overlay file paths found in the chart directory."""
        files: Dict[str, str] = {}
        if not self.chart_dir or not os.path.isdir(self.chart_dir):
            return files
        for entry in sorted(os.listdir(self.chart_dir)):
            match = OVERLAY_FILE_PATTERN.match(entry)
            if match:
                files.setdefault(match.group("env"), os.path.join(self.chart_dir, entry))
        return files

    def list_environments(self) -> List[str]:
        """
        :return: Sorted names of every known environment.
        """
        return sorted(set(self.overlays) | set(self._overlay_files()))

    def resolve_environment(self, env_name: str) -> Dict[str, Any]:
        """
        Looks up the overlay for an environment.

        :param env_name: The environment name, e.g. 'dev' or 'prod'.
        :return: A copy of the partial value tree for that environment.
        :raises UnknownEnvironment: If no overlay has that name.
        """
        if env_name in self.overlays:
            logger.debug("Using in-memory overlay for environment %s", env_name)
            return copy.deepcopy(dict(self.overlays[env_name]))

        files = self._overlay_files()
        if env_name in files:
            logger.debug("Using overlay file %s for environment %s", files[env_name], env_name)
            return self.parser.parse(files[env_name])

        raise UnknownEnvironment(env_name, self.list_environments())
