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
Lookup of separately-managed secret bundles.

Only bundle names and key names are known here; secret material is injected
by the orchestrator when the workload starts.
"""
from typing import Dict, FrozenSet, Iterable, Mapping, Optional


class SecretResolver:
    """
    Confirms that secret bundles exist and reports the keys they provide.

    A resolver built without a catalogue cannot verify anything and accepts
    every reference.
    """

    def __init__(self, catalogue: Optional[Mapping[str, Iterable[str]]] = None):
        """
        :param catalogue: Bundle name -> key names, or None when unknown.
        """
        self._catalogue: Optional[Dict[str, FrozenSet[str]]] = None
        if catalogue is not None:
            self._catalogue = {name: frozenset(keys or ()) for name, keys in catalogue.items()}

    @property
    def verifiable(self) -> bool:
        """Whether this resolver knows the set of existing bundles."""
        return self._catalogue is not None

    def exists(self, name: str) -> bool:
        """
        :param name: The bundle name referenced by a service's secretRef.
        :return: True if the bundle is known, or if nothing is known at all.
        """
        if self._catalogue is None:
            return True
        return name in self._catalogue

    def keys(self, name: str) -> FrozenSet[str]:
        """Key names provided by a bundle; empty when unknown."""
        if self._catalogue is None:
            return frozenset()
        return self._catalogue.get(name, frozenset())
