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
Models for a complete, validated chart.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from .service_descriptor import GlobalDefaults, ServiceDescriptor


class ChartValues(BaseModel):
    """
    The typed form of a merged value tree.
    Services keep the order in which they appear in the values.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    namespace: Optional[str] = None
    global_defaults: GlobalDefaults = Field(default_factory=GlobalDefaults, alias="global")
    services: List[ServiceDescriptor] = []
    secrets: Optional[Dict[str, List[str]]] = None

    @property
    def enabled_services(self) -> List[ServiceDescriptor]:
        return [svc for svc in self.services if svc.enabled]
