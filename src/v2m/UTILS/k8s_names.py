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
Kubernetes naming rules.
"""
import re

# Resource names derived from a service name get a "-config" suffix,
# so the service name itself must leave room for it.
MAX_SERVICE_NAME_LENGTH = 63 - len("-config")

_DNS_LABEL = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$')
_ENV_NAME = re.compile(r'^[-._a-zA-Z][-._a-zA-Z0-9]*$')


def is_dns_label(name: str) -> bool:
    """Checks ``name`` is a DNS-1123 label (lower-case alphanumerics and '-')."""
    return bool(_DNS_LABEL.match(name)) and len(name) <= 63


def is_service_name(name: str) -> bool:
    """Checks ``name`` can be used as a service name and as a name prefix."""
    return is_dns_label(name) and len(name) <= MAX_SERVICE_NAME_LENGTH


def is_env_var_name(name: str) -> bool:
    """Checks ``name`` is a valid ConfigMap key for use as an environment variable."""
    return bool(_ENV_NAME.match(name))
