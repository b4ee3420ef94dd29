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
Utilities for interpolating environment variables into value trees.
"""
import re
from typing import Any, Mapping

# $$, ${VAR}, ${VAR:-default} or ${VAR:+value}
_PATTERN = re.compile(r'\$\$|\$\{([A-Za-z_][A-Za-z0-9_]*)(?::(-|\+)([^}]*))?\}')


class EnvironmentInterpolator:
    """
    Interpolates ${VAR} references in the string leaves of a value tree.
    Supports ${VAR}, ${VAR:-default} and ${VAR:+value}.
    A doubled $$ stands for a literal $, so $${VAR} survives as ${VAR}.
    """
    @staticmethod
    def interpolate(template: str, context: Mapping[str, str]) -> str:
        """
        Interpolates variables in a single string.

        :param template: The string containing ${VAR} placeholders.
        :param context: The variables available for substitution.
        :return: The interpolated string.
        :raises KeyError: If a bare ${VAR} is not found in the context.
        """
        def replace(match):
            if match.group(0) == '$$':
                return '$'
            var_name, modifier, alt_value = match.group(1), match.group(2), match.group(3)
            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            if modifier == '+':
                return alt_value if value else ''
            if value is None:
                raise KeyError(f"Variable {var_name} not found in context")
            return value

        return _PATTERN.sub(replace, template)

    @classmethod
    def interpolate_tree(cls, tree: Any, context: Mapping[str, str]) -> Any:
        """
        Returns a copy of ``tree`` with every string leaf interpolated.
        Mapping keys are left untouched.

        :param tree: A value tree made of dicts, lists and scalars.
        :param context: The variables available for substitution.
        :return: The interpolated copy.
        :raises KeyError: If a referenced variable is missing.
        """
        if isinstance(tree, str):
            return cls.interpolate(tree, context)
        if isinstance(tree, Mapping):
            return {k: cls.interpolate_tree(v, context) for k, v in tree.items()}
        if isinstance(tree, list):
            return [cls.interpolate_tree(v, context) for v in tree]
        return tree
