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
Ordered, recursive merging of value trees.

Mappings merge key by key, everything else (scalars and lists) is replaced.
The right-hand tree always wins on conflicts.
"""
import copy
import yaml
from typing import Any, Dict, Iterable, Mapping

from ..MODELS.errors import ValidationError


def merge_values(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merges ``overlay`` onto ``base`` without modifying either.

    Keys keep the order of ``base``; keys only present in ``overlay`` are
    appended in the order they appear there.

    :param base: The base value tree.
    :param overlay: The partial tree whose values win on conflict.
    :return: A new merged tree.
    """
    merged: Dict[str, Any] = {k: copy.deepcopy(v) for k, v in base.items()}
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_values(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_layers(layers: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merges layers left to right, so the last layer has the highest precedence.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged = merge_values(merged, layer or {})
    return merged


def parse_set_value(expression: str) -> Dict[str, Any]:
    """
    Turns a ``dotted.path=value`` override into a partial value tree.

    The value is read as a YAML scalar, so ``replicas=2`` yields an int and
    ``enabled=false`` a bool.

    :param expression: The override expression.
    :return: A nested mapping holding only the overridden leaf.
    :raises ValidationError: If the expression is malformed.
    """
    if "=" not in expression:
        raise ValidationError([f"Invalid override '{expression}': expected key.path=value"])
    path, raw = expression.split("=", 1)
    keys = [k.strip() for k in path.split(".")]
    if not all(keys):
        raise ValidationError([f"Invalid override '{expression}': empty key in path"])

    try:
        value = yaml.safe_load(raw) if raw else ""
    except yaml.YAMLError:
        value = raw

    tree: Dict[str, Any] = {keys[-1]: value}
    for key in reversed(keys[:-1]):
        tree = {key: tree}
    return tree
