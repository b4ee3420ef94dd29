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
Error taxonomy for loading, expanding and rendering charts.
"""
from typing import List, Sequence


class V2MError(Exception):
    """Base class for every error raised by v2m."""


class ValidationError(V2MError):
    """
    Structural problems in the merged value tree.

    Fatal to the whole run: raised before any expansion happens and carries
    every problem found, not just the first one.
    """

    def __init__(self, problems: Sequence[str]):
        self.problems: List[str] = list(problems)
        super().__init__("; ".join(self.problems))


class ValuesParseError(ValidationError):
    """A values file could not be read, parsed or interpolated."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__([f"{source}: {reason}"])


class ExpansionError(V2MError):
    """
    A single descriptor could not produce a single document kind.
    """

    def __init__(self, service: str, kind: str, reason: str):
        self.service = service
        self.kind = kind
        self.reason = reason
        super().__init__(f"{service}/{kind}: {reason}")


class ExpansionFailed(V2MError):
    """Aggregate of every ExpansionError collected during one run."""

    def __init__(self, errors: Sequence[ExpansionError]):
        self.errors: List[ExpansionError] = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))


class UnknownEnvironment(V2MError):
    """The requested environment overlay is not one of the known overlays."""

    def __init__(self, name: str, known: Sequence[str] = ()):
        self.name = name
        self.known = sorted(known)
        known_text = ", ".join(self.known) if self.known else "none"
        super().__init__(f"Unknown environment '{name}' (known: {known_text})")
