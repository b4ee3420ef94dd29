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
Serialization of expanded documents into a multi-document YAML stream.
"""
from typing import BinaryIO, Iterable
import yaml
from ..MODELS.resource_document import ResourceDocument

DOCUMENT_SEPARATOR = "---\n"


class ManifestEmitter:
    """
    Writes documents as one YAML stream, in the order they were expanded.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def emit(self, documents: Iterable[ResourceDocument]) -> bytes:
        """
        Serializes documents, each preceded by the '---' separator.

        :param documents: Documents in expansion order.
        :return: The encoded stream; empty when there are no documents.
        """
        chunks = []
        for doc in documents:
            chunks.append(DOCUMENT_SEPARATOR)
            chunks.append(yaml.safe_dump(
                doc.body,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
                width=4096,
            ))
        return "".join(chunks).encode(self.encoding)

    def write(self, documents: Iterable[ResourceDocument], stream: BinaryIO) -> int:
        """
        Writes the serialized stream to a binary file object.

        :return: The number of bytes written.
        """
        data = self.emit(documents)
        stream.write(data)
        return len(data)
