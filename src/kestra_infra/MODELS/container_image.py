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
Container image references as they appear in a topology, e.g. 'postgres:17'
or 'registry.k8s.io/git-sync/git-sync:v4.4.2'.
"""
import re
from typing import Optional
from dataclasses import dataclass

_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")


@dataclass
class ImageReference:
    """
    Parsed image reference. Registry and tag are None when the reference omits them.

    Examples:
        - postgres:17 -> repository 'postgres', tag '17'
        - kestra/kestra -> repository 'kestra/kestra', no tag
        - localhost:5000/app@sha256:... -> registry 'localhost:5000', digest set
    """

    repository: str
    registry: Optional[str] = None
    tag: Optional[str] = None
    digest: Optional[str] = None

    FLOATING_TAG = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse an image reference string.

        :param reference: Image reference string.
        :return: Parsed ImageReference.
        :raises ValueError: If the reference is empty or malformed.
        """
        if not reference or not reference.strip():
            raise ValueError("Empty image reference")
        remainder = reference.strip()

        digest = None
        if "@" in remainder:
            remainder, digest = remainder.rsplit("@", 1)
            if not _DIGEST.match(digest):
                raise ValueError(f"Invalid digest in image reference: {reference}")

        tag = None
        last_colon = remainder.rfind(":")
        if last_colon != -1 and "/" not in remainder[last_colon + 1:]:
            tag = remainder[last_colon + 1:]
            remainder = remainder[:last_colon]
            if not _TAG.match(tag):
                raise ValueError(f"Invalid tag in image reference: {reference}")

        parts = remainder.split("/")
        registry = None
        first = parts[0]
        if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
            registry = first
            parts = parts[1:]

        for part in parts:
            if not _COMPONENT.match(part):
                raise ValueError(f"Invalid repository in image reference: {reference}")

        return cls(repository="/".join(parts), registry=registry, tag=tag, digest=digest)

    @property
    def is_pinned(self) -> bool:
        """True when the reference names a digest or a tag other than 'latest'."""
        if self.digest:
            return True
        return bool(self.tag) and self.tag != self.FLOATING_TAG

    def __str__(self) -> str:
        name = f"{self.registry}/{self.repository}" if self.registry else self.repository
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name
