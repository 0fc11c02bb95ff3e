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
Unit tests for image references.
"""
import pytest
from kestra_infra.MODELS.container_image import ImageReference

DIGEST = "sha256:" + "a" * 64


class TestImageReference:
    """Tests for ImageReference parsing."""

    def test_parse_with_tag(self):
        """Test parsing image with tag."""
        ref = ImageReference.parse("postgres:17")
        assert ref.registry is None
        assert ref.repository == "postgres"
        assert ref.tag == "17"
        assert ref.is_pinned

    def test_parse_registry_path(self):
        ref = ImageReference.parse("registry.k8s.io/git-sync/git-sync:v4.4.2")
        assert ref.registry == "registry.k8s.io"
        assert ref.repository == "git-sync/git-sync"
        assert ref.tag == "v4.4.2"

    def test_parse_registry_with_port(self):
        ref = ImageReference.parse(f"localhost:5000/app@{DIGEST}")
        assert ref.registry == "localhost:5000"
        assert ref.repository == "app"
        assert ref.tag is None
        assert ref.digest == DIGEST
        assert ref.is_pinned

    def test_floating_tags(self):
        assert not ImageReference.parse("kestra/kestra:latest").is_pinned
        assert not ImageReference.parse("kestra/kestra").is_pinned

    def test_round_trip(self):
        for text in ("alpine:3.18", "kestra/kestra", f"ghcr.io/org/app:1.0@{DIGEST}"):
            assert str(ImageReference.parse(text)) == text

    @pytest.mark.parametrize("text", ["", "   ", "Upper/Case:1", "app:bad tag", "app@sha256:short"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            ImageReference.parse(text)
