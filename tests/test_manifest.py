"""Tests for batch manifests."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mirrorfetch.download import CollisionPolicy
from mirrorfetch.manifest import Manifest, ManifestJob, load_manifest


class TestManifestJob:
    """Test manifest entries."""

    def test_single_url_string(self):
        job = ManifestJob(urls="https://example.com/a.bin")
        assert job.urls == ["https://example.com/a.bin"]

    def test_requires_urls(self):
        with pytest.raises(ValidationError):
            ManifestJob(urls=[])

    def test_rejects_bad_digest(self):
        with pytest.raises(ValidationError):
            ManifestJob(urls=["https://example.com/a.bin"], sha256="abc")

    def test_to_descriptor(self, tmp_path):
        """Entries become descriptors with their checks and policy."""
        job = ManifestJob(
            urls=["https://one.example.com/a.bin", "https://two.example.com/a.bin"],
            file_name="renamed.bin",
            size=3,
            overwrite=True,
            output_dir=str(tmp_path),
        )
        descriptor = job.to_descriptor()

        assert descriptor.target_name == Path("renamed.bin")
        assert descriptor.collision_policy is CollisionPolicy.OVERWRITE
        assert descriptor.output_dir == tmp_path

        staged = tmp_path / "staged"
        staged.write_bytes(b"abc")
        assert descriptor.verify(staged) is True
        staged.write_bytes(b"abcd")
        assert descriptor.verify(staged) is False


class TestLoadManifest:
    """Test reading manifests from YAML."""

    def test_mapping(self, tmp_path):
        path = tmp_path / "jobs.yaml"
        path.write_text(
            "jobs:\n"
            "  - urls: [https://example.com/a.bin]\n"
            "  - urls: https://example.com/b.bin\n"
            "    file_name: c.bin\n"
        )

        manifest = load_manifest(path)

        assert len(manifest.jobs) == 2
        names = [d.target_name for d in manifest.descriptors()]
        assert names == [Path("a.bin"), Path("c.bin")]

    def test_bare_list(self, tmp_path):
        path = tmp_path / "jobs.yaml"
        path.write_text("- urls: [https://example.com/a.bin]\n")

        assert len(load_manifest(path).jobs) == 1

    def test_empty(self, tmp_path):
        path = tmp_path / "jobs.yaml"
        path.write_text("")

        assert load_manifest(path) == Manifest()
