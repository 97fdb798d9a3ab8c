"""Batch manifests: YAML files listing the downloads to perform."""

import dataclasses
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from . import verify
from .download import CollisionPolicy, Descriptor


class ManifestJob(BaseModel):
    """One manifest entry."""

    urls: List[str] = Field(min_length=1)
    file_name: Optional[str] = None
    output_dir: Optional[str] = None
    sha256: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)
    overwrite: bool = False

    @field_validator('urls', mode='before')
    @classmethod
    def single_url(cls, v):
        if isinstance(v, str):
            return [v]
        return v

    @field_validator('sha256')
    @classmethod
    def check_sha256(cls, v):
        if v is not None and len(v.strip()) != 64:
            raise ValueError("sha256 must be a 64 character hex digest")
        return v

    def to_descriptor(self) -> Descriptor:
        descriptor = Descriptor.new_mirrored(self.urls, self.file_name)

        checks = []
        if self.size is not None:
            checks.append(verify.size(self.size))
        if self.sha256:
            checks.append(verify.sha256(self.sha256))
        if checks:
            descriptor = descriptor.with_verify(verify.all_of(*checks))

        if self.overwrite:
            descriptor = descriptor.with_collision_policy(CollisionPolicy.OVERWRITE)
        if self.output_dir:
            descriptor = dataclasses.replace(descriptor, output_dir=Path(self.output_dir))
        return descriptor


class Manifest(BaseModel):
    """A list of downloads."""

    jobs: List[ManifestJob] = Field(default_factory=list)

    def descriptors(self) -> List[Descriptor]:
        return [job.to_descriptor() for job in self.jobs]


def load_manifest(manifest_path: Path) -> Manifest:
    """Load a manifest; a bare YAML list is accepted as the job list."""
    with open(manifest_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    if isinstance(data, list):
        data = {'jobs': data}

    return Manifest.model_validate(data)
