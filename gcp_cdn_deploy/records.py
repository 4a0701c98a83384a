"""Stage configuration and the records passed between the bucket and CDN stages."""

import os
from dataclasses import asdict, dataclass

from gcp_cdn_deploy.errors import ValidationError

DEFAULT_REGION = "us-central1"
DEFAULT_INDEX_PAGE = "index.html"


@dataclass(frozen=True)
class Deployment:
    """Produced by the bucket stage, consumed by the CDN stage."""

    bucket: str
    project: str
    region: str = DEFAULT_REGION

    def validate(self):
        if not self.bucket:
            raise ValidationError("deployment is missing a bucket name")
        if not self.project:
            raise ValidationError("deployment is missing a project")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Deployment":
        return cls(
            bucket=data.get("bucket", ""),
            project=data.get("project", ""),
            region=data.get("region") or DEFAULT_REGION,
        )


@dataclass(frozen=True)
class Release:
    """Produced by the CDN stage; its teardown uses it to address the chain."""

    url: str
    bucket: str
    project: str
    ip_address: str = ""

    def validate(self):
        if not self.bucket:
            raise ValidationError("release is missing a bucket name")
        if not self.project:
            raise ValidationError("release is missing a project")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Release":
        return cls(
            url=data.get("url", ""),
            bucket=data.get("bucket", ""),
            project=data.get("project", ""),
            ip_address=data.get("ip_address", ""),
        )


@dataclass
class DeployConfig:
    bucket: str
    project: str
    directory: str
    region: str = DEFAULT_REGION
    index_page: str = DEFAULT_INDEX_PAGE
    not_found_page: str = ""

    def validate(self):
        """Check required fields before any call is made."""
        if not self.bucket:
            raise ValidationError("bucket is a required attribute")
        if not self.project:
            raise ValidationError("project is a required attribute")
        if not self.directory:
            raise ValidationError("directory is a required attribute")
        if not os.path.isdir(self.directory):
            raise ValidationError(f"directory you specified does not exist: {self.directory}")
        if not self.region:
            self.region = DEFAULT_REGION
        if not self.index_page:
            self.index_page = DEFAULT_INDEX_PAGE


@dataclass
class ReleaseConfig:
    domain: str

    def validate(self):
        if not self.domain:
            raise ValidationError("domain is a required attribute")
