"""Deploy a static site to a Cloud Storage bucket fronted by Cloud CDN."""

from gcp_cdn_deploy.errors import AmbiguousLookupError, DeployError, ExternalCallError, ValidationError
from gcp_cdn_deploy.records import DeployConfig, Deployment, Release, ReleaseConfig

__all__ = [
    "AmbiguousLookupError",
    "DeployConfig",
    "DeployError",
    "Deployment",
    "ExternalCallError",
    "Release",
    "ReleaseConfig",
    "ValidationError",
]
