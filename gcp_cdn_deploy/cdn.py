"""Cloud CDN stage: stand up and tear down the load balancer chain in front of the bucket."""

from gcp_cdn_deploy.errors import ExternalCallError, ValidationError
from gcp_cdn_deploy.gcloud import IP_ADDRESS, GCloud, decommissioning_order, provisioning_order
from gcp_cdn_deploy.records import Deployment, Release, ReleaseConfig


def provision(gc: GCloud, params: dict):
    """Create whatever is missing from the chain, roots first.

    Stops at the first failed create and leaves everything already created
    in place, so running it again picks up where it stopped.
    """
    for kind in provisioning_order():
        handle = gc.handle(kind)
        if handle.exists():
            print(f"Found existing {handle.label} {handle.name}")
            continue

        print(f"Creating {handle.label} {handle.name}...")
        try:
            handle.create(params)
        except ExternalCallError as e:
            raise ExternalCallError(f"failed to create {handle.label}: {e.message}", resource=handle.name) from e
        print(f"  Created {handle.label}.")


def decommission(gc: GCloud):
    """Delete the chain in reverse dependency order, skipping what is already gone."""
    for kind in decommissioning_order():
        handle = gc.handle(kind)
        if not handle.exists():
            print(f"{handle.label} {handle.name} already gone, skipping.")
            continue

        print(f"Destroying {handle.label} {handle.name}...")
        try:
            handle.destroy()
        except ExternalCallError as e:
            raise ExternalCallError(f"failed to destroy {handle.label}: {e.message}", resource=handle.name) from e
        print("  Deleted.")


def get_static_ip(gc: GCloud) -> str:
    return gc.handle(IP_ADDRESS).describe("get(address)")


def release(deployment: Deployment, config: ReleaseConfig, gcloud: GCloud = None, strict: bool = False) -> Release:
    """Front the deployed bucket with Cloud CDN over HTTPS."""
    if deployment is None:
        raise ValidationError("no deployment to release; run the bucket stage first")
    deployment.validate()
    config.validate()

    print("---Releasing to Cloud CDN---")
    gc = gcloud or GCloud(deployment.project, deployment.bucket, strict=strict)
    provision(gc, {"domain": config.domain})

    try:
        ip_address = get_static_ip(gc)
    except ExternalCallError as e:
        print(f"Warning: could not read reserved IP address: {e}")
        ip_address = ""

    url = f"https://{config.domain}"
    if ip_address:
        print(f"Point an A record for {config.domain} at {ip_address}.")
    print("Note: the managed certificate is only issued once DNS resolves to the load balancer.")
    print(f"Release URL: {url}")
    return Release(url=url, bucket=deployment.bucket, project=deployment.project, ip_address=ip_address)


def destroy(release: Release, gcloud: GCloud = None, strict: bool = False):
    if release is None:
        raise ValidationError("no release to destroy")
    release.validate()

    print("---Destroying Cloud CDN resources---")
    gc = gcloud or GCloud(release.project, release.bucket, strict=strict)
    decommission(gc)
    print("Cloud CDN resources destroyed.")
