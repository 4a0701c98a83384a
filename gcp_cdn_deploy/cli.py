#!/usr/bin/env python3
"""Deploy a static site to a Cloud Storage bucket, optionally fronted by Cloud CDN."""

import argparse
import json
import os
import sys

from gcp_cdn_deploy import bucket, cdn
from gcp_cdn_deploy.errors import DeployError
from gcp_cdn_deploy.records import DeployConfig, Deployment, Release, ReleaseConfig

STATE_FILE = "gcp_cdn_deploy.json"


def load_state(path: str) -> dict:
    if os.path.exists(path):
        with open(path) as f:
            return json.load(f)
    return {}


def save_state(path: str, state: dict):
    with open(path, "w") as f:
        json.dump(state, f, indent=2)
    print(f"State saved to {path}")


def records_for_destroy(args, state: dict):
    """Stored records win; otherwise rebuild them from --bucket/--project, since names are deterministic.

    A stored deployment without a stored release means the CDN stage never
    ran, so no release is returned and the chain is left alone.
    """
    if state.get("deployment"):
        deployment = Deployment.from_dict(state["deployment"])
    else:
        deployment = Deployment(bucket=args.bucket or "", project=args.project or "", region=args.region)

    if state.get("release"):
        release = Release.from_dict(state["release"])
    elif state.get("deployment"):
        release = None
    else:
        release = Release(url="", bucket=deployment.bucket, project=deployment.project)

    deployment.validate()
    if release:
        release.validate()
    return deployment, release


def destroy_all(args, state: dict):
    deployment, release = records_for_destroy(args, state)

    print("The following resources will be destroyed:")
    if release:
        print(f"  - Cloud CDN load balancer chain for {release.bucket} (project {release.project})")
    print(f"  - Cloud Storage bucket: {deployment.bucket} (all objects will be deleted)")

    if not args.yes:
        answer = input("\nAre you sure you want to destroy all resources? This cannot be undone. [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            sys.exit("Aborted.")

    if release:
        cdn.destroy(release, strict=args.strict)
    else:
        print("No release recorded, skipping Cloud CDN resources.")
    bucket.destroy(deployment)

    if os.path.exists(args.state):
        os.remove(args.state)
        print(f"\nState file removed: {args.state}")

    print("All resources destroyed.")


def deploy_all(args, state: dict):
    config = DeployConfig(
        bucket=args.bucket,
        project=args.project,
        directory=args.dir,
        region=args.region,
        index_page=args.index,
        not_found_page=args.not_found,
    )
    release_config = ReleaseConfig(domain=args.domain) if args.domain else None

    # validate everything up front so a bad domain doesn't leave a half-finished deploy
    config.validate()
    if release_config:
        release_config.validate()

    deployment = bucket.deploy(config)
    state["deployment"] = deployment.to_dict()
    save_state(args.state, state)

    if release_config:
        release = cdn.release(deployment, release_config, strict=args.strict)
        state["release"] = release.to_dict()
        save_state(args.state, state)
        print(f"\nSite URL: {release.url}")
    else:
        print(f"\nSite URL: https://storage.googleapis.com/{deployment.bucket}/{config.index_page}")

    print("Done!")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gcp-cdn-deploy",
        description="Deploy a built static site to a Google Cloud Storage bucket, optionally fronted by a global HTTPS load balancer with Cloud CDN and a Google-managed SSL certificate.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""examples:
  %(prog)s --bucket my-site --project my-project --dir ./build
      Create the bucket if needed, make it public, and upload ./build.

  %(prog)s --bucket my-site --project my-project --dir ./build --domain www.example.com
      Also reserve a global IP and create the backend bucket, URL map,
      managed certificate, HTTPS proxy and forwarding rule.

  %(prog)s --destroy
      Tear down everything recorded in the state file.

idempotency:
  Every resource is named after the bucket and checked for before it is
  created, so a deploy that failed halfway can simply be run again.
  --destroy works the same way in reverse.""",
    )
    parser.add_argument("--bucket", help="Cloud Storage bucket name. Also the prefix of every CDN resource name.")
    parser.add_argument("--project", help="Google Cloud project ID.")
    parser.add_argument(
        "--region", default="us-central1", help="Bucket location (default: us-central1)."
    )
    parser.add_argument("--dir", help="Directory holding the built site. Uploaded as-is, preserving relative paths.")
    parser.add_argument("--index", default="index.html", help="Main page suffix (default: index.html).")
    parser.add_argument("--not-found", default="", help="Object served for missing paths, e.g. 404.html.")
    parser.add_argument(
        "--domain",
        help="Domain to serve the site on. Enables the Cloud CDN stage; the managed certificate is issued once the domain resolves to the reserved IP.",
    )
    parser.add_argument(
        "--state", default=STATE_FILE, help=f"Where deployment records are kept (default: {STATE_FILE})."
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail instead of assuming a resource is absent when a gcloud describe call errors for a reason other than not found.",
    )
    parser.add_argument("--destroy", action="store_true", help="Tear down the CDN chain, then empty and delete the bucket.")
    parser.add_argument("--yes", action="store_true", help="Don't prompt before destroying.")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    state = load_state(args.state)

    try:
        if args.destroy:
            destroy_all(args, state)
        else:
            deploy_all(args, state)
    except DeployError as e:
        sys.exit(f"Error: {e}")


if __name__ == "__main__":
    main()
