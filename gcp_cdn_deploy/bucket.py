"""Cloud Storage stage: the origin bucket, its website settings, and its contents."""

from google.api_core.exceptions import Conflict, GoogleAPIError, NotFound, PreconditionFailed
from google.cloud import storage

from gcp_cdn_deploy.assets import upload_files
from gcp_cdn_deploy.errors import ExternalCallError, ValidationError
from gcp_cdn_deploy.records import DeployConfig, Deployment

OBJECT_VIEWER_ROLE = "roles/storage.objectViewer"
ALL_USERS = "allUsers"
ALREADY_OWNED = "You already own this bucket"
IAM_POLICY_ATTEMPTS = 3


def bucket_exists(client, bucket_name: str) -> bool:
    """Lookup errors other than "already owned" count as a missing bucket."""
    try:
        client.get_bucket(bucket_name)
    except GoogleAPIError as e:
        return ALREADY_OWNED in str(e)
    return True


def ensure_bucket(client, config: DeployConfig) -> bool:
    """Create the bucket if it doesn't exist. Returns True if it was just created."""
    if bucket_exists(client, config.bucket):
        print(f"Found existing bucket {config.bucket}")
        return False

    print(f"Bucket {config.bucket} not found, creating it in {config.region}...")
    bucket = client.bucket(config.bucket)
    bucket.iam_configuration.uniform_bucket_level_access_enabled = True
    try:
        client.create_bucket(bucket, project=config.project, location=config.region)
    except Conflict as e:
        if ALREADY_OWNED not in str(e):
            raise ExternalCallError(f"failed to create bucket: {e}", resource=config.bucket) from e
        print(f"Found existing bucket {config.bucket}")
        return False
    except GoogleAPIError as e:
        raise ExternalCallError(f"failed to create bucket: {e}", resource=config.bucket) from e

    print(f"Bucket {config.bucket} successfully created")
    return True


def configure_website_hosting(client, config: DeployConfig):
    print("Configuring bucket for website hosting...")
    bucket = client.bucket(config.bucket)
    bucket.configure_website(main_page_suffix=config.index_page, not_found_page=config.not_found_page or None)
    try:
        bucket.patch()
    except GoogleAPIError as e:
        raise ExternalCallError(f"failed to configure static hosting: {e}", resource=config.bucket) from e


def is_public(policy) -> bool:
    for binding in policy.bindings:
        if binding.get("role") == OBJECT_VIEWER_ROLE and ALL_USERS in binding.get("members", ()):
            return True
    return False


def ensure_public_read(client, bucket_name: str, attempts: int = IAM_POLICY_ATTEMPTS):
    """Grant allUsers object read access unless a binding already does.

    The policy is written back with the etag it was read with; if someone
    else changed it in between, re-read and try again.
    """
    bucket = client.bucket(bucket_name)
    for attempt in range(1, attempts + 1):
        try:
            policy = bucket.get_iam_policy(requested_policy_version=3)
        except GoogleAPIError as e:
            raise ExternalCallError(f"failed to read IAM policy: {e}", resource=bucket_name) from e

        if is_public(policy):
            break

        policy.bindings.append({"role": OBJECT_VIEWER_ROLE, "members": {ALL_USERS}})
        try:
            bucket.set_iam_policy(policy)
        except (Conflict, PreconditionFailed) as e:
            if attempt == attempts:
                raise ExternalCallError(f"IAM policy kept changing underneath us: {e}", resource=bucket_name) from e
            print("IAM policy changed concurrently, retrying...")
            continue
        except GoogleAPIError as e:
            raise ExternalCallError(f"failed to make objects public: {e}", resource=bucket_name) from e
        break

    print(f"Objects within {bucket_name} are publicly accessible")


def deploy(config: DeployConfig, client=None) -> Deployment:
    """Create and configure the bucket, then upload the site into it."""
    config.validate()

    print("---Deploying Cloud Storage Assets---")
    owns_client = client is None
    if owns_client:
        client = storage.Client(project=config.project)

    try:
        ensure_bucket(client, config)
        configure_website_hosting(client, config)
        ensure_public_read(client, config.bucket)

        print(f"Uploading static files from {config.directory} to gs://{config.bucket}/...")
        errors = upload_files(client.bucket(config.bucket), config.directory)
        if errors:
            print(f"Warning: {len(errors)} static file(s) failed to upload:")
            for err in errors:
                print(f"  {err}")
        print("Upload of static files complete.")
    finally:
        if owns_client:
            client.close()

    return Deployment(bucket=config.bucket, project=config.project, region=config.region)


def destroy(deployment: Deployment, client=None):
    """Empty and delete the bucket. A bucket that is already gone is a no-op."""
    if deployment is None:
        raise ValidationError("no deployment to destroy")
    deployment.validate()

    print("---Destroying Cloud Storage Assets---")
    owns_client = client is None
    if owns_client:
        client = storage.Client(project=deployment.project)

    try:
        _destroy_bucket(client, deployment.bucket)
    finally:
        if owns_client:
            client.close()


def _destroy_bucket(client, bucket_name: str):
    try:
        client.get_bucket(bucket_name)
    except NotFound:
        print(f"Bucket {bucket_name} does not exist, nothing to destroy.")
        return
    except GoogleAPIError:
        pass

    print(f"Emptying bucket {bucket_name}...")
    try:
        blobs = list(client.list_blobs(bucket_name))
    except GoogleAPIError as e:
        raise ExternalCallError(f"failed to list objects: {e}", resource=bucket_name) from e

    for blob in blobs:
        try:
            blob.delete()
        except GoogleAPIError as e:
            raise ExternalCallError(f"failed to destroy object {blob.name}: {e}", resource=bucket_name) from e
    print(f"  Deleted {len(blobs)} object(s).")

    print(f"Deleting bucket {bucket_name}...")
    try:
        client.bucket(bucket_name).delete()
    except GoogleAPIError as e:
        raise ExternalCallError(f"failed to destroy bucket: {e}", resource=bucket_name) from e
    print("  Deleted.")
