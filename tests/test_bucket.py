from types import SimpleNamespace
from unittest import mock

import pytest
from google.api_core.exceptions import Conflict, Forbidden, GoogleAPIError, NotFound, PreconditionFailed

from gcp_cdn_deploy import bucket
from gcp_cdn_deploy.errors import ExternalCallError, ValidationError
from gcp_cdn_deploy.records import DeployConfig, Deployment

PUBLIC_BINDING = {"role": "roles/storage.objectViewer", "members": {"allUsers"}}


@pytest.fixture
def config(site_dir):
    return DeployConfig(bucket="site", project="proj", directory=str(site_dir), not_found_page="404.html")


@pytest.fixture
def client():
    client = mock.MagicMock(name="storage.Client")
    client.bucket.return_value.get_iam_policy.return_value = SimpleNamespace(bindings=[PUBLIC_BINDING])
    return client


def blob(name, error=None):
    b = mock.MagicMock(name=name)
    b.name = name
    if error:
        b.delete.side_effect = error
    return b


class TestEnsureBucket:
    def test_existing_bucket_is_left_alone(self, client, config):
        assert bucket.ensure_bucket(client, config) is False
        client.create_bucket.assert_not_called()

    def test_missing_bucket_is_created_with_uniform_access(self, client, config):
        client.get_bucket.side_effect = NotFound("no such bucket")

        assert bucket.ensure_bucket(client, config) is True
        new_bucket = client.bucket.return_value
        assert new_bucket.iam_configuration.uniform_bucket_level_access_enabled is True
        client.create_bucket.assert_called_once_with(new_bucket, project="proj", location="us-central1")

    def test_lookup_errors_count_as_missing(self, client, config):
        client.get_bucket.side_effect = Forbidden("caller does not have storage.buckets.get access")
        assert bucket.ensure_bucket(client, config) is True

    def test_already_owned_counts_as_existing(self, client, config):
        client.get_bucket.side_effect = Conflict("You already own this bucket. Please select another name.")
        assert bucket.ensure_bucket(client, config) is False
        client.create_bucket.assert_not_called()

    def test_create_failure_is_raised(self, client, config):
        client.get_bucket.side_effect = NotFound("no such bucket")
        client.create_bucket.side_effect = Conflict("The requested bucket name is not available.")
        with pytest.raises(ExternalCallError) as exc:
            bucket.ensure_bucket(client, config)
        assert exc.value.resource == "site"


def test_website_hosting_is_configured(client, config):
    bucket.configure_website_hosting(client, config)
    b = client.bucket.return_value
    b.configure_website.assert_called_once_with(main_page_suffix="index.html", not_found_page="404.html")
    b.patch.assert_called_once()


class TestEnsurePublicRead:
    def test_existing_binding_is_not_duplicated(self, client):
        bucket.ensure_public_read(client, "site")
        client.bucket.return_value.set_iam_policy.assert_not_called()

    def test_binding_is_appended(self, client):
        policy = SimpleNamespace(bindings=[{"role": "roles/storage.admin", "members": {"user:me@example.com"}}])
        client.bucket.return_value.get_iam_policy.return_value = policy

        bucket.ensure_public_read(client, "site")

        client.bucket.return_value.set_iam_policy.assert_called_once_with(policy)
        assert policy.bindings[-1] == PUBLIC_BINDING
        assert len(policy.bindings) == 2

    def test_concurrent_change_is_retried(self, client):
        b = client.bucket.return_value
        b.get_iam_policy.side_effect = [SimpleNamespace(bindings=[]), SimpleNamespace(bindings=[])]
        b.set_iam_policy.side_effect = [PreconditionFailed("etag mismatch"), None]

        bucket.ensure_public_read(client, "site")

        assert b.get_iam_policy.call_count == 2
        assert b.set_iam_policy.call_count == 2

    def test_retries_are_bounded(self, client):
        b = client.bucket.return_value
        b.get_iam_policy.side_effect = lambda **kwargs: SimpleNamespace(bindings=[])
        b.set_iam_policy.side_effect = Conflict("etag mismatch")

        with pytest.raises(ExternalCallError):
            bucket.ensure_public_read(client, "site", attempts=2)
        assert b.set_iam_policy.call_count == 2

    def test_read_failure_is_raised(self, client):
        client.bucket.return_value.get_iam_policy.side_effect = Forbidden("no getIamPolicy")
        with pytest.raises(ExternalCallError):
            bucket.ensure_public_read(client, "site")


def test_deploy_returns_deployment_and_uploads(client, config):
    deployment = bucket.deploy(config, client=client)

    assert deployment == Deployment(bucket="site", project="proj", region="us-central1")
    uploaded = {c.args[0] for c in client.bucket.return_value.blob.call_args_list}
    assert uploaded == {"index.html", "static/app.js", "static/css/app.css"}


def test_deploy_reports_success_when_some_uploads_fail(client, config, capsys):
    client.bucket.return_value.blob.return_value.upload_from_file.side_effect = GoogleAPIError("quota")

    deployment = bucket.deploy(config, client=client)

    assert deployment.bucket == "site"
    assert "Warning: 3 static file(s) failed to upload" in capsys.readouterr().out


def test_deploy_validates_before_any_call(client, tmp_path):
    with pytest.raises(ValidationError):
        bucket.deploy(DeployConfig(bucket="", project="proj", directory=str(tmp_path)), client=client)
    with pytest.raises(ValidationError):
        bucket.deploy(DeployConfig(bucket="site", project="proj", directory=str(tmp_path / "nope")), client=client)
    assert client.mock_calls == []


class TestDestroy:
    def test_missing_bucket_is_a_no_op(self, client):
        client.get_bucket.side_effect = NotFound("no such bucket")

        bucket.destroy(Deployment(bucket="site", project="proj"), client=client)

        client.list_blobs.assert_not_called()
        client.bucket.return_value.delete.assert_not_called()

    def test_objects_are_deleted_before_bucket(self, client):
        blobs = [blob("index.html"), blob("static/app.js")]
        client.list_blobs.return_value = blobs

        bucket.destroy(Deployment(bucket="site", project="proj"), client=client)

        for b in blobs:
            b.delete.assert_called_once()
        client.bucket.return_value.delete.assert_called_once()

    def test_lookup_errors_do_not_stop_teardown(self, client):
        client.get_bucket.side_effect = Forbidden("caller does not have storage.buckets.get access")
        blobs = [blob("index.html"), blob("static/app.js")]
        client.list_blobs.return_value = blobs

        bucket.destroy(Deployment(bucket="site", project="proj"), client=client)

        client.list_blobs.assert_called_once_with("site")
        for b in blobs:
            b.delete.assert_called_once()
        client.bucket.return_value.delete.assert_called_once()

    def test_object_failure_leaves_bucket(self, client):
        blobs = [blob("a"), blob("b", error=Forbidden("nope")), blob("c")]
        client.list_blobs.return_value = blobs

        with pytest.raises(ExternalCallError) as exc:
            bucket.destroy(Deployment(bucket="site", project="proj"), client=client)

        assert "failed to destroy object b" in str(exc.value)
        blobs[2].delete.assert_not_called()
        client.bucket.return_value.delete.assert_not_called()

    def test_missing_deployment_is_rejected(self, client):
        with pytest.raises(ValidationError):
            bucket.destroy(None, client=client)
        assert client.mock_calls == []
