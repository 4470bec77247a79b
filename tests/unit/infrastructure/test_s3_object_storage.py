from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from files_control.domain.errors import ValidationError
from files_control.domain.file_storage import StorageBackend
from files_control.infrastructure.s3_object_storage import S3ObjectStorage


def client_error(code, status):
    return ClientError(
        {"Error": {"Code": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "HeadObject",
    )


@pytest.fixture
def client():
    mock = Mock()
    mock.generate_presigned_url.return_value = "https://bucket.example/signed"
    return mock


@pytest.fixture
def storage(client):
    return S3ObjectStorage(bucket="files", url_ttl_seconds=300, client=client)


class TestS3ObjectStorage:
    def test_backend(self, storage):
        assert storage.backend is StorageBackend.S3

    def test_upload_url_needs_key(self, storage):
        with pytest.raises(ValidationError):
            storage.generate_upload_url(None)

    def test_upload_url_presigns_put(self, storage, client):
        assert storage.generate_upload_url("docs/a.pdf") == "https://bucket.example/signed"
        client.generate_presigned_url.assert_called_once_with(
            "put_object", Params={"Bucket": "files", "Key": "docs/a.pdf"}, ExpiresIn=300
        )

    def test_read_url_presigns_get(self, storage, client):
        storage.signed_read_url("docs/a.pdf")
        assert client.generate_presigned_url.call_args[0][0] == "get_object"

    def test_put_records_sha256(self, storage, client):
        assert storage.put("k", b"abc", "text/plain") == "k"
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "files"
        assert kwargs["ContentType"] == "text/plain"
        assert kwargs["Metadata"]["sha256"] == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_put_needs_key(self, storage):
        with pytest.raises(ValidationError):
            storage.put(None, b"abc")

    def test_delete(self, storage, client):
        storage.delete("k")
        client.delete_object.assert_called_once_with(Bucket="files", Key="k")

    def test_head_metadata(self, storage, client):
        client.head_object.return_value = {
            "ContentLength": 3,
            "ContentType": "text/plain",
            "Metadata": {"sha256": "abc"},
        }
        metadata = storage.head_metadata("k")
        assert (metadata.size, metadata.sha256, metadata.content_type) == (3, "abc", "text/plain")

    def test_head_metadata_missing(self, storage, client):
        client.head_object.side_effect = client_error("404", 404)
        assert storage.head_metadata("k") is None

    def test_head_metadata_other_errors_propagate(self, storage, client):
        client.head_object.side_effect = client_error("AccessDenied", 403)
        with pytest.raises(ClientError):
            storage.head_metadata("k")

    @patch("files_control.infrastructure.s3_object_storage.boto3")
    def test_lazy_client_configuration(self, boto3_mock):
        storage = S3ObjectStorage(
            bucket="files",
            region="auto",
            endpoint_url="https://acct.r2.cloudflarestorage.com",
            access_key_id="id",
            secret_access_key="secret",
        )
        boto3_mock.client.assert_not_called()

        storage.delete("k")
        storage.delete("k")

        boto3_mock.client.assert_called_once()
        kwargs = boto3_mock.client.call_args.kwargs
        assert kwargs["service_name"] == "s3"
        assert kwargs["endpoint_url"] == "https://acct.r2.cloudflarestorage.com"
        assert kwargs["region_name"] == "auto"
