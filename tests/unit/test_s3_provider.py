"""
Unit tests for the S3 storage provider

===============================================================================
PROVENANCE TRACKING
===============================================================================
File: tests/unit/test_s3_provider.py
Created: 2026-10-19
Author: KVCloud Contributors
Type: Unit Test Suite

Change History:
-------------------------------------------------------------------------------
Date        Author      Type    Description
-------------------------------------------------------------------------------
2026-10-19  kvcloud     CREATE  S3 provider tests against a stubbed boto3
                                client (botocore.stub.Stubber).
-------------------------------------------------------------------------------

License: MIT
===============================================================================
"""

import io
from datetime import datetime, timezone

import pytest

boto3 = pytest.importorskip("boto3")

from botocore.exceptions import ClientError  # noqa: E402
from botocore.response import StreamingBody  # noqa: E402
from botocore.stub import ANY, Stubber  # noqa: E402

from kvcloud.errors import (  # noqa: E402
    CloudIOError,
    InvalidConfigurationError,
    NotFoundError,
    PartialFailureError,
)
from kvcloud.options import CloudCredentials, CloudStorageProviderOptions  # noqa: E402
from kvcloud.providers.base import CloudRequestOpType  # noqa: E402
from kvcloud.providers.s3 import S3StorageProvider  # noqa: E402


BUCKET = "db.live-b"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def provider(s3_client, stubber, recorder):
    return S3StorageProvider(CloudStorageProviderOptions(request_callback=recorder),
                             client=s3_client)


def _body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


# =============================================================================
# Client Construction Tests
# =============================================================================

class TestS3Client:
    """Tests for boto3 client configuration"""

    def test_client_built_from_options(self):
        options = CloudStorageProviderOptions(
            credentials=CloudCredentials("AKIATEST", "secret"),
            endpoint_url="http://localhost:9000",
            max_retries=5,
        )
        provider = S3StorageProvider(options)
        provider._region = "us-west-2"

        client = provider.client
        assert client.meta.endpoint_url == "http://localhost:9000"
        assert client.meta.region_name == "us-west-2"
        assert client.meta.config.connect_timeout == 30.0
        assert client.meta.config.read_timeout == 600.0
        assert client.meta.config.retries["max_attempts"] == 5

    def test_client_is_created_once(self):
        provider = S3StorageProvider(CloudStorageProviderOptions(
            credentials=CloudCredentials("AKIATEST", "secret")))
        provider._region = "us-east-1"
        assert provider.client is provider.client


# =============================================================================
# Bucket Tests
# =============================================================================

class TestS3Buckets:
    """Tests for bucket operations"""

    def test_exists_bucket(self, provider, stubber):
        stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})
        assert provider.exists_bucket(BUCKET) is True

    def test_missing_bucket(self, provider, stubber):
        stubber.add_client_error("head_bucket", service_error_code="404",
                                 http_status_code=404, expected_params={"Bucket": BUCKET})
        assert provider.exists_bucket(BUCKET) is False

    def test_exists_bucket_access_denied_raises(self, provider, stubber):
        stubber.add_client_error("head_bucket", service_error_code="403", http_status_code=403)
        with pytest.raises(InvalidConfigurationError):
            provider.exists_bucket(BUCKET)

    def test_create_bucket_with_location(self, provider, stubber):
        provider._region = "eu-west-1"
        stubber.add_response("create_bucket", {}, {
            "Bucket": BUCKET,
            "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"},
        })
        provider.create_bucket(BUCKET)

    def test_create_bucket_already_owned(self, provider, stubber, recorder):
        stubber.add_client_error("create_bucket", service_error_code="BucketAlreadyOwnedByYou",
                                 http_status_code=409)
        provider.create_bucket(BUCKET)
        assert recorder.events[-1].success is True

    def test_list_paginates_and_strips_prefix(self, provider, stubber):
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "db/000001.sst"}], "IsTruncated": True,
             "NextContinuationToken": "page-2"},
            {"Bucket": BUCKET, "Prefix": "db/"},
        )
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "db/MANIFEST-1"}], "IsTruncated": False},
            {"Bucket": BUCKET, "Prefix": "db/", "ContinuationToken": "page-2"},
        )
        assert provider.list_cloud_objects(BUCKET, "db") == ["000001.sst", "MANIFEST-1"]

    def test_empty_bucket_partial_failure(self, provider, stubber):
        stubber.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "db/a"}, {"Key": "db/b"}], "IsTruncated": False},
            {"Bucket": BUCKET, "Prefix": "db/"},
        )
        stubber.add_response(
            "delete_objects",
            {"Deleted": [{"Key": "db/a"}],
             "Errors": [{"Key": "db/b", "Code": "AccessDenied", "Message": "denied"}]},
            {"Bucket": BUCKET, "Delete": {"Objects": [{"Key": "db/a"}, {"Key": "db/b"}],
                                          "Quiet": True}},
        )
        with pytest.raises(PartialFailureError) as excinfo:
            provider.empty_bucket(BUCKET, "db")
        assert excinfo.value.completed == ["db/a"]


# =============================================================================
# Object Tests
# =============================================================================

class TestS3Objects:
    """Tests for object operations"""

    def test_metadata(self, provider, stubber):
        stubber.add_response("head_object", {
            "ContentLength": 2,
            "LastModified": datetime(2026, 1, 1, tzinfo=timezone.utc),
            "ETag": '"9b2cf535f27731c974343645a3985328"',
            "Metadata": {"owner": "engine"},
        }, {"Bucket": BUCKET, "Key": "db/manifest-1"})

        info = provider.get_cloud_object_metadata(BUCKET, "db/manifest-1")
        assert info.size == 2
        assert info.modification_time == 1767225600000
        assert info.content_hash == "9b2cf535f27731c974343645a3985328"
        assert dict(info.metadata) == {"owner": "engine"}

    def test_missing_object_chains_vendor_error(self, provider, stubber):
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        with pytest.raises(NotFoundError) as excinfo:
            provider.get_cloud_object_size(BUCKET, "db/missing")
        assert isinstance(excinfo.value.__cause__, ClientError)
        assert excinfo.value.object_path == "db/missing"

    def test_throttling_is_io_error(self, provider, stubber):
        stubber.add_client_error("head_object", service_error_code="SlowDown", http_status_code=503)
        with pytest.raises(CloudIOError):
            provider.get_cloud_object_metadata(BUCKET, "db/x")

    def test_delete_missing_object(self, provider, stubber):
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        with pytest.raises(NotFoundError):
            provider.delete_cloud_object(BUCKET, "db/missing")

    def test_delete_object(self, provider, stubber, recorder):
        stubber.add_response("head_object", {"ContentLength": 1,
                                             "LastModified": datetime.now(timezone.utc)})
        stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "db/x"})
        provider.delete_cloud_object(BUCKET, "db/x")
        assert recorder.ops() == [CloudRequestOpType.INFO, CloudRequestOpType.DELETE]

    def test_copy_object(self, provider, stubber):
        stubber.add_response("copy_object", {}, {
            "CopySource": {"Bucket": "db.snap-a", "Key": "db/CURRENT"},
            "Bucket": BUCKET,
            "Key": "db/CURRENT",
        })
        provider.copy_cloud_object("db.snap-a", "db/CURRENT", BUCKET, "db/CURRENT")

    def test_replace_metadata(self, provider, stubber):
        stubber.add_response("copy_object", {}, {
            "CopySource": {"Bucket": BUCKET, "Key": "db/x"},
            "Bucket": BUCKET,
            "Key": "db/x",
            "MetadataDirective": "REPLACE",
            "Metadata": {"epoch": "7"},
        })
        provider.put_cloud_object_metadata(BUCKET, "db/x", {"epoch": "7"})

    def test_ranged_read(self, provider, stubber, recorder):
        stubber.add_response("get_object", {"Body": _body(b"234")},
                             {"Bucket": BUCKET, "Key": "db/x", "Range": "bytes=2-4"})
        assert provider.read_cloud_object_range(BUCKET, "db/x", 2, 3) == b"234"
        assert recorder.events[-1].size == 3
        assert recorder.events[-1].op is CloudRequestOpType.READ

    def test_zero_length_read_makes_no_call(self, provider):
        assert provider.read_cloud_object_range(BUCKET, "db/x", 0, 0) == b""

    def test_download(self, provider, stubber, tmp_path):
        stubber.add_response("get_object", {"Body": _body(b"v1")},
                             {"Bucket": BUCKET, "Key": "db/manifest-1"})
        target = tmp_path / "manifest-1"
        assert provider.get_cloud_object(BUCKET, "db/manifest-1", str(target)) == 2
        assert target.read_bytes() == b"v1"

    def test_upload_with_kms(self, s3_client, stubber, tmp_path):
        provider = S3StorageProvider(
            CloudStorageProviderOptions(server_side_encryption=True,
                                        encryption_key_id="alias/kvcloud"),
            client=s3_client,
        )
        local = tmp_path / "000012.sst"
        local.write_bytes(b"sst-bytes")
        stubber.add_response("put_object", {}, {
            "Bucket": BUCKET,
            "Key": "db/000012.sst",
            "Body": ANY,
            "ServerSideEncryption": "aws:kms",
            "SSEKMSKeyId": "alias/kvcloud",
        })
        assert provider.put_cloud_object(str(local), BUCKET, "db/000012.sst") == 9

    def test_upload_with_aes(self, s3_client, stubber, tmp_path):
        provider = S3StorageProvider(
            CloudStorageProviderOptions(server_side_encryption=True), client=s3_client
        )
        local = tmp_path / "CURRENT"
        local.write_bytes(b"MANIFEST-1\n")
        stubber.add_response("put_object", {}, {
            "Bucket": BUCKET, "Key": "db/CURRENT", "Body": ANY,
            "ServerSideEncryption": "AES256",
        })
        provider.put_cloud_object(str(local), BUCKET, "db/CURRENT")
