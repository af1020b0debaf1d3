import base64
import hashlib
import io

import boto3
import pytest
from botocore.client import Config
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from registry_api.errors import BackendError
from registry_api.storage.base import BlobNotFoundError, InvalidBlobKeyError
from registry_api.storage.s3 import S3BlobStore

KEY = "packages/foo/1.0.0/abc.tar.gz"
OBJECT_KEY = f"registry/published/{KEY}"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        config=Config(signature_version="s3v4"),
    )


@pytest.fixture
def store(s3_client):
    return S3BlobStore("archives", namespace="published", prefix="registry", client=s3_client)


def _body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


@pytest.mark.asyncio
async def test_put_sends_checksum_and_digest_metadata(store, s3_client):
    data = b"archive-bytes"
    raw = hashlib.sha256(data).digest()
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {},
            {
                "Bucket": "archives",
                "Key": OBJECT_KEY,
                "Body": ANY,
                "ContentType": "application/octet-stream",
                "ChecksumSHA256": base64.b64encode(raw).decode("ascii"),
                "Metadata": {"sha256": raw.hex()},
            },
        )
        await store.put(KEY, data)
        stubber.assert_no_pending_responses()


@pytest.mark.asyncio
async def test_get_and_exists(store, s3_client):
    with Stubber(s3_client) as stubber:
        stubber.add_response("head_object", {}, {"Bucket": "archives", "Key": OBJECT_KEY})
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        stubber.add_response(
            "get_object",
            {"Body": _body(b"payload")},
            {"Bucket": "archives", "Key": OBJECT_KEY},
        )
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

        assert await store.exists(KEY)
        assert not await store.exists(KEY)
        assert await store.get(KEY) == b"payload"
        with pytest.raises(BlobNotFoundError):
            await store.get(KEY)


@pytest.mark.asyncio
async def test_unexpected_errors_become_backend_errors(store, s3_client):
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("head_object", service_error_code="403", http_status_code=403)
        stubber.add_client_error("head_bucket", service_error_code="NoSuchBucket", http_status_code=404)
        with pytest.raises(BackendError):
            await store.exists(KEY)
        with pytest.raises(BackendError):
            await store.ensure_ready()


@pytest.mark.asyncio
async def test_streaming_digest(store, s3_client):
    with Stubber(s3_client) as stubber:
        stubber.add_response("get_object", {"Body": _body(b"chunked")}, {"Bucket": "archives", "Key": OBJECT_KEY})
        assert await store.digest(KEY) == hashlib.sha256(b"chunked").hexdigest()


def test_keys_are_validated_before_any_request(store):
    with pytest.raises(InvalidBlobKeyError):
        store.object_key("../other-namespace/secret")
    assert store.object_key(KEY) == OBJECT_KEY
    assert store.describe() == "s3://archives/registry/published"


@pytest.mark.asyncio
async def test_presigned_url_targets_namespaced_key(store):
    url = await store.signed_url(KEY, ttl_seconds=120)
    assert "archives" in url
    assert "registry/published/packages/foo/1.0.0/abc.tar.gz" in url
    assert "X-Amz-Expires=120" in url
