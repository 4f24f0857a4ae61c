"""Fixtures for storage integration tests against a live MinIO server.

Tests skip unless the server named by SMARTBLOB_MINIO__ENDPOINT (default localhost:9000) answers.
"""

import uuid

import pytest

from smartblob.core import CoreConfig


@pytest.fixture(scope="session")
def minio_settings():
    config = CoreConfig()
    minio_config = config.SMARTBLOB_MINIO
    return {
        "endpoint": minio_config.ENDPOINT,
        "access_key": minio_config.ACCESS_KEY,
        "secret_key": config.get_secret("SMARTBLOB_MINIO", "SECRET_KEY"),
        "secure": str(minio_config.SECURE).lower() == "true",
    }


@pytest.fixture(scope="session")
def minio_client(minio_settings):
    from minio import Minio

    client = Minio(**minio_settings)
    try:
        client.list_buckets()
    except Exception as e:
        pytest.skip(f"MinIO not available at {minio_settings['endpoint']}: {e}")
    return client


@pytest.fixture
def minio_bucket(minio_client):
    bucket = f"smartblob-test-{uuid.uuid4().hex[:8]}"
    minio_client.make_bucket(bucket)
    yield bucket
    for obj in minio_client.list_objects(bucket, recursive=True):
        minio_client.remove_object(bucket, obj.object_name)
    minio_client.remove_bucket(bucket)
